"""Droplet hydraulic erosion over heightmap grids."""

from .brush import Brush, BrushCache
from .config import DEFAULT_PARAMS, Parameters, PartitionConfig, PartitionMethod, RunConfig
from .droplet import (
    DropletSimulator,
    DropZone,
    DropZoneExhaustedError,
    ErosionStats,
    TranslatedPredicate,
    erode,
)
from .heightmap import Heightmap, HeightmapError, MismatchingSizeError, OutOfBoundsError
from .partitioning import (
    PartialHeightmap,
    PartitionedErosionRunner,
    PartitionReport,
    TileErosionError,
    record_erosion_metadata,
)
from .presets import HeightmapPreset, create_heightmap
from .rng import RngStream
from .vector import Vector2

__all__ = [
    "Brush",
    "BrushCache",
    "DEFAULT_PARAMS",
    "DropZone",
    "DropZoneExhaustedError",
    "DropletSimulator",
    "ErosionStats",
    "Heightmap",
    "HeightmapError",
    "HeightmapPreset",
    "MismatchingSizeError",
    "OutOfBoundsError",
    "Parameters",
    "PartialHeightmap",
    "PartitionConfig",
    "PartitionMethod",
    "PartitionReport",
    "PartitionedErosionRunner",
    "RngStream",
    "RunConfig",
    "TileErosionError",
    "TranslatedPredicate",
    "Vector2",
    "create_heightmap",
    "erode",
    "record_erosion_metadata",
]

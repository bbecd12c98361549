"""Configuration models for droplet erosion runs."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Any


DEFAULT_SIZE = 256
DEFAULT_DEPTH = 1.0
DEFAULT_SUBDIVISIONS = 2
DEFAULT_GRID_SIZE = 6
GAUSSIAN_DEFAULT_SIGMA = 5.0
GAUSSIAN_DEFAULT_BOUNDARY_THICKNESS = 2
DEFAULT_DROP_ZONE_ATTEMPTS = 1000


@dataclass(frozen=True)
class Parameters:
    """Tuning constants for the droplet simulation.

    ``num_iterations`` counts droplets, not steps.
    """

    erosion_radius: int = 3
    inertia: float = 0.05
    sediment_capacity_factor: float = 4.0
    min_sediment_capacity: float = 0.01
    erode_speed: float = 0.3
    deposit_speed: float = 0.3
    evaporate_speed: float = 0.01
    gravity: float = 4.0
    max_droplet_lifetime: int = 30
    initial_water_volume: float = 1.0
    initial_speed: float = 1.0
    num_iterations: int = 1

    def __post_init__(self) -> None:
        if self.erosion_radius < 1:
            raise ValueError(f"erosion_radius must be >= 1, got {self.erosion_radius}")
        for name in ("inertia", "erode_speed", "deposit_speed", "evaporate_speed"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")
        if self.max_droplet_lifetime < 0:
            raise ValueError("max_droplet_lifetime must be non-negative")
        if self.num_iterations < 0:
            raise ValueError("num_iterations must be non-negative")
        if self.min_sediment_capacity < 0.0 or self.sediment_capacity_factor < 0.0:
            raise ValueError("sediment capacity settings must be non-negative")

    def scaled(self, divisor: int) -> "Parameters":
        """Return a copy whose droplet budget is split across ``divisor`` workers."""

        if divisor < 1:
            raise ValueError("divisor must be >= 1")
        return replace(self, num_iterations=self.num_iterations // divisor)

    def to_metadata(self) -> dict[str, str]:
        return {f.name: str(getattr(self, f.name)) for f in fields(self)}


DEFAULT_PARAMS = Parameters()


class PartitionMethod(str, Enum):
    DEFAULT = "default"
    SUBDIVISION = "subdivision"
    SUBDIVISION_OVERLAP = "subdivision_overlap"
    SUBDIVISION_BLUR_BOUNDARY = "subdivision_blur_boundary"
    GRID_OVERLAP_BLEND = "grid_overlap_blend"

    @property
    def label(self) -> str:
        return "".join(part.capitalize() for part in self.value.split("_"))


@dataclass(frozen=True)
class PartitionConfig:
    """Controls how a grid is split across tile workers."""

    method: PartitionMethod = PartitionMethod.SUBDIVISION
    subdivisions: int = DEFAULT_SUBDIVISIONS
    grid_size: int = DEFAULT_GRID_SIZE
    blur_sigma: float = GAUSSIAN_DEFAULT_SIGMA
    blur_boundary_thickness: int = GAUSSIAN_DEFAULT_BOUNDARY_THICKNESS
    executor: str = "process"
    max_workers: int | None = None
    tag_metadata: bool = True

    def __post_init__(self) -> None:
        if self.subdivisions < 0:
            raise ValueError("subdivisions must be non-negative")
        if self.grid_size < 1:
            raise ValueError("grid_size must be >= 1")
        if self.blur_sigma < 0.0 or self.blur_boundary_thickness < 0:
            raise ValueError("blur settings must be non-negative")
        if self.executor not in ("process", "thread"):
            raise ValueError(f"executor must be 'process' or 'thread', got {self.executor!r}")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")


@dataclass(frozen=True)
class RunConfig:
    """Primary configuration for one erosion run."""

    seed: int | None = None
    drop_zone_attempts: int = DEFAULT_DROP_ZONE_ATTEMPTS
    params: Parameters = field(default_factory=Parameters)
    partition: PartitionConfig = field(default_factory=PartitionConfig)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["partition"]["method"] = self.partition.method.value
        return payload

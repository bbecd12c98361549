"""Preview rasters derived from heightmaps."""

from __future__ import annotations

import numpy as np

from erosion.heightmap import Heightmap


def height_preview_u16(heightmap: Heightmap) -> np.ndarray:
    """Map heights in ``[0, depth]`` onto 16-bit grayscale."""

    scale = max(heightmap.depth, 1e-6)
    norm = np.clip(heightmap.data / scale, 0.0, 1.0)
    return np.round(norm * 65535.0).astype(np.uint16)


def difference_preview_u8(difference: Heightmap) -> np.ndarray:
    """Normalised absolute difference, brightest where most material moved."""

    return difference.normalized().to_u8()

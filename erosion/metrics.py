"""Summaries used to compare eroded heightmaps."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.ndimage import generate_binary_structure, label

from erosion.heightmap import Heightmap, MismatchingSizeError


@dataclass(frozen=True)
class HeightSummary:
    min_height: float
    max_height: float
    mean_height: float
    total_height: float


@dataclass(frozen=True)
class ErosionMetrics:
    """How much material moved between a base map and its eroded copy."""

    total_change: float
    max_change: float
    mean_change: float
    changed_cells: int
    changed_fraction: float
    mass_delta: float


@dataclass(frozen=True)
class FloodMetrics:
    """Connected regions on one side of an isoline height."""

    num_areas: int
    largest_area: int
    flooded_cells: int
    flooded_fraction: float


def height_summary(heightmap: Heightmap) -> HeightSummary:
    lo, hi = heightmap.get_range()
    return HeightSummary(
        min_height=lo,
        max_height=hi,
        mean_height=heightmap.average_height() or 0.0,
        total_height=heightmap.total_height(),
    )


def erosion_metrics(base: Heightmap, eroded: Heightmap, *, tolerance: float = 1e-7) -> ErosionMetrics:
    if base.shape != eroded.shape:
        raise MismatchingSizeError(f"cannot compare {base.shape} with {eroded.shape}")

    change = np.abs(eroded.data.astype(np.float64) - base.data.astype(np.float64))
    changed = int(np.count_nonzero(change > tolerance))
    return ErosionMetrics(
        total_change=float(change.sum()),
        max_change=float(change.max()),
        mean_change=float(change.mean()),
        changed_cells=changed,
        changed_fraction=float(changed / change.size),
        mass_delta=eroded.total_height() - base.total_height(),
    )


def seam_discontinuity(heightmap: Heightmap, slices: int) -> float:
    """Mean absolute step across the seams of a ``slices x slices`` tiling relative to the rest of the map.

    Values well above 1 mean seams are visibly sharper than ordinary terrain.
    """

    if slices < 2:
        return 0.0
    data = heightmap.data.astype(np.float64)
    step_x = np.abs(np.diff(data, axis=1))
    step_y = np.abs(np.diff(data, axis=0))

    seam_cols = [k * (heightmap.width // slices) - 1 for k in range(1, slices)]
    seam_rows = [k * (heightmap.height // slices) - 1 for k in range(1, slices)]
    col_mask = np.zeros(step_x.shape[1], dtype=bool)
    row_mask = np.zeros(step_y.shape[0], dtype=bool)
    col_mask[[c for c in seam_cols if 0 <= c < step_x.shape[1]]] = True
    row_mask[[r for r in seam_rows if 0 <= r < step_y.shape[0]]] = True

    seam_steps = np.concatenate((step_x[:, col_mask].ravel(), step_y[row_mask, :].ravel()))
    rest_steps = np.concatenate((step_x[:, ~col_mask].ravel(), step_y[~row_mask, :].ravel()))
    if seam_steps.size == 0 or rest_steps.size == 0:
        return 0.0
    baseline = float(rest_steps.mean())
    if baseline <= 0.0:
        return 0.0 if float(seam_steps.mean()) <= 0.0 else float("inf")
    return float(seam_steps.mean() / baseline)


def isoline_mask(heightmap: Heightmap, value: float, error: float) -> np.ndarray:
    """Cells whose height lies within ``error`` of ``value``."""

    if error < 0.0:
        raise ValueError("error must be non-negative")
    return np.abs(heightmap.data - np.float32(value)) <= np.float32(error)


def flooded_areas(
    heightmap: Heightmap,
    value: float,
    *,
    lower: bool = True,
    connectivity: int = 4,
) -> FloodMetrics:
    """Count connected regions below (or above) the isoline ``value``."""

    mask = heightmap.data < value if lower else heightmap.data > value
    return _component_metrics(mask, connectivity=connectivity)


@dataclass(frozen=True)
class IsolineMetrics:
    value: float
    error: float
    isoline_cells: int
    lower: FloodMetrics
    higher: FloodMetrics


def isoline_metrics(heightmap: Heightmap, value: float, error: float) -> IsolineMetrics:
    """Isoline cell count plus flooded regions on both sides of ``value``."""

    return IsolineMetrics(
        value=float(value),
        error=float(error),
        isoline_cells=int(isoline_mask(heightmap, value, error).sum()),
        lower=flooded_areas(heightmap, value, lower=True),
        higher=flooded_areas(heightmap, value, lower=False),
    )


def _component_metrics(mask: np.ndarray, *, connectivity: int) -> FloodMetrics:
    if mask.ndim != 2:
        raise ValueError("mask must be 2D")
    if connectivity not in (4, 8):
        raise ValueError("connectivity must be 4 or 8")

    structure = generate_binary_structure(2, 1 if connectivity == 4 else 2)
    labels, count = label(mask, structure=structure)
    if count == 0:
        return FloodMetrics(0, 0, 0, 0.0)

    sizes = np.bincount(labels.ravel())[1:]
    total = int(sizes.sum())
    return FloodMetrics(
        num_areas=int(count),
        largest_area=int(sizes.max()),
        flooded_cells=total,
        flooded_fraction=float(total / labels.size),
    )

"""Tile partitioning strategies that run droplet erosion in parallel."""

from __future__ import annotations

from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass
import logging
import os
import time

import numpy as np
from scipy.ndimage import gaussian_filter

from erosion.config import Parameters, PartitionConfig, PartitionMethod
from erosion.droplet import DropletSimulator, DropZone, ErosionStats
from erosion.heightmap import Heightmap
from erosion.rng import RngStream

logger = logging.getLogger(__name__)

TileKey = tuple[str, int, int]


class TileErosionError(RuntimeError):
    """Raised when any tile worker fails; the whole run is abandoned."""


@dataclass(eq=False)
class PartialHeightmap:
    """A private copy of a rectangle of a parent heightmap.

    ``anchor`` is always the absolute ``(x, y)`` offset into the parent,
    including for tiles nested inside another partial.
    """

    anchor: tuple[int, int]
    heightmap: Heightmap

    @classmethod
    def from_heightmap(
        cls,
        parent: Heightmap,
        anchor: tuple[int, int],
        size: tuple[int, int],
    ) -> "PartialHeightmap":
        ax, ay = anchor
        sw, sh = size
        if sw <= 0 or sh <= 0:
            raise ValueError(f"tile size must be positive, got {size}")
        if ax < 0 or ay < 0 or ax + sw > parent.width or ay + sh > parent.height:
            raise ValueError(f"tile at {anchor} of size {size} exceeds {parent.width}x{parent.height}")
        data = parent.data[ay : ay + sh, ax : ax + sw].copy()
        return cls((ax, ay), Heightmap(data, depth=parent.depth, original_depth=parent.original_depth))

    @property
    def size(self) -> tuple[int, int]:
        return self.heightmap.width, self.heightmap.height

    def nest(self, anchor: tuple[int, int], size: tuple[int, int]) -> "PartialHeightmap":
        """Slice a sub-tile using coordinates local to this partial."""

        inner = PartialHeightmap.from_heightmap(self.heightmap, anchor, size)
        inner.anchor = (self.anchor[0] + anchor[0], self.anchor[1] + anchor[1])
        return inner

    def apply_to(self, parent: Heightmap) -> None:
        ax, ay = self.anchor
        sw, sh = self.size
        parent.data[ay : ay + sh, ax : ax + sw] = self.heightmap.data

    def blend_apply_to(self, target: "PartialHeightmap") -> None:
        """Blend this tile's values into the overlapping part of ``target``.

        ``target`` keeps full weight at its centre and hands over to this
        tile towards its border.
        """

        x0 = max(self.anchor[0], target.anchor[0])
        y0 = max(self.anchor[1], target.anchor[1])
        x1 = min(self.anchor[0] + self.size[0], target.anchor[0] + target.size[0])
        y1 = min(self.anchor[1] + self.size[1], target.anchor[1] + target.size[1])
        if x0 >= x1 or y0 >= y1:
            return
        tx0, ty0 = x0 - target.anchor[0], y0 - target.anchor[1]
        sx0, sy0 = x0 - self.anchor[0], y0 - self.anchor[1]
        w, h = x1 - x0, y1 - y0

        keep = _pyramid_weights(target.size[0], target.size[1])[ty0 : ty0 + h, tx0 : tx0 + w]
        mine = self.heightmap.data[sy0 : sy0 + h, sx0 : sx0 + w]
        region = target.heightmap.data[ty0 : ty0 + h, tx0 : tx0 + w]
        target.heightmap.data[ty0 : ty0 + h, tx0 : tx0 + w] = region * keep + mine * (1.0 - keep)


def _pyramid_weights(width: int, height: int) -> np.ndarray:
    wx = 1.0 - np.abs(2.0 * (np.arange(width, dtype=np.float32) + 0.5) / width - 1.0)
    wy = 1.0 - np.abs(2.0 * (np.arange(height, dtype=np.float32) + 0.5) / height - 1.0)
    return (wy[:, None] * wx[None, :]).astype(np.float32)


def subdivide(heightmap: Heightmap, subdivisions: int) -> list[tuple[tuple[int, int], PartialHeightmap]]:
    """Split into ``2^s x 2^s`` tiles; remainder cells at the far edges are left out."""

    if subdivisions < 0:
        raise ValueError("subdivisions must be non-negative")
    slices = 2**subdivisions
    return _grid_tiles(heightmap, (0, 0), (heightmap.width, heightmap.height), (slices, slices))


def _grid_tiles(
    heightmap: Heightmap,
    rect_min: tuple[int, int],
    rect_max: tuple[int, int],
    cells: tuple[int, int],
) -> list[tuple[tuple[int, int], PartialHeightmap]]:
    slice_w = (rect_max[0] - rect_min[0]) // cells[0]
    slice_h = (rect_max[1] - rect_min[1]) // cells[1]
    if slice_w <= 0 or slice_h <= 0:
        raise ValueError(
            f"cannot split {rect_max[0] - rect_min[0]}x{rect_max[1] - rect_min[1]} cells into {cells[0]}x{cells[1]} tiles"
        )
    tiles = []
    for tx in range(cells[0]):
        for ty in range(cells[1]):
            anchor = (rect_min[0] + tx * slice_w, rect_min[1] + ty * slice_h)
            tiles.append(((tx, ty), PartialHeightmap.from_heightmap(heightmap, anchor, (slice_w, slice_h))))
    return tiles


@dataclass(frozen=True)
class _TileTask:
    key: TileKey
    partial: PartialHeightmap
    params: Parameters
    drop_zone: DropZone | None
    seed: int


def _erode_tile(task: _TileTask) -> tuple[PartialHeightmap, ErosionStats]:
    if task.drop_zone is None:
        return task.partial, ErosionStats()
    simulator = DropletSimulator(task.params)
    stats = simulator.erode(task.partial.heightmap, task.drop_zone, RngStream(task.seed).generator())
    return task.partial, stats


@dataclass(frozen=True)
class PassSummary:
    stage: str
    tile_count: int
    iterations_per_tile: int


@dataclass(frozen=True)
class PartitionReport:
    method: PartitionMethod
    passes: tuple[PassSummary, ...]
    stats: ErosionStats
    seconds: float

    @property
    def tile_count(self) -> int:
        return sum(p.tile_count for p in self.passes)

    @property
    def iterations_per_tile(self) -> int:
        return self.passes[0].iterations_per_tile


class PartitionedErosionRunner:
    """Fork-join erosion over privately owned tiles.

    Workers never share grid memory: every tile is a copy that is written
    back after all workers have joined. Brushes and deposits stop at tile
    edges, so seams erode less than the interior.
    """

    def __init__(self, config: PartitionConfig | None = None) -> None:
        self.config = config or PartitionConfig()

    def run(
        self,
        heightmap: Heightmap,
        params: Parameters,
        drop_zone: DropZone | None,
        subdivisions: int,
        *,
        rng: RngStream | None = None,
    ) -> PartitionReport:
        """Erode ``heightmap`` in place split into ``2^subdivisions`` tiles per axis."""

        t0 = time.perf_counter()
        stream = rng or RngStream.from_entropy()
        zone = drop_zone or DropZone.for_heightmap(heightmap)
        if subdivisions < 0:
            raise ValueError("subdivisions must be non-negative")

        if subdivisions == 0:
            stats = DropletSimulator(params).erode(heightmap, zone, stream.generator())
            summary = PassSummary("direct", 1, params.num_iterations)
            return PartitionReport(PartitionMethod.SUBDIVISION, (summary,), stats, time.perf_counter() - t0)

        summary, stats = self._subdivision_pass(heightmap, params, zone, subdivisions, stream)
        return PartitionReport(PartitionMethod.SUBDIVISION, (summary,), stats, time.perf_counter() - t0)

    def run_method(
        self,
        heightmap: Heightmap,
        params: Parameters,
        drop_zone: DropZone | None = None,
        *,
        rng: RngStream | None = None,
    ) -> PartitionReport:
        """Erode with the method selected in the runner's configuration."""

        cfg = self.config
        method = cfg.method
        stream = rng or RngStream.from_entropy()
        zone = drop_zone or DropZone.for_heightmap(heightmap)
        logger.info("eroding %dx%d heightmap with %s method", heightmap.width, heightmap.height, method.label)

        if method is PartitionMethod.DEFAULT:
            report = self.run(heightmap, params, zone, 0, rng=stream)
            report = PartitionReport(method, report.passes, report.stats, report.seconds)
        elif method is PartitionMethod.SUBDIVISION:
            report = self.run(heightmap, params, zone, cfg.subdivisions, rng=stream)
        elif method is PartitionMethod.SUBDIVISION_OVERLAP:
            report = self.run_overlap(heightmap, params, zone, cfg.subdivisions, rng=stream)
        elif method is PartitionMethod.SUBDIVISION_BLUR_BOUNDARY:
            report = self.run_blur_boundary(
                heightmap,
                params,
                zone,
                cfg.subdivisions,
                sigma=cfg.blur_sigma,
                thickness=cfg.blur_boundary_thickness,
                rng=stream,
            )
        else:
            report = self.run_grid_blend(heightmap, params, zone, cfg.grid_size, rng=stream)

        if cfg.tag_metadata:
            record_erosion_metadata(heightmap, method, params)
        logger.info(
            "%s finished: tiles=%d droplets=%d in %.3fs",
            method.label,
            report.tile_count,
            report.stats.droplets,
            report.seconds,
        )
        return report

    def run_overlap(
        self,
        heightmap: Heightmap,
        params: Parameters,
        drop_zone: DropZone | None,
        subdivisions: int,
        *,
        rng: RngStream | None = None,
    ) -> PartitionReport:
        """Subdivide, then erode a second grid offset by half a tile across the seams."""

        if subdivisions < 1:
            raise ValueError("subdivision overlap needs at least one subdivision")
        t0 = time.perf_counter()
        stream = rng or RngStream.from_entropy()
        zone = drop_zone or DropZone.for_heightmap(heightmap)

        tiles = subdivide(heightmap, subdivisions)
        tile_w, tile_h = tiles[0][1].size
        count = len(tiles)
        scaled = params.scaled((count + count - 1) // 2)
        first = self._erode_and_merge(heightmap, "base", tiles, scaled, zone, stream)

        partial = PartialHeightmap.from_heightmap(
            heightmap,
            (tile_w // 2, tile_h // 2),
            (heightmap.width - tile_w, heightmap.height - tile_h),
        )
        slices = 2**subdivisions - 1
        nest_w = partial.size[0] // slices
        nest_h = partial.size[1] // slices
        nested = [
            ((tx, ty), partial.nest((tx * nest_w, ty * nest_h), (nest_w, nest_h)))
            for tx in range(slices)
            for ty in range(slices)
        ]
        second = self._erode_and_merge(heightmap, "overlap", nested, scaled, zone, stream)

        passes = (
            PassSummary("base", len(tiles), scaled.num_iterations),
            PassSummary("overlap", len(nested), scaled.num_iterations),
        )
        stats = ErosionStats.combine([first, second])
        return PartitionReport(PartitionMethod.SUBDIVISION_OVERLAP, passes, stats, time.perf_counter() - t0)

    def run_blur_boundary(
        self,
        heightmap: Heightmap,
        params: Parameters,
        drop_zone: DropZone | None,
        subdivisions: int,
        *,
        sigma: float,
        thickness: int,
        rng: RngStream | None = None,
    ) -> PartitionReport:
        """Subdivide, then smooth a band of ``thickness`` cells around interior seams."""

        t0 = time.perf_counter()
        report = self.run(heightmap, params, drop_zone, subdivisions, rng=rng)
        if subdivisions > 0 and sigma > 0.0 and thickness > 0:
            slices = 2**subdivisions
            mask = seam_mask(
                heightmap.width,
                heightmap.height,
                (heightmap.width // slices, heightmap.height // slices),
                slices,
                thickness,
            )
            blurred = gaussian_filter(heightmap.data.astype(np.float32), sigma=float(sigma), mode="nearest")
            heightmap.data[mask] = blurred[mask]
        return PartitionReport(
            PartitionMethod.SUBDIVISION_BLUR_BOUNDARY,
            report.passes,
            report.stats,
            time.perf_counter() - t0,
        )

    def run_grid_blend(
        self,
        heightmap: Heightmap,
        params: Parameters,
        drop_zone: DropZone | None,
        grid_size: int,
        *,
        rng: RngStream | None = None,
    ) -> PartitionReport:
        """Erode a grid and a half-cell offset grid, then blend the offset grid over the seams."""

        if grid_size < 2:
            raise ValueError("grid overlap blend needs a grid size of at least 2")
        t0 = time.perf_counter()
        stream = rng or RngStream.from_entropy()
        zone = drop_zone or DropZone.for_heightmap(heightmap)

        slice_w = heightmap.width // grid_size
        slice_h = heightmap.height // grid_size
        grid = _grid_tiles(heightmap, (0, 0), (heightmap.width, heightmap.height), (grid_size, grid_size))
        offset = _grid_tiles(
            heightmap,
            (slice_w // 2, slice_h // 2),
            (heightmap.width - slice_w // 2, heightmap.height - slice_h // 2),
            (grid_size - 1, grid_size - 1),
        )

        grid_params = params.scaled(len(grid))
        offset_params = params.scaled(len(offset))
        tasks = self._tasks("grid", grid, grid_params, zone, stream)
        tasks += self._tasks("offset", offset, offset_params, zone, stream)
        results = self._execute(tasks)

        eroded_grid = {task.key[1:]: partial for task, (partial, _) in zip(tasks, results) if task.key[0] == "grid"}
        eroded_offset = [partial for task, (partial, _) in zip(tasks, results) if task.key[0] == "offset"]

        for partial in eroded_grid.values():
            partial.apply_to(heightmap)
        for (ox, oy), centre in zip([key for key, _ in offset], eroded_offset):
            for dx in (0, 1):
                for dy in (0, 1):
                    eroded_grid[(ox + dx, oy + dy)].blend_apply_to(centre)
            centre.apply_to(heightmap)

        passes = (
            PassSummary("grid", len(grid), grid_params.num_iterations),
            PassSummary("offset", len(offset), offset_params.num_iterations),
        )
        stats = ErosionStats.combine(s for _, s in results)
        return PartitionReport(PartitionMethod.GRID_OVERLAP_BLEND, passes, stats, time.perf_counter() - t0)

    def _subdivision_pass(
        self,
        heightmap: Heightmap,
        params: Parameters,
        zone: DropZone,
        subdivisions: int,
        stream: RngStream,
    ) -> tuple[PassSummary, ErosionStats]:
        tiles = subdivide(heightmap, subdivisions)
        scaled = params.scaled(len(tiles))
        logger.debug("subdivision pass: %d tiles x %d droplets", len(tiles), scaled.num_iterations)
        stats = self._erode_and_merge(heightmap, "tile", tiles, scaled, zone, stream)
        return PassSummary("tile", len(tiles), scaled.num_iterations), stats

    def _erode_and_merge(
        self,
        heightmap: Heightmap,
        stage: str,
        tiles: list[tuple[tuple[int, int], PartialHeightmap]],
        params: Parameters,
        zone: DropZone,
        stream: RngStream,
    ) -> ErosionStats:
        results = self._execute(self._tasks(stage, tiles, params, zone, stream))
        for partial, _ in results:
            partial.apply_to(heightmap)
        return ErosionStats.combine(stats for _, stats in results)

    def _tasks(
        self,
        stage: str,
        tiles: list[tuple[tuple[int, int], PartialHeightmap]],
        params: Parameters,
        zone: DropZone,
        stream: RngStream,
    ) -> list[_TileTask]:
        tasks = []
        for (tx, ty), partial in tiles:
            tasks.append(
                _TileTask(
                    key=(stage, tx, ty),
                    partial=partial,
                    params=params,
                    drop_zone=zone.restricted_to(partial.anchor, partial.size),
                    seed=stream.for_tile(tx, ty, stage=stage).seed,
                )
            )
        return tasks

    def _executor(self, task_count: int) -> Executor:
        workers = self.config.max_workers or min(task_count, os.cpu_count() or 1)
        if self.config.executor == "thread":
            return ThreadPoolExecutor(max_workers=workers)
        return ProcessPoolExecutor(max_workers=workers)

    def _execute(self, tasks: list[_TileTask]) -> list[tuple[PartialHeightmap, ErosionStats]]:
        if not tasks:
            return []
        results: list[tuple[PartialHeightmap, ErosionStats]] = []
        with self._executor(len(tasks)) as pool:
            futures = [pool.submit(_erode_tile, task) for task in tasks]
            for task, future in zip(tasks, futures):
                try:
                    results.append(future.result())
                except Exception as exc:
                    raise TileErosionError(f"tile {task.key} at {task.partial.anchor} failed") from exc
        return results


def seam_mask(
    width: int,
    height: int,
    tile_size: tuple[int, int],
    slices: int,
    thickness: int,
) -> np.ndarray:
    """Cells within ``thickness`` of an interior tile boundary."""

    mask = np.zeros((height, width), dtype=bool)
    tile_w, tile_h = tile_size
    for k in range(1, slices):
        x = k * tile_w
        y = k * tile_h
        mask[:, max(0, x - thickness) : min(width, x + thickness)] = True
        mask[max(0, y - thickness) : min(height, y + thickness), :] = True
    return mask


def record_erosion_metadata(
    heightmap: Heightmap,
    method: PartitionMethod,
    params: Parameters,
) -> None:
    heightmap.metadata_add("erosion_method", method.label)
    for key, value in params.to_metadata().items():
        heightmap.metadata_add(key, value)

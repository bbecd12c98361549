"""Droplet hydraulic erosion over a single heightmap."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import math
from typing import Iterable, Protocol

import numpy as np

from erosion.brush import Brush, BrushCache
from erosion.config import DEFAULT_DROP_ZONE_ATTEMPTS, Parameters
from erosion.heightmap import Heightmap
from erosion.vector import Vector2

logger = logging.getLogger(__name__)


class DropZoneExhaustedError(RuntimeError):
    """Raised when no admissible spawn point was found within the retry bound."""


class SpawnPredicate(Protocol):
    def __call__(self, point: Vector2) -> bool: ...


@dataclass(frozen=True)
class TranslatedPredicate:
    """Evaluates ``inner`` in parent-grid coordinates for a tile-local point."""

    inner: SpawnPredicate
    offset: Vector2

    def __call__(self, point: Vector2) -> bool:
        return bool(self.inner(point + self.offset))


@dataclass(frozen=True)
class DropZone:
    """Rectangle droplets spawn in, with an optional admissibility rule."""

    min: Vector2
    max: Vector2
    predicate: SpawnPredicate | None = None
    max_attempts: int = DEFAULT_DROP_ZONE_ATTEMPTS

    def __post_init__(self) -> None:
        if self.max.x < self.min.x or self.max.y < self.min.y:
            raise ValueError(f"drop zone max {self.max} lies below min {self.min}")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def for_heightmap(
        cls,
        heightmap: Heightmap,
        *,
        predicate: SpawnPredicate | None = None,
        max_attempts: int = DEFAULT_DROP_ZONE_ATTEMPTS,
    ) -> "DropZone":
        # One cell short of the far edges keeps bilinear sampling in range.
        return cls(
            Vector2(0.0, 0.0),
            Vector2(float(heightmap.width - 1), float(heightmap.height - 1)),
            predicate=predicate,
            max_attempts=max_attempts,
        )

    def sample(self, rng: np.random.Generator) -> Vector2:
        for _ in range(self.max_attempts):
            point = Vector2(
                float(rng.uniform(self.min.x, self.max.x)),
                float(rng.uniform(self.min.y, self.max.y)),
            )
            if self.predicate is None or self.predicate(point):
                return point
        raise DropZoneExhaustedError(
            f"no admissible spawn point in {self.max_attempts} attempts between {self.min} and {self.max}"
        )

    def restricted_to(self, anchor: tuple[int, int], size: tuple[int, int]) -> "DropZone | None":
        """Intersect with a tile and express the result in tile coordinates.

        Returns ``None`` when the tile does not overlap the zone.
        """

        ax, ay = anchor
        lo = Vector2(max(self.min.x, float(ax)), max(self.min.y, float(ay)))
        hi = Vector2(
            min(self.max.x, float(ax + size[0] - 1)),
            min(self.max.y, float(ay + size[1] - 1)),
        )
        if lo.x > hi.x or lo.y > hi.y:
            return None
        offset = Vector2(float(ax), float(ay))
        predicate = None if self.predicate is None else TranslatedPredicate(self.predicate, offset)
        return DropZone(lo - offset, hi - offset, predicate=predicate, max_attempts=self.max_attempts)


@dataclass
class Droplet:
    position: Vector2
    direction: Vector2 = field(default_factory=Vector2.zero)
    speed: float = 1.0
    water: float = 1.0
    sediment: float = 0.0
    lifetime: int = 0


@dataclass(frozen=True)
class ErosionStats:
    droplets: int = 0
    steps: int = 0
    eroded: float = 0.0
    deposited: float = 0.0
    early_terminations: int = 0
    exhausted: bool = False

    @classmethod
    def combine(cls, parts: Iterable["ErosionStats"]) -> "ErosionStats":
        total = cls()
        for part in parts:
            total = cls(
                droplets=total.droplets + part.droplets,
                steps=total.steps + part.steps,
                eroded=total.eroded + part.eroded,
                deposited=total.deposited + part.deposited,
                early_terminations=total.early_terminations + part.early_terminations,
                exhausted=total.exhausted or part.exhausted,
            )
        return total


@dataclass
class _DropletOutcome:
    steps: int = 0
    eroded: float = 0.0
    deposited: float = 0.0
    terminated_early: bool = False


def _sample_cells(cells: list[float], width: int, x: float, y: float) -> tuple[float, float, float]:
    cell_x = int(x)
    cell_y = int(y)
    fx = x - cell_x
    fy = y - cell_y
    index = cell_y * width + cell_x
    nw = cells[index]
    ne = cells[index + 1]
    sw = cells[index + width]
    se = cells[index + width + 1]
    height = nw * (1 - fx) * (1 - fy) + ne * fx * (1 - fy) + sw * (1 - fx) * fy + se * fx * fy
    gradient_x = (ne - nw) * (1 - fy) + (se - sw) * fy
    gradient_y = (sw - nw) * (1 - fx) + (se - ne) * fx
    return height, gradient_x, gradient_y


class DropletSimulator:
    """Runs droplets over a heightmap, one after another.

    The simulator keeps its brush cache between calls, so eroding many
    equally sized maps with the same radius builds the brush once.
    """

    def __init__(self, params: Parameters, *, brush_cache: BrushCache | None = None) -> None:
        self.params = params
        self.brush_cache = brush_cache or BrushCache()

    def erode(
        self,
        heightmap: Heightmap,
        drop_zone: DropZone,
        rng: np.random.Generator,
    ) -> ErosionStats:
        """Simulate ``params.num_iterations`` droplets, mutating ``heightmap``."""

        params = self.params
        width = heightmap.width
        height = heightmap.height
        if params.num_iterations == 0:
            return ErosionStats()
        if width < 2 or height < 2:
            logger.warning("heightmap %dx%d is too small to erode", width, height)
            return ErosionStats()

        brush = self.brush_cache.get(params.erosion_radius, width, height)
        cells: list[float] = heightmap.data.ravel().tolist()
        outcomes: list[_DropletOutcome] = []
        exhausted = False

        for _ in range(params.num_iterations):
            try:
                start = drop_zone.sample(rng)
            except DropZoneExhaustedError as exc:
                logger.warning("stopping after %d droplets: %s", len(outcomes), exc)
                exhausted = True
                break
            droplet = Droplet(
                position=start,
                speed=params.initial_speed,
                water=params.initial_water_volume,
            )
            outcomes.append(self._simulate(droplet, cells, width, height, brush))

        heightmap.data[...] = np.asarray(cells, dtype=np.float32).reshape(heightmap.data.shape)
        stats = ErosionStats(
            droplets=len(outcomes),
            steps=sum(o.steps for o in outcomes),
            eroded=sum(o.eroded for o in outcomes),
            deposited=sum(o.deposited for o in outcomes),
            early_terminations=sum(1 for o in outcomes if o.terminated_early),
            exhausted=exhausted,
        )
        logger.debug(
            "eroded %dx%d grid: droplets=%d steps=%d eroded=%.6f deposited=%.6f",
            width,
            height,
            stats.droplets,
            stats.steps,
            stats.eroded,
            stats.deposited,
        )
        return stats

    def _simulate(
        self,
        droplet: Droplet,
        cells: list[float],
        width: int,
        height: int,
        brush: Brush,
    ) -> _DropletOutcome:
        params = self.params
        inertia = params.inertia
        outcome = _DropletOutcome()
        limit_x = width - 1
        limit_y = height - 1

        while droplet.lifetime < params.max_droplet_lifetime:
            position = droplet.position
            if not (0.0 <= position.x < limit_x and 0.0 <= position.y < limit_y):
                outcome.terminated_early = True
                break

            node_x, node_y = position.floor()
            node_index = node_y * width + node_x
            offset_x = position.x - node_x
            offset_y = position.y - node_y

            old_height, gradient_x, gradient_y = _sample_cells(cells, width, position.x, position.y)
            direction = droplet.direction * inertia - Vector2(gradient_x, gradient_y) * (1.0 - inertia)
            if direction.is_zero():
                outcome.terminated_early = True
                break
            direction = direction.normalized()

            new_position = position + direction
            if not (0.0 <= new_position.x < limit_x and 0.0 <= new_position.y < limit_y):
                outcome.terminated_early = True
                break

            droplet.direction = direction
            droplet.position = new_position
            droplet.lifetime += 1
            outcome.steps += 1

            new_height = _sample_cells(cells, width, new_position.x, new_position.y)[0]
            delta_height = new_height - old_height
            sediment_capacity = max(
                params.min_sediment_capacity,
                -delta_height * droplet.speed * droplet.water * params.sediment_capacity_factor,
            )

            if delta_height > 0.0 or droplet.sediment > sediment_capacity:
                if delta_height > 0.0:
                    amount = min(delta_height, droplet.sediment)
                else:
                    amount = (droplet.sediment - sediment_capacity) * params.deposit_speed
                droplet.sediment -= amount
                cells[node_index] += amount * (1 - offset_x) * (1 - offset_y)
                cells[node_index + 1] += amount * offset_x * (1 - offset_y)
                cells[node_index + width] += amount * (1 - offset_x) * offset_y
                cells[node_index + width + 1] += amount * offset_x * offset_y
                outcome.deposited += amount
            else:
                amount = min((sediment_capacity - droplet.sediment) * params.erode_speed, -delta_height)
                indices, weights = brush.entry(node_index)
                for index, weight in zip(indices, weights):
                    present = cells[index]
                    removed = min(present, amount * weight)
                    if removed <= 0.0:
                        continue
                    cells[index] = present - removed
                    droplet.sediment += removed
                    outcome.eroded += removed

            # Steep descents can push the radicand below zero.
            droplet.speed = math.sqrt(max(0.0, droplet.speed * droplet.speed + delta_height * params.gravity))
            droplet.water *= 1.0 - params.evaporate_speed

        return outcome


def erode(
    heightmap: Heightmap,
    params: Parameters,
    drop_zone: DropZone | None = None,
    rng: np.random.Generator | None = None,
) -> ErosionStats:
    """Erode ``heightmap`` in place with a throwaway simulator."""

    zone = drop_zone or DropZone.for_heightmap(heightmap)
    gen = rng if rng is not None else np.random.default_rng()
    return DropletSimulator(params).erode(heightmap, zone, gen)

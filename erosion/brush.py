"""Precomputed erosion brushes: weighted disks around every grid cell."""

from __future__ import annotations

import logging
import math

logger = logging.getLogger(__name__)

BrushEntry = tuple[list[int], list[float]]


def _disk_entry(
    centre_x: int,
    centre_y: int,
    radius: int,
    width: int,
    height: int,
    *,
    clip: bool = True,
) -> tuple[list[tuple[int, int]], list[float]]:
    offsets: list[tuple[int, int]] = []
    weights: list[float] = []
    weight_sum = 0.0
    # dx = +-radius never satisfies the strict inequality, so the loop stays inside it.
    for dy in range(-radius + 1, radius):
        for dx in range(-radius + 1, radius):
            sqr_dst = dx * dx + dy * dy
            if sqr_dst >= radius * radius:
                continue
            if clip:
                x = centre_x + dx
                y = centre_y + dy
                if x < 0 or x >= width or y < 0 or y >= height:
                    continue
            weight = 1.0 - math.sqrt(sqr_dst) / radius
            weight_sum += weight
            offsets.append((dx, dy))
            weights.append(weight)
    return offsets, [w / weight_sum for w in weights]


class Brush:
    """Disk brush for one ``(radius, width, height)`` combination.

    Interior cells share a single translated template; cells whose disk
    would cross the grid edge are clipped, renormalised and memoised on
    first use.
    """

    def __init__(self, radius: int, width: int, height: int) -> None:
        if radius < 1:
            raise ValueError(f"erosion radius must be >= 1, got {radius}")
        if width <= 0 or height <= 0:
            raise ValueError("brush grid must have positive dimensions")
        self.radius = int(radius)
        self.width = int(width)
        self.height = int(height)
        offsets, self._template_weights = _disk_entry(0, 0, self.radius, 0, 0, clip=False)
        self._template_offsets = [dy * self.width + dx for dx, dy in offsets]
        self._edge_entries: dict[int, BrushEntry] = {}

    @property
    def key(self) -> tuple[int, int, int]:
        return self.radius, self.width, self.height

    def _is_interior(self, x: int, y: int) -> bool:
        reach = self.radius - 1
        return reach <= x < self.width - reach and reach <= y < self.height - reach

    def entry(self, index: int) -> BrushEntry:
        """Return ``(cell indices, weights)`` for the linear cell ``index``."""

        y, x = divmod(int(index), self.width)
        if self._is_interior(x, y):
            return [index + offset for offset in self._template_offsets], self._template_weights
        cached = self._edge_entries.get(index)
        if cached is None:
            offsets, weights = _disk_entry(x, y, self.radius, self.width, self.height)
            cached = ([(y + dy) * self.width + x + dx for dx, dy in offsets], weights)
            self._edge_entries[index] = cached
        return cached

    def entry_at(self, x: int, y: int) -> BrushEntry:
        return self.entry(y * self.width + x)


class BrushCache:
    """Holds the most recently built brush and rebuilds it when the key changes."""

    def __init__(self) -> None:
        self._brush: Brush | None = None
        self.builds = 0

    @property
    def key(self) -> tuple[int, int, int] | None:
        return self._brush.key if self._brush is not None else None

    def get(self, radius: int, width: int, height: int) -> Brush:
        if self._brush is None or self._brush.key != (radius, width, height):
            logger.debug("building erosion brush radius=%d for %dx%d grid", radius, width, height)
            self._brush = Brush(radius, width, height)
            self.builds += 1
        return self._brush

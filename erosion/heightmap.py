"""Heightmap grid that the erosion passes mutate in place."""

from __future__ import annotations

from dataclasses import dataclass
import math

import numpy as np

from erosion.vector import Vector2


class HeightmapError(ValueError):
    """Base class for heightmap misuse."""


class MismatchingSizeError(HeightmapError):
    """Raised when two heightmaps must share dimensions but do not."""


class OutOfBoundsError(HeightmapError, IndexError):
    """Raised when a coordinate falls outside the grid."""


@dataclass(eq=False)
class Heightmap:
    """Height values stored row-major as ``data[y, x]``.

    ``depth`` is the current vertical scale of the values and
    ``original_depth`` the scale the map was created with. ``metadata``
    stays ``None`` until the first :meth:`metadata_add`.
    """

    data: np.ndarray
    depth: float = 1.0
    original_depth: float | None = None
    metadata: dict[str, str] | None = None

    def __post_init__(self) -> None:
        data = np.asarray(self.data, dtype=np.float32)
        if data.ndim != 2:
            raise HeightmapError("heightmap data must be 2D")
        self.data = data
        self.depth = float(self.depth)
        if self.original_depth is None:
            self.original_depth = self.depth

    @classmethod
    def zeros(cls, width: int, height: int, *, depth: float = 1.0) -> "Heightmap":
        if width <= 0 or height <= 0:
            raise HeightmapError("width and height must be positive")
        return cls(np.zeros((height, width), dtype=np.float32), depth=depth)

    @classmethod
    def from_array(cls, values: np.ndarray, *, depth: float | None = None) -> "Heightmap":
        data = np.array(values, dtype=np.float32, copy=True)
        if depth is None:
            depth = float(np.max(data)) if data.size and float(np.max(data)) > 0.0 else 1.0
        return cls(data, depth=depth)

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def shape(self) -> tuple[int, int]:
        return self.width, self.height

    def copy(self) -> "Heightmap":
        return Heightmap(
            self.data.copy(),
            depth=self.depth,
            original_depth=self.original_depth,
            metadata=dict(self.metadata) if self.metadata is not None else None,
        )

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get(self, x: int, y: int) -> float | None:
        if not self.in_bounds(x, y):
            return None
        return float(self.data[y, x])

    def get_clamped(self, x: int, y: int) -> float:
        cx = min(max(int(x), 0), self.width - 1)
        cy = min(max(int(y), 0), self.height - 1)
        return float(self.data[cy, cx])

    def set(self, x: int, y: int, value: float) -> None:
        if not self.in_bounds(x, y):
            raise OutOfBoundsError(f"({x}, {y}) is outside a {self.width}x{self.height} heightmap")
        self.data[y, x] = value

    def gradient(self, x: int, y: int) -> Vector2:
        """Backward finite difference at an integer cell."""

        here = self.get_clamped(x, y)
        return Vector2(here - self.get_clamped(x - 1, y), here - self.get_clamped(x, y - 1))

    def _corners(self, position: Vector2) -> tuple[float, float, float, float, float, float]:
        if not (0.0 <= position.x <= self.width - 1 and 0.0 <= position.y <= self.height - 1):
            raise OutOfBoundsError(f"{position} is outside a {self.width}x{self.height} heightmap")
        cell_x = math.floor(position.x)
        cell_y = math.floor(position.y)
        nw = self.get_clamped(cell_x, cell_y)
        ne = self.get_clamped(cell_x + 1, cell_y)
        sw = self.get_clamped(cell_x, cell_y + 1)
        se = self.get_clamped(cell_x + 1, cell_y + 1)
        return nw, ne, sw, se, position.x - cell_x, position.y - cell_y

    def interpolated_height(self, position: Vector2) -> float:
        nw, ne, sw, se, fx, fy = self._corners(position)
        return nw * (1 - fx) * (1 - fy) + ne * fx * (1 - fy) + sw * (1 - fx) * fy + se * fx * fy

    def interpolated_gradient(self, position: Vector2) -> Vector2:
        nw, ne, sw, se, fx, fy = self._corners(position)
        return Vector2(
            (ne - nw) * (1 - fy) + (se - sw) * fy,
            (sw - nw) * (1 - fx) + (se - ne) * fx,
        )

    def height_and_gradient(self, position: Vector2) -> tuple[float, Vector2]:
        return self.interpolated_height(position), self.interpolated_gradient(position)

    def get_range(self) -> tuple[float, float]:
        return float(np.min(self.data)), float(np.max(self.data))

    def normalize(self) -> None:
        """Rescale in place so the lowest cell is 0 and the highest is 1."""

        lo, hi = self.get_range()
        if hi - lo <= 0.0:
            self.data[...] = 0.0
        else:
            self.data[...] = (self.data - lo) / (hi - lo)
        self.depth = 1.0

    def normalized(self) -> "Heightmap":
        result = self.copy()
        result.normalize()
        return result

    def set_range(self, new_min: float, new_max: float) -> None:
        old_min, old_max = self.get_range()
        if old_max - old_min <= 0.0:
            self.data[...] = new_min
        else:
            scale = (new_max - new_min) / (old_max - old_min)
            self.data[...] = (self.data.astype(np.float64) - old_min) * scale + new_min
        self.depth = float(new_max)

    def subtract(self, other: "Heightmap") -> "Heightmap":
        """Absolute per-cell difference between two equally sized maps."""

        if self.width != other.width or self.height != other.height:
            raise MismatchingSizeError(
                f"cannot subtract {other.width}x{other.height} from {self.width}x{self.height}"
            )
        diff = np.abs(self.data - other.data)
        return Heightmap(diff, depth=max(self.depth, other.depth))

    def metadata_add(self, key: str, value: str) -> None:
        if self.metadata is None:
            self.metadata = {}
        self.metadata[str(key)] = str(value)

    def total_height(self) -> float:
        return float(np.sum(self.data, dtype=np.float64))

    def average_height(self) -> float | None:
        if self.data.size == 0:
            return None
        return float(np.mean(self.data, dtype=np.float64))

    def to_u8(self) -> np.ndarray:
        scale = self.depth / 255.0 if self.depth > 0.0 else 1.0
        return np.clip(np.round(self.data / scale), 0, 255).astype(np.uint8)

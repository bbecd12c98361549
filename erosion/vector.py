"""Two-dimensional vector math used by the droplet model."""

from __future__ import annotations

from dataclasses import dataclass
import math


@dataclass(frozen=True)
class Vector2:
    x: float
    y: float

    @classmethod
    def zero(cls) -> "Vector2":
        return cls(0.0, 0.0)

    def __add__(self, other: "Vector2") -> "Vector2":
        return Vector2(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Vector2") -> "Vector2":
        return Vector2(self.x - other.x, self.y - other.y)

    def __mul__(self, scalar: float) -> "Vector2":
        return Vector2(self.x * scalar, self.y * scalar)

    __rmul__ = __mul__

    def __neg__(self) -> "Vector2":
        return Vector2(-self.x, -self.y)

    def magnitude(self) -> float:
        return math.hypot(self.x, self.y)

    def is_zero(self) -> bool:
        return self.x == 0.0 and self.y == 0.0

    def normalized(self) -> "Vector2":
        """Return the unit vector pointing the same way."""

        length = self.magnitude()
        if length <= 0.0:
            raise ValueError("cannot normalize a zero length vector")
        return Vector2(self.x / length, self.y / length)

    def lerp(self, other: "Vector2", t: float) -> "Vector2":
        return self * (1.0 - t) + other * t

    def floor(self) -> tuple[int, int]:
        """Integer cell containing this point; negative cells are rejected."""

        ix = math.floor(self.x)
        iy = math.floor(self.y)
        if ix < 0 or iy < 0:
            raise ValueError(f"{self} has no non-negative cell")
        return ix, iy

import math

import pytest

from erosion.vector import Vector2


def test_arithmetic() -> None:
    a = Vector2(1.0, 2.0)
    b = Vector2(0.5, -1.0)

    assert a + b == Vector2(1.5, 1.0)
    assert a - b == Vector2(0.5, 3.0)
    assert a * 2.0 == Vector2(2.0, 4.0)
    assert 2.0 * a == Vector2(2.0, 4.0)
    assert -a == Vector2(-1.0, -2.0)


def test_normalized_has_unit_length() -> None:
    v = Vector2(3.0, 4.0).normalized()

    assert math.isclose(v.magnitude(), 1.0)
    assert math.isclose(v.x, 0.6)


def test_zero_vector_cannot_be_normalized() -> None:
    assert Vector2.zero().is_zero()
    with pytest.raises(ValueError):
        Vector2.zero().normalized()


def test_floor_rejects_negative_cells() -> None:
    assert Vector2(2.9, 0.1).floor() == (2, 0)
    with pytest.raises(ValueError):
        Vector2(-0.5, 1.0).floor()


def test_lerp_midpoint() -> None:
    assert Vector2(0.0, 0.0).lerp(Vector2(2.0, 4.0), 0.5) == Vector2(1.0, 2.0)

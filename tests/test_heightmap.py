from __future__ import annotations

import numpy as np
import pytest

from erosion.heightmap import Heightmap, MismatchingSizeError, OutOfBoundsError
from erosion.vector import Vector2


def _ramp() -> Heightmap:
    return Heightmap(np.array([[0.0, 2.0], [4.0, 8.0]], dtype=np.float32), depth=8.0)


def test_layout_is_row_major() -> None:
    hm = Heightmap.zeros(3, 2)
    hm.set(2, 1, 5.0)

    assert hm.shape == (3, 2)
    assert hm.data.shape == (2, 3)
    assert hm.data[1, 2] == np.float32(5.0)
    assert hm.get(2, 1) == 5.0


def test_get_out_of_bounds_is_none_and_set_raises() -> None:
    hm = Heightmap.zeros(4, 4)

    assert hm.get(4, 0) is None
    assert hm.get(-1, 0) is None
    with pytest.raises(OutOfBoundsError):
        hm.set(0, 4, 1.0)
    with pytest.raises(IndexError):
        hm.set(-1, 0, 1.0)


def test_normalize_maps_range_to_unit_interval() -> None:
    hm = _ramp()
    hm.normalize()

    assert hm.get_range() == (0.0, 1.0)
    assert hm.depth == 1.0
    assert hm.original_depth == 8.0
    np.testing.assert_allclose(hm.data, [[0.0, 0.25], [0.5, 1.0]])


def test_normalize_constant_grid_has_no_nan() -> None:
    hm = Heightmap(np.full((5, 5), 3.0, dtype=np.float32))
    hm.normalize()

    assert np.isfinite(hm.data).all()
    assert float(hm.data.max()) == 0.0


def test_normalized_leaves_original_untouched() -> None:
    hm = _ramp()
    out = hm.normalized()

    assert hm.get_range() == (0.0, 8.0)
    assert out.get_range() == (0.0, 1.0)


def test_set_range() -> None:
    hm = _ramp()
    hm.set_range(-1.0, 3.0)

    lo, hi = hm.get_range()
    assert lo == pytest.approx(-1.0)
    assert hi == pytest.approx(3.0)
    assert hm.depth == 3.0


def test_subtract_is_absolute_difference() -> None:
    a = _ramp()
    b = Heightmap(np.array([[1.0, 1.0], [1.0, 1.0]], dtype=np.float32))

    diff = a.subtract(b)
    np.testing.assert_allclose(diff.data, [[1.0, 1.0], [3.0, 7.0]])
    assert diff.depth == 8.0


def test_subtract_requires_matching_size() -> None:
    with pytest.raises(MismatchingSizeError):
        Heightmap.zeros(4, 4).subtract(Heightmap.zeros(4, 5))
    with pytest.raises(ValueError):
        Heightmap.zeros(4, 4).subtract(Heightmap.zeros(3, 4))


def test_bilinear_height_and_gradient() -> None:
    hm = Heightmap(np.array([[0.0, 1.0], [2.0, 3.0]], dtype=np.float32))

    height, gradient = hm.height_and_gradient(Vector2(0.5, 0.5))
    assert height == pytest.approx(1.5)
    assert gradient.x == pytest.approx(1.0)
    assert gradient.y == pytest.approx(2.0)
    assert hm.interpolated_height(Vector2(1.0, 1.0)) == pytest.approx(3.0)


def test_sampling_outside_grid_raises() -> None:
    hm = Heightmap.zeros(4, 4)

    with pytest.raises(OutOfBoundsError):
        hm.interpolated_height(Vector2(3.5, 0.0))
    with pytest.raises(OutOfBoundsError):
        hm.interpolated_gradient(Vector2(-0.1, 1.0))


def test_gradient_uses_backward_difference() -> None:
    hm = _ramp()

    g = hm.gradient(1, 1)
    assert g == Vector2(4.0, 6.0)
    assert hm.gradient(0, 0) == Vector2(0.0, 0.0)


def test_metadata_is_created_lazily() -> None:
    hm = Heightmap.zeros(2, 2)
    assert hm.metadata is None

    hm.metadata_add("erosion_radius", 3)
    assert hm.metadata == {"erosion_radius": "3"}
    assert hm.copy().metadata == {"erosion_radius": "3"}


def test_totals() -> None:
    hm = _ramp()

    assert hm.total_height() == 14.0
    assert hm.average_height() == 3.5
    assert hm.to_u8().max() == 255

from __future__ import annotations

import pytest

from erosion.brush import Brush, BrushCache


@pytest.mark.parametrize("radius", [1, 2, 3, 5])
def test_weights_sum_to_one_everywhere(radius: int) -> None:
    brush = Brush(radius, 12, 9)

    for y in range(brush.height):
        for x in range(brush.width):
            indices, weights = brush.entry_at(x, y)
            assert sum(weights) == pytest.approx(1.0, abs=1e-5)
            assert all(0 <= i < 12 * 9 for i in indices)
            assert len(indices) == len(weights)


def test_interior_disk_shape() -> None:
    brush = Brush(3, 20, 20)
    indices, weights = brush.entry_at(10, 10)

    assert len(indices) == 25
    centre = indices.index(10 * 20 + 10)
    assert weights[centre] == max(weights)


def test_corner_disk_is_clipped() -> None:
    brush = Brush(3, 20, 20)
    indices, _ = brush.entry_at(0, 0)

    assert len(indices) == 9
    assert sorted(indices) == sorted(y * 20 + x for y in range(3) for x in range(3))


def test_radius_one_touches_only_the_node() -> None:
    brush = Brush(1, 4, 4)

    assert brush.entry_at(0, 3) == ([12], [1.0])


def test_invalid_radius() -> None:
    with pytest.raises(ValueError):
        Brush(0, 8, 8)


def test_cache_rebuilds_only_on_key_change() -> None:
    cache = BrushCache()
    first = cache.get(3, 16, 16)

    assert cache.get(3, 16, 16) is first
    assert cache.builds == 1

    second = cache.get(3, 16, 8)
    assert second is not first
    assert cache.key == (3, 16, 8)
    assert cache.builds == 2

"""Synthetic starting terrains for erosion runs."""

from __future__ import annotations

from enum import Enum

import numpy as np

from erosion.config import DEFAULT_DEPTH
from erosion.heightmap import Heightmap


class HeightmapPreset(str, Enum):
    FLAT = "flat"
    CENTERED_HILL = "centered_hill"
    X_SIN_WAVE = "x_sin_wave"
    FBM = "fbm"


def _smoothstep(t: np.ndarray) -> np.ndarray:
    return t * t * (3.0 - 2.0 * t)


def value_noise_2d(
    width: int,
    height: int,
    rng: np.random.Generator,
    *,
    res_x: int,
    res_y: int,
) -> np.ndarray:
    """Generate value noise in [-1, 1] from a coarse random lattice."""

    if width <= 0 or height <= 0:
        raise ValueError("width and height must be positive")
    if res_x < 1 or res_y < 1:
        raise ValueError("res_x and res_y must be >= 1")

    lattice = rng.uniform(-1.0, 1.0, size=(res_y + 1, res_x + 1)).astype(np.float32)
    xs = np.linspace(0.0, float(res_x), num=width, endpoint=False, dtype=np.float32)
    ys = np.linspace(0.0, float(res_y), num=height, endpoint=False, dtype=np.float32)

    x0 = np.floor(xs).astype(np.int32)
    y0 = np.floor(ys).astype(np.int32)
    x1 = np.minimum(x0 + 1, res_x)
    y1 = np.minimum(y0 + 1, res_y)
    tx = _smoothstep(xs - x0)[None, :]
    ty = _smoothstep(ys - y0)[:, None]

    top = lattice[y0[:, None], x0[None, :]] * (1.0 - tx) + lattice[y0[:, None], x1[None, :]] * tx
    bottom = lattice[y1[:, None], x0[None, :]] * (1.0 - tx) + lattice[y1[:, None], x1[None, :]] * tx
    return (top * (1.0 - ty) + bottom * ty).astype(np.float32)


def fbm_noise(
    width: int,
    height: int,
    rng: np.random.Generator,
    *,
    base_res: int = 2,
    octaves: int = 5,
    lacunarity: float = 2.0,
    gain: float = 0.5,
) -> np.ndarray:
    """Layered value noise in approximately [-1, 1]."""

    result = np.zeros((height, width), dtype=np.float32)
    amplitude = 1.0
    total_amplitude = 0.0
    aspect = width / max(height, 1)

    for octave in range(octaves):
        res_y = max(1, int(round(base_res * lacunarity**octave)))
        res_x = max(1, int(round(res_y * aspect)))
        result += amplitude * value_noise_2d(width, height, rng, res_x=res_x, res_y=res_y)
        total_amplitude += amplitude
        amplitude *= gain

    if total_amplitude == 0:
        return result
    return (result / total_amplitude).astype(np.float32)


def centered_hill(width: int, height: int) -> np.ndarray:
    """Cone that peaks at 1 in the middle and falls to 0 at the inscribed circle."""

    yy, xx = np.indices((height, width), dtype=np.float32)
    cx = (width - 1) / 2.0
    cy = (height - 1) / 2.0
    radius = max(min(width, height) / 2.0, 1.0)
    dist = np.hypot(xx - cx, yy - cy) / radius
    return np.clip(1.0 - dist, 0.0, 1.0).astype(np.float32)


def x_sin_wave(width: int, height: int, *, periods: float = 4.0) -> np.ndarray:
    """Ridges running along y whose height varies with x."""

    xs = np.arange(width, dtype=np.float32) / max(width, 1)
    row = 0.5 + 0.5 * np.sin(xs * np.float32(2.0 * np.pi * periods))
    return np.broadcast_to(row[None, :], (height, width)).astype(np.float32)


def create_heightmap(
    preset: HeightmapPreset | str,
    width: int,
    height: int,
    *,
    rng: np.random.Generator | None = None,
    depth: float = DEFAULT_DEPTH,
) -> Heightmap:
    """Build a heightmap whose values lie in ``[0, depth]``."""

    preset = HeightmapPreset(preset)
    if width <= 0 or height <= 0:
        raise ValueError("width and height must be positive")

    if preset is HeightmapPreset.FLAT:
        values = np.zeros((height, width), dtype=np.float32)
    elif preset is HeightmapPreset.CENTERED_HILL:
        values = centered_hill(width, height)
    elif preset is HeightmapPreset.X_SIN_WAVE:
        values = x_sin_wave(width, height)
    else:
        gen = rng if rng is not None else np.random.default_rng()
        values = fbm_noise(width, height, gen) * 0.5 + 0.5

    heightmap = Heightmap(np.clip(values, 0.0, 1.0) * np.float32(depth), depth=depth)
    heightmap.metadata_add("preset", preset.value)
    return heightmap

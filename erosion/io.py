"""Serialization of heightmaps and run artifacts."""

from __future__ import annotations

import json
from pathlib import Path
import shutil
from typing import Any

import numpy as np
from PIL import Image

from erosion.heightmap import Heightmap, HeightmapError


def resolve_output_dir(
    out_root: str | Path,
    run_name: str,
    width: int,
    height: int,
    *,
    overwrite: bool,
) -> Path:
    """Create and return the output directory for one erosion run."""

    target = Path(out_root) / run_name / f"{width}x{height}"
    if target.exists() and any(target.iterdir()) and not overwrite:
        raise FileExistsError(
            f"Output directory already exists and is not empty: {target}. Use --overwrite to replace files."
        )
    target.mkdir(parents=True, exist_ok=True)
    return target


def safe_clean_output_dir(target: Path, *, out_root: Path, project_root: Path) -> None:
    """Delete all children of target; target must sit under out_root, and out_root under project_root."""

    out_root_r = out_root.resolve()
    target_r = target.resolve()
    target_r.relative_to(out_root_r)
    out_root_r.relative_to(project_root.resolve())

    if not target_r.exists():
        target_r.mkdir(parents=True, exist_ok=True)
        return

    for child in target_r.iterdir():
        if child.is_symlink() or child.is_file():
            child.unlink()
        elif child.is_dir():
            shutil.rmtree(child)


def move_tree_contents(src_dir: Path, dst_dir: Path) -> None:
    for child in src_dir.iterdir():
        shutil.move(str(child), str(dst_dir / child.name))


def write_height_npy(path: str | Path, heightmap: Heightmap) -> None:
    np.save(Path(path), heightmap.data.astype(np.float32), allow_pickle=False)


def read_height_npy(path: str | Path, *, depth: float | None = None) -> Heightmap:
    try:
        values = np.load(Path(path), allow_pickle=False)
    except (ValueError, EOFError) as exc:
        raise HeightmapError(f"{path} is not a readable .npy array: {exc}") from exc
    if values.ndim != 2:
        raise HeightmapError(f"{path} does not hold a 2D array")
    return Heightmap.from_array(values, depth=depth)


def heightmap_to_dict(heightmap: Heightmap) -> dict[str, Any]:
    return {
        "width": heightmap.width,
        "height": heightmap.height,
        "depth": heightmap.depth,
        "original_depth": heightmap.original_depth,
        "data": heightmap.data.astype(float).tolist(),
        "metadata": heightmap.metadata,
    }


def heightmap_from_dict(payload: dict[str, Any]) -> Heightmap:
    try:
        width = int(payload["width"])
        height = int(payload["height"])
        data = np.asarray(payload["data"], dtype=np.float32)
    except (KeyError, TypeError, ValueError) as exc:
        raise HeightmapError(f"malformed heightmap payload: {exc}") from exc
    if data.shape != (height, width):
        raise HeightmapError(f"data shape {data.shape} does not match {width}x{height}")
    metadata = payload.get("metadata")
    return Heightmap(
        data,
        depth=float(payload.get("depth", 1.0)),
        original_depth=payload.get("original_depth"),
        metadata={str(k): str(v) for k, v in metadata.items()} if metadata else None,
    )


def write_heightmap_json(path: str | Path, heightmap: Heightmap) -> None:
    write_json(path, heightmap_to_dict(heightmap))


def read_heightmap_json(path: str | Path) -> Heightmap:
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HeightmapError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise HeightmapError(f"{path} does not hold a heightmap object")
    return heightmap_from_dict(payload)


def read_heightmap(path: str | Path) -> Heightmap:
    """Load a heightmap from ``.npy`` or ``.json`` by extension."""

    suffix = Path(path).suffix.lower()
    if suffix == ".npy":
        return read_height_npy(path)
    if suffix == ".json":
        return read_heightmap_json(path)
    raise HeightmapError(f"unsupported heightmap format: {suffix or path}")


def write_png_u16(path: str | Path, raster_u16: np.ndarray) -> None:
    image = Image.fromarray(raster_u16.astype(np.uint16))
    image.save(Path(path))


def write_png_u8(path: str | Path, raster_u8: np.ndarray) -> None:
    image = Image.fromarray(raster_u8.astype(np.uint8))
    image.save(Path(path))


def write_json(path: str | Path, payload: dict[str, Any]) -> None:
    text = json.dumps(payload, indent=2, sort_keys=True)
    Path(path).write_text(text + "\n", encoding="utf-8")

from __future__ import annotations

import json

from PIL import Image
import numpy as np
import pytest

from erosion.derive import difference_preview_u8, height_preview_u16
from erosion.heightmap import Heightmap, HeightmapError
from erosion.io import (
    read_height_npy,
    read_heightmap,
    read_heightmap_json,
    resolve_output_dir,
    safe_clean_output_dir,
    write_height_npy,
    write_heightmap_json,
    write_png_u16,
    write_png_u8,
)
from erosion.presets import create_heightmap


def test_npy_keeps_values(tmp_path) -> None:
    hm = create_heightmap("centered_hill", 20, 12)
    path = tmp_path / "hill.npy"
    write_height_npy(path, hm)

    loaded = read_height_npy(path)
    assert loaded.shape == (20, 12)
    assert np.array_equal(loaded.data, hm.data)
    assert loaded.depth == pytest.approx(float(hm.data.max()))


def test_json_keeps_depth_and_metadata(tmp_path) -> None:
    hm = Heightmap(np.array([[0.0, 0.5], [1.0, 2.0]], dtype=np.float32), depth=2.0, original_depth=4.0)
    hm.metadata_add("erosion_method", "Subdivision")
    path = tmp_path / "map.json"
    write_heightmap_json(path, hm)

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["width"] == 2
    assert payload["height"] == 2

    loaded = read_heightmap(path)
    assert np.array_equal(loaded.data, hm.data)
    assert loaded.depth == 2.0
    assert loaded.original_depth == 4.0
    assert loaded.metadata == {"erosion_method": "Subdivision"}


def test_malformed_json_is_rejected(tmp_path) -> None:
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"width": 3, "height": 2, "data": [[0.0, 1.0]]}), encoding="utf-8")

    with pytest.raises(HeightmapError):
        read_heightmap_json(path)


def test_unknown_extension_is_rejected(tmp_path) -> None:
    with pytest.raises(HeightmapError):
        read_heightmap(tmp_path / "map.tiff")


def test_output_dir_refuses_to_overwrite(tmp_path) -> None:
    target = resolve_output_dir(tmp_path, "run", 8, 8, overwrite=False)
    (target / "stale.txt").write_text("x", encoding="utf-8")

    with pytest.raises(FileExistsError):
        resolve_output_dir(tmp_path, "run", 8, 8, overwrite=False)
    assert resolve_output_dir(tmp_path, "run", 8, 8, overwrite=True) == target


def test_previews_encode_expected_modes(tmp_path) -> None:
    hm = create_heightmap("x_sin_wave", 24, 16)
    base = hm.copy()
    hm.set(3, 3, 0.0)

    write_png_u16(tmp_path / "height_16.png", height_preview_u16(hm))
    write_png_u8(tmp_path / "difference.png", difference_preview_u8(hm.subtract(base)))

    with Image.open(tmp_path / "height_16.png") as image:
        assert image.mode in {"I", "I;16"}
        assert image.size == (24, 16)
    with Image.open(tmp_path / "difference.png") as image:
        assert image.mode == "L"
        assert np.asarray(image).max() == 255


def test_clean_output_dir_stays_inside_roots(tmp_path) -> None:
    project = tmp_path / "project"
    out_root = project / "out"
    target = resolve_output_dir(out_root, "run", 8, 8, overwrite=False)
    (target / "stale.txt").write_text("x", encoding="utf-8")
    outside = tmp_path / "elsewhere"
    outside.mkdir()
    (outside / "keep.txt").write_text("x", encoding="utf-8")

    with pytest.raises(ValueError):
        safe_clean_output_dir(outside, out_root=out_root, project_root=project)
    with pytest.raises(ValueError):
        safe_clean_output_dir(outside, out_root=outside, project_root=project)
    assert (outside / "keep.txt").exists()

    safe_clean_output_dir(target, out_root=out_root, project_root=project)
    assert list(target.iterdir()) == []

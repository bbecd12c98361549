"""CLI entry point for droplet erosion runs."""

from __future__ import annotations

import argparse
from dataclasses import asdict, replace
from datetime import datetime, timezone
import logging
from pathlib import Path
import platform
import shutil
import tempfile

import numpy as np

from erosion.config import (
    DEFAULT_DROP_ZONE_ATTEMPTS,
    DEFAULT_GRID_SIZE,
    DEFAULT_SIZE,
    DEFAULT_SUBDIVISIONS,
    GAUSSIAN_DEFAULT_BOUNDARY_THICKNESS,
    GAUSSIAN_DEFAULT_SIGMA,
    Parameters,
    PartitionConfig,
    PartitionMethod,
    RunConfig,
)
from erosion.derive import difference_preview_u8, height_preview_u16
from erosion.droplet import DropZone
from erosion.heightmap import HeightmapError
from erosion.io import (
    move_tree_contents,
    read_heightmap,
    resolve_output_dir,
    safe_clean_output_dir,
    write_height_npy,
    write_heightmap_json,
    write_json,
    write_png_u16,
    write_png_u8,
)
from erosion.metrics import erosion_metrics, height_summary, isoline_metrics, seam_discontinuity
from erosion.partitioning import PartitionedErosionRunner
from erosion.presets import HeightmapPreset, create_heightmap
from erosion.rng import RngStream

# flag name -> Parameters field
PARAM_FLAGS: dict[str, tuple[str, type]] = {
    "--erosion-radius": ("erosion_radius", int),
    "--inertia": ("inertia", float),
    "--sediment-capacity-factor": ("sediment_capacity_factor", float),
    "--min-sediment-capacity": ("min_sediment_capacity", float),
    "--erode-speed": ("erode_speed", float),
    "--deposit-speed": ("deposit_speed", float),
    "--evaporate-speed": ("evaporate_speed", float),
    "--gravity": ("gravity", float),
    "--max-lifetime": ("max_droplet_lifetime", int),
    "--initial-water": ("initial_water_volume", float),
    "--initial-speed": ("initial_speed", float),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Droplet hydraulic erosion on heightmaps")
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--preset",
        choices=[p.value for p in HeightmapPreset],
        default=HeightmapPreset.FBM.value,
        help="Synthetic starting terrain",
    )
    source.add_argument("--input", type=Path, help="Heightmap to erode (.npy or .json)")
    parser.add_argument("--size", type=int, default=DEFAULT_SIZE, help="Side length of preset heightmaps")
    parser.add_argument(
        "--method",
        choices=[m.value for m in PartitionMethod],
        default=PartitionMethod.SUBDIVISION.value,
        help="Partitioning strategy",
    )
    parser.add_argument("--subdivisions", type=int, default=DEFAULT_SUBDIVISIONS, help="Tiles per axis are 2^s")
    parser.add_argument("--grid-size", type=int, default=DEFAULT_GRID_SIZE, help="Cells per axis for grid blending")
    parser.add_argument("--blur-sigma", type=float, default=GAUSSIAN_DEFAULT_SIGMA)
    parser.add_argument("--blur-thickness", type=int, default=GAUSSIAN_DEFAULT_BOUNDARY_THICKNESS)
    parser.add_argument("--iterations", type=int, default=None, help="Total number of droplets")
    parser.add_argument("--seed", type=int, default=None, help="Integer seed; random when omitted")
    parser.add_argument("--drop-zone-attempts", type=int, default=DEFAULT_DROP_ZONE_ATTEMPTS)
    for flag, (name, kind) in PARAM_FLAGS.items():
        parser.add_argument(flag, dest=name, type=kind, default=None)
    parser.add_argument("--workers", type=int, default=None, help="Maximum tile workers")
    parser.add_argument("--executor", choices=("process", "thread"), default="process")
    parser.add_argument("--out", default="out", help="Output root directory")
    parser.add_argument("--overwrite", action="store_true", help="Overwrite files in existing output directory")
    parser.add_argument(
        "--json",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Write metadata JSON files",
    )
    parser.add_argument("--export-json", action="store_true", help="Also write the eroded heightmap as JSON")
    parser.add_argument("--isoline", type=float, default=None, help="Report flooded areas around this height")
    parser.add_argument("--isoline-error", type=float, default=0.01, help="Tolerance for isoline cells")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    return parser


def _seam_slices(partition: PartitionConfig) -> int:
    if partition.method is PartitionMethod.DEFAULT:
        return 1
    if partition.method is PartitionMethod.GRID_OVERLAP_BLEND:
        return partition.grid_size
    return 2**partition.subdivisions


def _parameters_from_args(args: argparse.Namespace) -> Parameters:
    overrides = {name: getattr(args, name) for name, _ in PARAM_FLAGS.values() if getattr(args, name) is not None}
    if args.iterations is not None:
        overrides["num_iterations"] = args.iterations
    return replace(Parameters(), **overrides)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        params = _parameters_from_args(args)
        partition = PartitionConfig(
            method=PartitionMethod(args.method),
            subdivisions=args.subdivisions,
            grid_size=args.grid_size,
            blur_sigma=args.blur_sigma,
            blur_boundary_thickness=args.blur_thickness,
            executor=args.executor,
            max_workers=args.workers,
        )
    except ValueError as exc:
        parser.error(str(exc))
    if args.size <= 0:
        parser.error("--size must be positive")
    if args.isoline_error < 0.0:
        parser.error("--isoline-error must be non-negative")

    rng = RngStream(args.seed) if args.seed is not None else RngStream.from_entropy()
    config = RunConfig(
        seed=rng.seed,
        drop_zone_attempts=args.drop_zone_attempts,
        params=params,
        partition=partition,
    )

    if args.input is not None:
        try:
            base = read_heightmap(args.input)
        except (OSError, HeightmapError) as exc:
            parser.error(f"cannot read {args.input}: {exc}")
        source_name = args.input.stem
    else:
        base = create_heightmap(args.preset, args.size, args.size, rng=rng.fork("preset").generator())
        source_name = args.preset

    eroded = base.copy()
    try:
        drop_zone = DropZone.for_heightmap(eroded, max_attempts=config.drop_zone_attempts)
        report = PartitionedErosionRunner(partition).run_method(
            eroded,
            params,
            drop_zone,
            rng=rng.fork("erosion"),
        )
    except ValueError as exc:
        parser.error(str(exc))
    difference = eroded.subtract(base)

    run_name = f"{source_name}-{partition.method.value}-{rng.seed}"
    out_dir = resolve_output_dir(args.out, run_name, base.width, base.height, overwrite=args.overwrite)

    stage_dir = Path(tempfile.mkdtemp(prefix=".staging-", dir=str(out_dir.parent)))
    try:
        write_height_npy(stage_dir / "base.npy", base)
        write_height_npy(stage_dir / "eroded.npy", eroded)
        write_height_npy(stage_dir / "difference.npy", difference)
        write_png_u16(stage_dir / "base_16.png", height_preview_u16(base))
        write_png_u16(stage_dir / "eroded_16.png", height_preview_u16(eroded))
        write_png_u8(stage_dir / "difference.png", difference_preview_u8(difference))
        if args.export_json:
            write_heightmap_json(stage_dir / "eroded.json", eroded)
        seam_slices = _seam_slices(partition)
        if args.json:
            deterministic_meta = {
                "source": source_name,
                "width": base.width,
                "height": base.height,
                "seed": rng.seed,
                "config": config.to_dict(),
                "metadata": eroded.metadata or {},
                "passes": [asdict(p) for p in report.passes],
                "stats": asdict(report.stats),
                "metrics": {
                    "base": asdict(height_summary(base)),
                    "eroded": asdict(height_summary(eroded)),
                    "change": asdict(erosion_metrics(base, eroded)),
                    "seam_slices": seam_slices,
                    "seam_discontinuity": seam_discontinuity(eroded, seam_slices),
                },
            }
            if args.isoline is not None:
                deterministic_meta["isoline"] = asdict(isoline_metrics(eroded, args.isoline, args.isoline_error))
            meta = {
                **deterministic_meta,
                "generated_at_utc": datetime.now(timezone.utc).isoformat(),
                "erosion_seconds": report.seconds,
                "python_version": platform.python_version(),
                "numpy_version": np.__version__,
            }
            write_json(stage_dir / "deterministic_meta.json", deterministic_meta)
            write_json(stage_dir / "meta.json", meta)

        safe_clean_output_dir(out_dir, out_root=Path(args.out), project_root=Path.cwd())
        move_tree_contents(stage_dir, out_dir)
    finally:
        shutil.rmtree(stage_dir, ignore_errors=True)

    change = erosion_metrics(base, eroded)
    print(f"Eroded heightmap: {out_dir}")
    print(
        f"Method {partition.method.label}: tiles={report.tile_count}, "
        f"droplets={report.stats.droplets}, steps={report.stats.steps}"
        + (" (drop zone exhausted)" if report.stats.exhausted else "")
    )
    print(
        "Material: "
        f"eroded={report.stats.eroded:.4f}, deposited={report.stats.deposited:.4f}, "
        f"changed cells={change.changed_fraction * 100.0:.2f}%"
    )
    print(f"Erosion time: {report.seconds:.3f} s ({base.width}x{base.height})")
    file_count = sum(1 for child in out_dir.iterdir() if child.is_file())
    print(f"Output files: {file_count}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import argparse
import logging
import math
import sys
from pathlib import Path

from .errors import TilesetSampleError
from .generator import SampleGenerator
from .io import WriteOptions
from .samples import SampleConfig, create_default_registry

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
    root_logger.addHandler(handler)
    return root_logger


def _finite_number(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Not a number: {value}") from exc
    if not math.isfinite(parsed):
        raise argparse.ArgumentTypeError(f"Not a finite number: {value}")
    return parsed


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    registry = create_default_registry()
    defaults = SampleConfig()
    parser = argparse.ArgumentParser(
        description="Generate 3D Tiles sample tilesets (discrete LOD, instanced billboards) from source GLB models.",
    )
    parser.add_argument("--output", type=Path, default=Path("output"), help="Output root; samples go to <output>/Samples/<name>")
    parser.add_argument("--data-dir", type=Path, default=Path("data"), help="Directory holding the source .glb models (default: data)")
    parser.add_argument(
        "--sample",
        dest="samples",
        action="append",
        choices=registry.sample_ids(),
        default=None,
        help="Sample to generate (repeatable, default: all)",
    )
    parser.add_argument("--gltf", action="store_true", help="Write .gltf tiles instead of .glb")
    parser.add_argument("--external-buffers", action="store_true", help="With --gltf, write buffers to sibling .bin files")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON (indent=2)")
    parser.add_argument("--gzip", action="store_true", help="Gzip every written file")
    parser.add_argument("--seed", type=int, default=defaults.seed, help="Seed for instance placement (default: 0)")
    parser.add_argument("--longitude", type=_finite_number, default=defaults.longitude, help="Origin longitude in degrees")
    parser.add_argument("--latitude", type=_finite_number, default=defaults.latitude, help="Origin latitude in degrees")
    parser.add_argument("--tile-width", type=_finite_number, default=defaults.tile_width, help="Instanced tile width in meters (default: 200)")
    parser.add_argument("--asset-version", default=defaults.asset_version, help="tileset asset.version (default: 1.0)")
    parser.add_argument("--jobs", type=int, default=1, help="Samples generated in parallel (default: 1)")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    config = SampleConfig(
        longitude=args.longitude,
        latitude=args.latitude,
        tile_width=args.tile_width,
        asset_version=args.asset_version,
        use_glb=not args.gltf,
        seed=args.seed,
    )
    options = WriteOptions(
        pretty_print=args.pretty,
        compress=args.gzip,
        embed_binary_inline=not args.external_buffers,
    )
    generator = SampleGenerator(create_default_registry(), config=config, options=options)
    results = generator.generate(args.output, args.data_dir, sample_ids=args.samples, jobs=args.jobs)

    failed = [r for r in results if r.status == "failed"]
    for result in failed:
        print(f"error: {result.name}: {result.error}", file=sys.stderr)
    return 1 if failed else 0


def run() -> None:
    try:
        raise SystemExit(main())
    except TilesetSampleError as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(2)


if __name__ == "__main__":
    run()

"""CLI entry point for service-flow simulation."""

from __future__ import annotations

import argparse
from datetime import datetime, timezone
import logging
from pathlib import Path
import platform
import shutil
import tempfile
import time

import numpy as np

from span.config import (
    BENEFIT_TYPES,
    CAPACITY_TYPES,
    DEFAULT_DOWNSCALING_FACTOR,
    DEFAULT_RV_MAX_STATES,
    DEFAULT_SINK_THRESHOLD,
    DEFAULT_SOURCE_THRESHOLD,
    DEFAULT_TRANS_THRESHOLD,
    DEFAULT_USE_THRESHOLD,
    SpanConfig,
    SpanConfigError,
)
from span.core import run_span
from span.derive import float_preview_u8
from span.io import (
    clean_output_dir,
    layer_file_stem,
    load_layer,
    move_tree_contents,
    resolve_output_dir,
    write_json,
    write_layer_npy,
    write_png_u8,
)
from span.models import available_models
from span.preprocess import scaled_dimensions


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Simulate ecosystem-service flow from sources to uses")
    parser.add_argument("--source", required=True, help="Source layer (.npy of cell means)")
    parser.add_argument("--source-sd", help="Optional source standard deviations (.npy)")
    parser.add_argument("--use", required=True, help="Use layer (.npy of cell means)")
    parser.add_argument("--use-sd", help="Optional use standard deviations (.npy)")
    parser.add_argument("--sink", help="Optional sink layer (.npy of cell means)")
    parser.add_argument("--sink-sd", help="Optional sink standard deviations (.npy)")
    parser.add_argument(
        "--flow-layer",
        action="append",
        default=[],
        metavar="NAME=PATH",
        help="Flow feature layer, e.g. Altitude=dem.npy or Hydrosheds=d8.npy (repeatable)",
    )
    parser.add_argument("--flow-model", required=True, choices=available_models(), help="Flow propagation model")
    parser.add_argument("--source-threshold", type=float, default=DEFAULT_SOURCE_THRESHOLD)
    parser.add_argument("--sink-threshold", type=float, default=DEFAULT_SINK_THRESHOLD)
    parser.add_argument("--use-threshold", type=float, default=DEFAULT_USE_THRESHOLD)
    parser.add_argument("--trans-threshold", type=float, default=DEFAULT_TRANS_THRESHOLD)
    parser.add_argument("--rv-max-states", type=int, default=DEFAULT_RV_MAX_STATES)
    parser.add_argument("--downscaling-factor", type=float, default=float(DEFAULT_DOWNSCALING_FACTOR))
    parser.add_argument("--source-type", choices=CAPACITY_TYPES, default="finite")
    parser.add_argument("--sink-type", choices=CAPACITY_TYPES, default="finite")
    parser.add_argument("--use-type", choices=CAPACITY_TYPES, default="finite")
    parser.add_argument("--benefit-type", choices=BENEFIT_TYPES, default="rival")
    parser.add_argument("--interactive", action="store_true", help="Browse result layers in a text menu")
    parser.add_argument("--out", default="out", help="Output root directory")
    parser.add_argument("--overwrite", action="store_true", help="Overwrite files in existing output directory")
    parser.add_argument(
        "--json",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Write metadata JSON files",
    )
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        default="WARNING",
        help="Logging verbosity",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s %(name)s %(levelname)s %(message)s")

    flow_paths: dict[str, str] = {}
    for item in args.flow_layer:
        name, sep, path = item.partition("=")
        if not sep or not name or not path:
            parser.error(f"--flow-layer expects NAME=PATH, got {item!r}")
        flow_paths[name] = path

    states = max(args.rv_max_states, 1)
    try:
        source = load_layer(args.source, args.source_sd, states=states)
        use = load_layer(args.use, args.use_sd, states=states)
        sink = load_layer(args.sink, args.sink_sd, states=states) if args.sink else None
        flow_layers = {name: load_layer(path) for name, path in flow_paths.items()}
    except (OSError, ValueError) as exc:
        parser.error(str(exc))

    downscaling = args.downscaling_factor
    if float(downscaling).is_integer():
        downscaling = int(downscaling)

    config = SpanConfig(
        source_layer=source,
        use_layer=use,
        sink_layer=sink,
        flow_layers=flow_layers,
        source_threshold=args.source_threshold,
        sink_threshold=args.sink_threshold,
        use_threshold=args.use_threshold,
        trans_threshold=args.trans_threshold,
        rv_max_states=args.rv_max_states,
        downscaling_factor=downscaling,
        source_type=args.source_type,
        sink_type=args.sink_type,
        use_type=args.use_type,
        benefit_type=args.benefit_type,
        flow_model=args.flow_model,
        result_type="interactive" if args.interactive else "programmatic",
    )

    run_start = time.perf_counter()
    try:
        results = run_span(config)
    except SpanConfigError as exc:
        parser.error(str(exc))
    run_seconds = time.perf_counter() - run_start

    rows, cols = source.shape
    out_dir = resolve_output_dir(
        args.out,
        args.flow_model.lower(),
        rows,
        cols,
        overwrite=args.overwrite,
    )
    summary = results.summary()

    stage_dir = Path(tempfile.mkdtemp(prefix=".staging-", dir=str(out_dir.parent)))
    try:
        for name in results.names():
            stem = layer_file_stem(name)
            write_layer_npy(stage_dir / f"{stem}.npy", results[name])
            write_png_u8(stage_dir / f"{stem}.png", float_preview_u8(results.means(name)))
        if args.json:
            working_rows, working_cols = scaled_dimensions(rows, cols, downscaling)
            deterministic_meta = {
                "rows": rows,
                "cols": cols,
                "working_rows": working_rows,
                "working_cols": working_cols,
                "config": config.scalar_options(),
                "flow_layers": sorted(flow_layers),
                "layers": summary,
            }
            meta = {
                **deterministic_meta,
                "generated_at_utc": datetime.now(timezone.utc).isoformat(),
                "run_seconds": run_seconds,
                "python_version": platform.python_version(),
                "numpy_version": np.__version__,
            }
            write_json(stage_dir / "deterministic_meta.json", deterministic_meta)
            write_json(stage_dir / "meta.json", meta)

        clean_output_dir(out_dir, out_root=Path(args.out))
        move_tree_contents(stage_dir, out_dir)
    finally:
        shutil.rmtree(stage_dir, ignore_errors=True)

    print(f"Simulated {args.flow_model} flow: {out_dir}")
    print(
        "Source: "
        f"theoretical={summary['Source - Theoretical']['total']:.3f}, "
        f"possible={summary['Source - Possible']['total']:.3f}, "
        f"actual={summary['Source - Actual']['total']:.3f}"
    )
    print(
        "Use: "
        f"theoretical={summary['Use - Theoretical']['total']:.3f}, "
        f"actual={summary['Use - Actual']['total']:.3f}"
    )
    print(f"Sink actual: {summary['Sink - Actual']['total']:.3f}")
    print(f"Run time: {run_seconds:.3f} s ({rows}x{cols})")
    file_count = sum(1 for child in out_dir.iterdir() if child.is_file())
    print(f"Output files: {file_count}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

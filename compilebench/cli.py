from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from .context import DEFAULT_ITERATIONS, DEFAULT_JOBS, DEFAULT_WARMUPS
from .errors import BenchError
from .model import CompilationMode, IncrementalMode
from .session import SessionSettings, run_session
from .wrapper import in_wrapper_mode, run_wrapper


ROOT_ENV = "COMPILEBENCH_ROOT"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="compilebench",
        description="Compare compile times of rustc builds across benchmark projects.",
    )
    parser.add_argument("builds", nargs="+", metavar="BUILD", help="build names under <root>/builds; the first is the baseline")
    parser.add_argument("--root", help=f"harness root directory (default: ${ROOT_ENV} or the current directory)")
    parser.add_argument("--bench", action="append", default=[], help="benchmark to run (repeatable, default: all)")
    parser.add_argument(
        "--mode",
        action="append",
        default=[],
        choices=[mode.value for mode in CompilationMode],
        help="compilation mode (repeatable, default: all)",
    )
    parser.add_argument(
        "--incremental",
        action="append",
        default=[],
        choices=[mode.value for mode in IncrementalMode],
        help="incremental scenario (repeatable, default: all)",
    )
    parser.add_argument("--iterations", type=int, default=DEFAULT_ITERATIONS)
    parser.add_argument("--warmups", type=int, default=DEFAULT_WARMUPS)
    parser.add_argument("--jobs", type=int, default=DEFAULT_JOBS, help="measurement worker threads")
    parser.add_argument("--threads", type=int, help="compiler threads for builds that support -Zthreads")
    parser.add_argument("--details", action="store_true", help="record per-pass timings")
    parser.add_argument("--cost-table", help="cost table json (default: <root>/costs.json)")
    parser.add_argument("--no-cost-update", action="store_true", help="do not refresh the cost table")
    parser.add_argument("--no-report", action="store_true")
    parser.add_argument("--cargo", default="cargo")
    parser.add_argument("--quiescence-ms", type=float, default=500.0)
    parser.add_argument("--spacing-ms", type=float, default=200.0)
    parser.add_argument("--poll-ms", type=float, default=50.0)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def resolve_root(value: str | None) -> Path:
    raw = value or os.environ.get(ROOT_ENV)
    return Path(raw).expanduser().resolve() if raw else Path.cwd()


def settings_from_args(args: argparse.Namespace) -> SessionSettings:
    root = resolve_root(args.root)
    return SessionSettings(
        root=root,
        builds=list(args.builds),
        benchmarks=list(args.bench),
        modes=[CompilationMode(value) for value in args.mode],
        incremental=[IncrementalMode(value) for value in args.incremental],
        iterations=args.iterations,
        warmups=args.warmups,
        jobs=args.jobs,
        threads=args.threads,
        details=args.details,
        cost_table=Path(args.cost_table).expanduser().resolve() if args.cost_table else None,
        update_costs=not args.no_cost_update,
        write_report=not args.no_report,
        cargo=args.cargo,
        quiescence_threshold=args.quiescence_ms / 1000.0,
        iteration_spacing=args.spacing_ms / 1000.0,
        poll_interval=args.poll_ms / 1000.0,
        # debug log lines would land inside the redrawn region
        live=False if args.verbose else None,
    )


def main(argv: list[str] | None = None) -> int:
    if in_wrapper_mode():
        return run_wrapper(sys.argv)

    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    try:
        run_session(settings_from_args(args))
    except BenchError as exc:
        print(f"\nerror: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\ninterrupted", file=sys.stderr)
        return 130
    return 0

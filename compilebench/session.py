from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from . import process, report
from .catalog import load_benchmarks, load_builds, load_cost_table
from .context import (
    DEFAULT_ITERATIONS,
    DEFAULT_JOBS,
    DEFAULT_WARMUPS,
    ITERATION_SPACING_S,
    QUIESCENCE_POLL_S,
    QUIESCENCE_THRESHOLD_S,
    SessionContext,
)
from .display import Display
from .errors import ConfigurationError
from .matrix import expand_configs
from .model import Build, CompilationMode, ConfigInstances, IncrementalMode
from .runner import Runner, prepare
from .scheduler import Scheduler
from .wrapper import new_marker, write_shim

log = logging.getLogger(__name__)


@dataclass
class SessionSettings:
    root: Path
    builds: list[str]
    benchmarks: list[str] = field(default_factory=list)
    modes: list[CompilationMode] = field(default_factory=list)
    incremental: list[IncrementalMode] = field(default_factory=list)
    iterations: int = DEFAULT_ITERATIONS
    warmups: int = DEFAULT_WARMUPS
    jobs: int = DEFAULT_JOBS
    threads: int | None = None
    details: bool = False
    cost_table: Path | None = None
    update_costs: bool = True
    write_report: bool = True
    cargo: str = "cargo"
    quiescence_threshold: float = QUIESCENCE_THRESHOLD_S
    iteration_spacing: float = ITERATION_SPACING_S
    poll_interval: float = QUIESCENCE_POLL_S
    live: bool | None = None

    def validate(self) -> None:
        if self.iterations <= 0:
            raise ConfigurationError("--iterations must be > 0")
        if self.warmups < 0:
            raise ConfigurationError("--warmups must be >= 0")
        if self.jobs <= 0:
            raise ConfigurationError("--jobs must be > 0")
        if self.threads is not None and self.threads <= 0:
            raise ConfigurationError("--threads must be > 0")
        if min(self.quiescence_threshold, self.iteration_spacing, self.poll_interval) < 0:
            raise ConfigurationError("timing intervals must be >= 0")

    @property
    def cost_table_path(self) -> Path:
        return self.cost_table or self.root / "costs.json"


@contextmanager
def session_directory(root: Path) -> Iterator[Path]:
    tmp_root = root / "tmp"
    tmp_root.mkdir(parents=True, exist_ok=True)
    session_dir = Path(tempfile.mkdtemp(dir=tmp_root))
    try:
        yield session_dir
    finally:
        shutil.rmtree(session_dir, ignore_errors=True)
        try:
            tmp_root.rmdir()
        except OSError:
            # another session still owns a directory here
            pass


def prepare_all(ctx: SessionContext, table: Sequence[ConfigInstances]) -> None:
    instances = [instance for unit in table for instance in unit.instances]
    with ThreadPoolExecutor(max_workers=len(instances), thread_name_prefix="bench-prepare") as pool:
        futures = [pool.submit(prepare, ctx, instance) for instance in instances]
        for future in futures:
            future.result()


def measure(
    ctx: SessionContext,
    table: Sequence[ConfigInstances],
    costs: dict[str, float],
    display: Display,
) -> None:
    runner = Runner(ctx, display)
    scheduler = Scheduler(
        table,
        runner,
        jobs=ctx.jobs,
        costs=costs,
        on_start=lambda unit: display.start_config(unit.index),
    )
    scheduler.run()
    display.complete()


def print_builds(builds: Sequence[Build]) -> None:
    for build in builds:
        extra = " ".join(part for part in (build.commit or "", build.size_display) if part)
        print(f"[bench] Build #{build.index + 1} {build.name}" + (f" ({extra})" if extra else ""))


def run_session(settings: SessionSettings, display: Display | None = None) -> Path | None:
    settings.validate()
    root = settings.root
    builds = load_builds(root, settings.builds)
    benchmarks = load_benchmarks(root, settings.benchmarks)
    process.require_tool(settings.cargo)
    costs = load_cost_table(settings.cost_table_path) if settings.jobs > 1 else {}
    print_builds(builds)
    for benchmark in benchmarks:
        print(f"[bench] Benchmark {benchmark.name} ({benchmark.cargo_dir})")

    table = expand_configs(
        benchmarks,
        builds,
        modes=settings.modes,
        incremental=settings.incremental,
        details=settings.details,
    )

    with session_directory(root) as session_dir:
        ctx = SessionContext(
            root=root,
            session_dir=session_dir,
            wrapper=write_shim(session_dir),
            marker=new_marker(),
            cargo=settings.cargo,
            iterations=settings.iterations,
            warmups=settings.warmups,
            jobs=settings.jobs,
            threads=settings.threads,
            details=settings.details,
            quiescence_threshold=settings.quiescence_threshold,
            iteration_spacing=settings.iteration_spacing,
            poll_interval=settings.poll_interval,
        )
        log.info("session directory %s", session_dir)
        prepare_all(ctx, table)
        if display is None:
            display = Display(table, iterations=ctx.iterations, warmups=ctx.warmups, live=settings.live)
        measure(ctx, table, costs, display)

    report.print_table(builds, table)
    if settings.update_costs:
        report.refresh_cost_table(settings.cost_table_path, table)
    if not settings.write_report:
        return None
    out_path = report.write_report(report.report_path(root, builds), report.build_report(ctx, builds, table))
    print(f"[bench] Report: {out_path}")
    return out_path

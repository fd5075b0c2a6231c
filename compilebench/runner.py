from __future__ import annotations

import logging
import shlex
import threading
import time
from collections.abc import Callable

from . import process
from .context import SessionContext
from .display import Display
from .errors import CommandFailure, PrepareFailure, ProtocolError, RunFailure
from .fingerprint import invalidate
from .model import ConfigInstances, IncrementalMode, Instance, PassTime
from .quiescence import QuiescenceCoordinator
from .wrapper import parse_marker, parse_pass_times

log = logging.getLogger(__name__)


def prepare(ctx: SessionContext, instance: Instance) -> None:
    """Untimed build that leaves only the benchmark crate to be recompiled."""
    print(f"[bench] Preparing {instance.display}")
    instance.path(ctx.session_dir).mkdir(parents=True, exist_ok=True)
    process.run_checked(
        process.cargo_command(ctx, instance),
        cwd=instance.config.benchmark.cargo_dir,
        env=process.cargo_env(ctx, instance),
        failure=PrepareFailure,
        context=f"unable to prepare {instance.display}",
    )
    if instance.config.incremental is IncrementalMode.UNCHANGED:
        # primes the incremental cache; every measured run then finds nothing changed
        run_once(ctx, instance, failure=PrepareFailure)
    print(f"[bench] Prepared {instance.display}")


def run_once(
    ctx: SessionContext,
    instance: Instance,
    failure: type[CommandFailure] = RunFailure,
) -> tuple[float, list[PassTime]]:
    invalidate(instance, ctx.session_dir)
    cmd = process.cargo_command(ctx, instance)
    cwd = instance.config.benchmark.cargo_dir
    proc = process.run_checked(
        cmd,
        cwd=cwd,
        env=process.cargo_env(ctx, instance),
        failure=failure,
        context=f"unable to run {instance.display}",
    )
    try:
        duration = parse_marker(proc.stderr, ctx.marker)
    except ProtocolError as exc:
        raise ProtocolError(
            f"{exc} while running {instance.display}\n"
            f"command: {shlex.join(cmd)}\ncwd: {cwd}\nstderr:\n{proc.stderr}"
        ) from exc
    passes = parse_pass_times(proc.stderr) if instance.config.details else []
    log.debug("%s took %.6fs", instance.display, duration)
    return duration, passes


class Runner:
    """Runs warmups and timed iterations for whole config units."""

    def __init__(
        self,
        ctx: SessionContext,
        display: Display,
        coordinator: QuiescenceCoordinator | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.ctx = ctx
        self.display = display
        self.coordinator = coordinator or QuiescenceCoordinator(
            ctx.jobs,
            threshold=ctx.quiescence_threshold,
            poll_interval=ctx.poll_interval,
        )
        self._sleep = sleep

    def measure(self, instance: Instance, worker: int) -> tuple[float, list[PassTime]]:
        if self.ctx.iteration_spacing > 0:
            self._sleep(self.ctx.iteration_spacing)
        with self.coordinator.timed_window(worker):
            return run_once(self.ctx, instance)

    def __call__(self, unit: ConfigInstances, worker: int, abort: threading.Event) -> None:
        for _ in range(self.ctx.warmups):
            for instance in unit.instances:
                if abort.is_set():
                    return
                self.measure(instance, worker)
                instance.warmups += 1
                self.display.report_warmup(unit.index, instance.build.index)

        # one run per build per iteration, so recorded counts differ by at most one
        for _ in range(self.ctx.iterations):
            for instance in unit.instances:
                if abort.is_set():
                    return
                duration, passes = self.measure(instance, worker)
                instance.record(duration, passes)
                self.display.report(unit.index, instance.build.index, duration)

        unit.completed = unit.is_complete(self.ctx.iterations)

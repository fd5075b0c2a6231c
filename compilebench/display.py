from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass, field

from . import stats
from .model import ConfigInstances
from .term import BLUE, GREEN, RED, Newline, ProgressBar, RenderCommand, ResetColor, Text, View, render

VALUE_COLUMN = 32
CHANGE_THRESHOLD_PCT = 0.5


@dataclass
class InstanceProgress:
    iterations: int
    warmup_target: int
    warmups: int = 0
    durations: list[float] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.durations)

    @property
    def time_total(self) -> float:
        return sum(self.durations)

    @property
    def done(self) -> bool:
        return self.count >= self.iterations


@dataclass
class ConfigProgress:
    display: str
    builds: list[InstanceProgress]
    started: bool = False
    completed: bool = False

    def durations(self) -> list[list[float]]:
        return [list(build.durations) for build in self.builds]

    def clamped(self) -> list[float] | None:
        return stats.clamped_averages(self.durations())

    def clamped_totals(self) -> list[float] | None:
        durations = self.durations()
        common = min(len(samples) for samples in durations)
        if common == 0:
            return None
        return [sum(samples[:common]) for samples in durations]

    def warming_up(self) -> bool:
        return any(build.warmups < build.warmup_target for build in self.builds)


def value_commands(values: Sequence[float], col: int, unit: str = "s") -> list[RenderCommand]:
    """Right-aligned values, each after the first with its change versus the first."""
    commands: list[RenderCommand] = [Text(" " * max(0, VALUE_COLUMN - col))]
    first = values[0]
    for i, value in enumerate(values):
        commands += [BLUE, Text(f"{value:>8.4f}{unit}"), ResetColor()]
        if i > 0:
            change = stats.pct_vs(first, value)
            if change is None:
                commands.append(Text("       -"))
            else:
                if change > CHANGE_THRESHOLD_PCT:
                    commands.append(RED)
                elif change < -CHANGE_THRESHOLD_PCT:
                    commands.append(GREEN)
                commands += [Text(f" {change:+6.2f}%"), ResetColor()]
        if i != len(values) - 1:
            commands.append(Text(" "))
    return commands


def labelled(label: str, values: Sequence[float] | None, unit: str = "s") -> list[RenderCommand]:
    commands: list[RenderCommand] = [Text(label)]
    if values:
        commands += value_commands(values, len(label), unit)
    commands.append(Newline())
    return commands


class Display:
    """Live dashboard for a benchmark session.

    Completed configs are printed once into a permanent region; the live
    region below it (active configs plus running totals) is erased and
    redrawn on every event.
    """

    def __init__(
        self,
        table: Sequence[ConfigInstances],
        iterations: int,
        warmups: int = 0,
        view: View | None = None,
        live: bool | None = None,
    ) -> None:
        self.view = view if view is not None else View()
        self.live = self.view.color if live is None else live
        self.iterations = iterations
        self.configs = [
            ConfigProgress(
                display=unit.config.display,
                builds=[InstanceProgress(iterations=iterations, warmup_target=warmups) for _ in unit.instances],
            )
            for unit in table
        ]
        self._lock = threading.Lock()
        self._newline_first = True

    def start_config(self, config_index: int) -> None:
        with self._lock:
            self.configs[config_index].started = True
            self._refresh()

    def report_warmup(self, config_index: int, build_index: int) -> None:
        with self._lock:
            self.configs[config_index].builds[build_index].warmups += 1
            self._refresh()

    def report(self, config_index: int, build_index: int, duration: float) -> None:
        with self._lock:
            config = self.configs[config_index]
            config.builds[build_index].durations.append(duration)
            if not config.completed and all(build.done for build in config.builds):
                config.completed = True
                self._print_completed(config)
            self._refresh()

    def refresh(self) -> None:
        with self._lock:
            self._refresh()

    def _print_completed(self, config: ConfigProgress) -> None:
        if self.live:
            self.view.rewind()
        commands: list[RenderCommand] = []
        if self._newline_first:
            commands.append(Newline())
            self._newline_first = False
        commands += labelled(f"{config.display} ", config.clamped())
        render(self.view, commands)
        # forget these lines so later rewinds leave them on screen
        self.view.reset()

    def live_commands(self) -> list[RenderCommand]:
        done = sum(build.count for config in self.configs for build in config.builds)
        total = sum(build.iterations for config in self.configs for build in config.builds)
        commands: list[RenderCommand] = [Newline(), Text("Running benchmarks:"), Newline()]
        commands.append(ProgressBar("Progress ", done / total if total else 1.0))

        for config in self.configs:
            if not config.started or config.completed:
                continue
            if config.warming_up():
                warmed = sum(build.warmups for build in config.builds)
                target = sum(build.warmup_target for build in config.builds)
                commands += labelled(f" - {config.display} (warmup {warmed}/{target}) ", None)
            else:
                count = sum(build.count for build in config.builds)
                target = sum(build.iterations for build in config.builds)
                commands += labelled(f" - {config.display} ({count}/{target}) ", config.clamped())

        rows = [values for values in (config.clamped() for config in self.configs) if values]
        totals = [values for values in (config.clamped_totals() for config in self.configs) if values]
        commands += labelled("Total ", stats.build_totals(rows) if rows else None)
        if totals and len(totals[0]) > 1:
            commands += labelled("Summary ", stats.relative_summary(totals), unit="x")
        return commands

    def _refresh(self) -> None:
        if not self.live:
            return
        self.view.rewind()
        render(self.view, self.live_commands())
        self.view.flush()

    def complete(self) -> None:
        with self._lock:
            if self.live:
                self.view.rewind()
            averages = [[stats.average(build.durations) or 0.0 for build in config.builds] for config in self.configs]
            totals = [[build.time_total for build in config.builds] for config in self.configs]
            commands: list[RenderCommand] = [Newline()]
            commands += labelled("Total ", stats.build_totals(averages))
            if averages and len(averages[0]) > 1:
                commands += labelled("Summary ", stats.relative_summary(totals), unit="x")
            commands.append(Newline())
            render(self.view, commands)
            self.view.reset()

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class CompilationMode(Enum):
    CHECK = "check"
    DEBUG = "debug"
    RELEASE = "release"

    @property
    def cargo_args(self) -> list[str]:
        if self is CompilationMode.CHECK:
            return ["check"]
        if self is CompilationMode.DEBUG:
            return ["build"]
        return ["build", "--release"]

    @property
    def profile_dir(self) -> str:
        return "release" if self is CompilationMode.RELEASE else "debug"


class IncrementalMode(Enum):
    NONE = "none"
    INITIAL = "initial"
    UNCHANGED = "unchanged"

    @property
    def enabled(self) -> bool:
        return self is not IncrementalMode.NONE


@dataclass(frozen=True)
class Benchmark:
    name: str
    cargo_dir: Path
    package: str

    @property
    def crate_name(self) -> str:
        # rustc names incremental directories after the crate, not the package
        return self.package.replace("-", "_")


@dataclass(frozen=True)
class Build:
    name: str
    index: int
    rustc: Path
    flags: tuple[str, ...] = ()
    env: tuple[tuple[str, str], ...] = ()
    threads: bool = False
    commit: str | None = None
    size_display: str = ""


@dataclass(frozen=True)
class Config:
    benchmark: Benchmark
    mode: CompilationMode
    incremental: IncrementalMode
    details: bool = False

    @property
    def display(self) -> str:
        parts = [self.benchmark.name, self.mode.value]
        if self.incremental.enabled:
            parts.append(self.incremental.value)
        return ":".join(parts)

    @property
    def slug(self) -> str:
        return re.sub(r"[^A-Za-z0-9_.-]+", "-", self.display)


@dataclass(frozen=True)
class PassTime:
    name: str
    time: float
    before_rss: int | None = None
    after_rss: int | None = None

    def as_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "time": self.time,
            "before_rss": self.before_rss,
            "after_rss": self.after_rss,
        }


@dataclass(eq=False)
class Instance:
    """One (config, build) measurement unit.

    Only the worker currently running the owning ``ConfigInstances`` appends
    to ``durations`` and ``pass_times``.
    """

    config: Config
    build: Build
    config_index: int
    durations: list[float] = field(default_factory=list)
    pass_times: list[list[PassTime]] = field(default_factory=list)
    warmups: int = 0

    @property
    def display(self) -> str:
        return f"{self.config.display} with build `{self.build.name}`"

    def path(self, session_dir: Path) -> Path:
        return session_dir / self.build.name / self.config.slug

    def target_dir(self, session_dir: Path) -> Path:
        return self.path(session_dir) / "target"

    def profile_dir(self, session_dir: Path) -> Path:
        return self.target_dir(session_dir) / self.config.mode.profile_dir

    def record(self, duration: float, passes: list[PassTime] | None = None) -> None:
        self.durations.append(duration)
        if self.config.details:
            self.pass_times.append(list(passes or []))

    def average(self) -> float | None:
        if not self.durations:
            return None
        return sum(self.durations) / len(self.durations)


@dataclass(eq=False)
class ConfigInstances:
    config: Config
    index: int
    instances: list[Instance]
    started: bool = False
    completed: bool = False

    def is_complete(self, iterations: int) -> bool:
        return all(len(instance.durations) >= iterations for instance in self.instances)

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

DEFAULT_ITERATIONS = 8
DEFAULT_WARMUPS = 1
DEFAULT_JOBS = 1
QUIESCENCE_THRESHOLD_S = 0.5
ITERATION_SPACING_S = 0.2
QUIESCENCE_POLL_S = 0.05


@dataclass(frozen=True)
class SessionContext:
    """Settings shared by every component of one benchmark session."""

    root: Path
    session_dir: Path
    wrapper: Path
    marker: str
    cargo: str = "cargo"
    iterations: int = DEFAULT_ITERATIONS
    warmups: int = DEFAULT_WARMUPS
    jobs: int = DEFAULT_JOBS
    threads: int | None = None
    details: bool = False
    quiescence_threshold: float = QUIESCENCE_THRESHOLD_S
    iteration_spacing: float = ITERATION_SPACING_S
    poll_interval: float = QUIESCENCE_POLL_S

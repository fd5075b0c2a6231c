from __future__ import annotations

from pathlib import Path


class BenchError(RuntimeError):
    """Base for every failure that invalidates a benchmark session."""


class ConfigurationError(BenchError):
    pass


class CommandFailure(BenchError):
    stage = "command"

    def __init__(
        self,
        cmd: list[str],
        cwd: Path | None,
        returncode: int | None,
        stdout: str,
        stderr: str,
        context: str = "",
    ) -> None:
        self.cmd = list(cmd)
        self.cwd = cwd
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.context = context
        super().__init__(self.describe())

    def describe(self) -> str:
        status = "not started" if self.returncode is None else self.returncode
        head = f"{self.stage} failed ({status}): {' '.join(self.cmd)}"
        if self.context:
            head = f"{head}\n{self.context}"
        return f"{head}\ncwd: {self.cwd}\nstdout:\n{self.stdout}\nstderr:\n{self.stderr}"


class PrepareFailure(CommandFailure):
    stage = "prepare"


class RunFailure(CommandFailure):
    stage = "run"


class FingerprintError(BenchError):
    pass


class FingerprintNotFoundError(FingerprintError):
    pass


class AmbiguousFingerprintError(FingerprintError):
    pass


class ProtocolError(BenchError):
    pass

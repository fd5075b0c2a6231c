from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from pathlib import Path

from .context import SessionContext
from .errors import CommandFailure, ConfigurationError
from .model import Instance
from .wrapper import DETAILS_ENV, MARKER_ENV, WRAPPER_ENV

log = logging.getLogger(__name__)


def require_tool(name: str) -> str:
    resolved = shutil.which(name)
    if not resolved:
        raise ConfigurationError(f"required tool not found: {name}")
    return resolved


def run_command(
    cmd: list[str],
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    merged_env = os.environ.copy()
    if env:
        merged_env.update(env)
    log.debug("running %s (cwd=%s)", shlex.join(cmd), cwd)
    return subprocess.run(
        cmd,
        cwd=str(cwd) if cwd else None,
        env=merged_env,
        stdin=subprocess.DEVNULL,
        text=True,
        capture_output=True,
        encoding="utf-8",
        errors="replace",
    )


def run_checked(
    cmd: list[str],
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
    failure: type[CommandFailure] = CommandFailure,
    context: str = "",
) -> subprocess.CompletedProcess[str]:
    try:
        proc = run_command(cmd, cwd=cwd, env=env)
    except OSError as exc:
        raise failure(cmd, cwd, None, "", str(exc), context=context) from exc
    if proc.returncode != 0:
        raise failure(cmd, cwd, proc.returncode, proc.stdout, proc.stderr, context=context)
    return proc


def rustflags(ctx: SessionContext, instance: Instance) -> str:
    flags = list(instance.build.flags)
    if ctx.threads is not None and instance.build.threads:
        flags.append(f"-Zthreads={ctx.threads}")
    return " ".join(flags)


def cargo_env(ctx: SessionContext, instance: Instance) -> dict[str, str]:
    """Environment for every cargo invocation of ``instance``.

    Prepare and timed runs share it so cargo never sees a changed compiler
    configuration and keeps dependency artifacts fresh.
    """
    env = dict(instance.build.env)
    env.update(
        {
            "RUSTC": str(instance.build.rustc),
            "RUSTC_WRAPPER": str(ctx.wrapper),
            "RUSTFLAGS": rustflags(ctx, instance),
            "CARGO_INCREMENTAL": "1" if instance.config.incremental.enabled else "0",
            "CARGO_TARGET_DIR": str(instance.target_dir(ctx.session_dir)),
            WRAPPER_ENV: "1",
            MARKER_ENV: ctx.marker,
        }
    )
    if instance.config.details:
        env[DETAILS_ENV] = "1"
    return env


def cargo_command(ctx: SessionContext, instance: Instance) -> list[str]:
    return [ctx.cargo, *instance.config.mode.cargo_args]

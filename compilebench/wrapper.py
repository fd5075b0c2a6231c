"""Timing wrapper placed between cargo and the compiler under test.

cargo runs ``$RUSTC_WRAPPER <real rustc> <args...>``. The wrapper times the
real compiler and appends one ``<marker>:<microseconds>`` line to stderr,
which cargo forwards to the harness. The harness accepts a run only if that
line appears exactly once.
"""
from __future__ import annotations

import json
import logging
import os
import re
import secrets
import subprocess
import sys
import time
from pathlib import Path

from .errors import ProtocolError
from .model import PassTime

log = logging.getLogger(__name__)

WRAPPER_ENV = "COMPILEBENCH_WRAPPER"
MARKER_ENV = "COMPILEBENCH_MARKER"
DETAILS_ENV = "COMPILEBENCH_DETAILS"
DETAIL_FLAGS = ["-Ztime-passes", "-Ztime-passes-format=json"]
PASS_PREFIX = "time:"
TOTAL_PASS = "total"

# Builds from different commits otherwise hash their version into crate ids.
STABLE_HASH_ENV = {
    "RUSTC_FORCE_INCR_COMP_ARTIFACT_HEADER": "compilebench",
    "RUSTC_FORCE_RUSTC_VERSION": "compilebench",
}


def new_marker() -> str:
    return f"compilebench-time-{secrets.token_hex(8)}"


def in_wrapper_mode(environ: dict[str, str] | None = None) -> bool:
    environ = os.environ if environ is None else environ
    return environ.get(WRAPPER_ENV) == "1"


def wrapped_command(argv: list[str], details: bool) -> list[str]:
    cmd = list(argv)
    # cargo also queries the compiler (-vV, --print); only real compilations get detail flags
    if details and "--crate-name" in cmd:
        cmd.extend(DETAIL_FLAGS)
    return cmd


def run_wrapper(argv: list[str]) -> int:
    if len(argv) < 2:
        print("compilebench wrapper: missing compiler path", file=sys.stderr)
        return 2

    cmd = wrapped_command(argv[1:], details=os.environ.get(DETAILS_ENV) == "1")
    env = os.environ.copy()
    env.pop(WRAPPER_ENV, None)
    env.update(STABLE_HASH_ENV)
    marker = env.pop(MARKER_ENV, None)

    creationflags = subprocess.HIGH_PRIORITY_CLASS if sys.platform.startswith("win") else 0
    started = time.perf_counter_ns()
    child = subprocess.Popen(cmd, env=env, creationflags=creationflags)
    returncode = child.wait()
    elapsed_us = (time.perf_counter_ns() - started) // 1000

    if marker:
        sys.stderr.write(f"\n{marker}:{elapsed_us}\n")
        sys.stderr.flush()
    return returncode


def parse_marker(stderr: str, marker: str) -> float:
    """Return the single wrapped compile duration in seconds."""
    pattern = re.compile(rf"^{re.escape(marker)}:(\d+)$")
    matches = [m for m in (pattern.match(line.strip()) for line in stderr.splitlines()) if m]
    if len(matches) != 1:
        raise ProtocolError(
            f"expected exactly one timing marker in compiler output, found {len(matches)}"
        )
    return int(matches[0].group(1)) / 1_000_000


def parse_pass_times(stderr: str) -> list[PassTime]:
    entries: list[PassTime] = []
    for raw_line in stderr.splitlines():
        line = raw_line.strip()
        if not line.startswith(PASS_PREFIX):
            continue
        payload = line[len(PASS_PREFIX):].strip()
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            log.debug("skipping non-json pass timing line: %s", line)
            continue
        if not isinstance(data, dict) or "pass" not in data:
            continue
        entries.append(
            PassTime(
                name=str(data["pass"]),
                time=float(data.get("time", 0.0)),
                before_rss=data.get("rss_start"),
                after_rss=data.get("rss_end"),
            )
        )

    # Everything up to the second to last `total` belongs to other compilations.
    totals = [i for i, entry in enumerate(entries) if entry.name == TOTAL_PASS]
    if len(totals) > 1:
        entries = entries[totals[-2] + 1:]
    return merge_pass_times(entries)


def merge_pass_times(entries: list[PassTime]) -> list[PassTime]:
    merged: dict[str, PassTime] = {}
    for entry in entries:
        seen = merged.get(entry.name)
        if seen is None:
            merged[entry.name] = entry
            continue
        merged[entry.name] = PassTime(
            name=entry.name,
            time=seen.time + entry.time,
            before_rss=_pick(min, seen.before_rss, entry.before_rss),
            after_rss=_pick(max, seen.after_rss, entry.after_rss),
        )
    return list(merged.values())


def _pick(fn, a: int | None, b: int | None) -> int | None:
    if a is None:
        return b
    if b is None:
        return a
    return fn(a, b)


def write_shim(directory: Path) -> Path:
    """Write an executable cargo can use as RUSTC_WRAPPER."""
    package_parent = Path(__file__).resolve().parent.parent
    directory.mkdir(parents=True, exist_ok=True)
    if sys.platform.startswith("win"):
        shim = directory / "compilebench-wrapper.cmd"
        content = (
            "@echo off\r\n"
            f'set "PYTHONPATH={package_parent};%PYTHONPATH%"\r\n'
            f'"{sys.executable}" -m compilebench %*\r\n'
        )
    else:
        shim = directory / "compilebench-wrapper"
        content = (
            "#!/bin/sh\n"
            f"PYTHONPATH='{package_parent}'${{PYTHONPATH:+:$PYTHONPATH}}\n"
            "export PYTHONPATH\n"
            f"exec '{sys.executable}' -m compilebench \"$@\"\n"
        )
    shim.write_text(content, encoding="utf-8", newline="")
    shim.chmod(0o755)
    return shim

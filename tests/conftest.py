from __future__ import annotations

import io
import subprocess
from pathlib import Path

import pytest

from compilebench.context import SessionContext
from compilebench.display import Display
from compilebench.model import Benchmark, Build
from compilebench.term import View
from compilebench.wrapper import MARKER_ENV


def make_benchmark(tmp_path: Path, name: str = "generic-maps", package: str | None = None) -> Benchmark:
    cargo_dir = tmp_path / "benchs" / name
    cargo_dir.mkdir(parents=True, exist_ok=True)
    (cargo_dir / "bench.toml").write_text("", encoding="utf-8")
    (cargo_dir / "Cargo.toml").write_text(f'[package]\nname = "{package or name}"\n', encoding="utf-8")
    return Benchmark(name=name, cargo_dir=cargo_dir, package=package or name)


def make_build(tmp_path: Path, name: str, index: int, threads: bool = False) -> Build:
    build_dir = tmp_path / "builds" / name
    rustc = build_dir / "stage1" / "bin" / "rustc"
    rustc.parent.mkdir(parents=True, exist_ok=True)
    rustc.write_text("", encoding="utf-8")
    lines = ['rustc = "stage1/bin/rustc"', f"threads = {'true' if threads else 'false'}", 'commit = "abc123"']
    (build_dir / "build.toml").write_text("\n".join(lines) + "\n", encoding="utf-8")
    return Build(name=name, index=index, rustc=rustc.resolve(), threads=threads, commit="abc123")


def make_context(tmp_path: Path, **overrides) -> SessionContext:
    session_dir = tmp_path / "session"
    session_dir.mkdir(parents=True, exist_ok=True)
    values = dict(
        root=tmp_path,
        session_dir=session_dir,
        wrapper=session_dir / "compilebench-wrapper",
        marker="compilebench-time-test",
        iterations=3,
        warmups=1,
        jobs=1,
        iteration_spacing=0.0,
        quiescence_threshold=0.0,
        poll_interval=0.0,
    )
    values.update(overrides)
    return SessionContext(**values)


def quiet_display(table, iterations: int, warmups: int = 0) -> Display:
    view = View(stream=io.StringIO(), width=100, color=False)
    return Display(table, iterations=iterations, warmups=warmups, view=view, live=False)


class FakeCargo:
    """Stands in for cargo: maintains cache directories and reports a timing marker."""

    def __init__(self, duration_us: int = 250_000) -> None:
        self.duration_us = duration_us
        self.calls: list[dict] = []
        self.markers_per_run = 1
        self.fail_on_call: int | None = None
        self.with_build_script = False
        self.double_marker_from_call: int | None = None

    def __call__(self, cmd, cwd=None, env=None):
        env = env or {}
        target = Path(env["CARGO_TARGET_DIR"])
        profile = target / ("release" if "--release" in cmd else "debug")
        package = Path(cwd).name
        crate = package.replace("-", "_")
        call = {"cmd": list(cmd), "cwd": cwd, "env": dict(env)}
        self.calls.append(call)

        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            return subprocess.CompletedProcess(cmd, 101, "", "error[E0425]: cannot find value")

        (profile / ".fingerprint" / f"{package}-0a1b2c3d").mkdir(parents=True, exist_ok=True)
        if self.with_build_script:
            (profile / ".fingerprint" / f"{package}-99ffee00").mkdir(parents=True, exist_ok=True)
            (profile / "build" / f"{package}-99ffee00").mkdir(parents=True, exist_ok=True)
        if env.get("CARGO_INCREMENTAL") == "1":
            (profile / "incremental" / f"{crate}-1q2w3e").mkdir(parents=True, exist_ok=True)

        marker = env.get(MARKER_ENV, "")
        lines = ["   Compiling generic-maps v0.1.0"]
        markers = self.markers_per_run
        if self.double_marker_from_call is not None and len(self.calls) >= self.double_marker_from_call:
            markers = 2
        lines += [f"{marker}:{self.duration_us}"] * markers
        lines.append("    Finished `dev` profile")
        return subprocess.CompletedProcess(cmd, 0, "", "\n".join(lines) + "\n")


@pytest.fixture
def fake_cargo(monkeypatch) -> FakeCargo:
    fake = FakeCargo()
    monkeypatch.setattr("compilebench.process.run_command", fake)
    monkeypatch.setattr("compilebench.process.require_tool", lambda name: name)
    return fake

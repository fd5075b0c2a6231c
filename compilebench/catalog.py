from __future__ import annotations

import json
import logging
import sys
import tomllib
from pathlib import Path
from typing import Any

from .errors import ConfigurationError
from .model import Benchmark, Build

log = logging.getLogger(__name__)

BUILD_FILE = "build.toml"
BENCH_FILE = "bench.toml"


def exe_name(stem: str) -> str:
    return f"{stem}.exe" if sys.platform.startswith("win") else stem


def load_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"invalid toml: {path}: {exc}") from exc


def load_build(root: Path, name: str, index: int) -> Build:
    build_dir = root / "builds" / name
    info_path = build_dir / BUILD_FILE
    if not info_path.exists():
        raise ConfigurationError(f"cannot find build `{name}` ({info_path} missing)")
    info = load_toml(info_path)

    rustc_rel = info.get("rustc") or str(Path("stage1") / "bin" / exe_name("rustc"))
    rustc = (build_dir / rustc_rel).resolve()
    if not rustc.exists():
        raise ConfigurationError(f"build `{name}` has no compiler at {rustc}")

    flags = info.get("flags", [])
    env = info.get("env", {})
    if not isinstance(flags, list) or not all(isinstance(f, str) for f in flags):
        raise ConfigurationError(f"{info_path}: `flags` must be a list of strings")
    if not isinstance(env, dict):
        raise ConfigurationError(f"{info_path}: `env` must be a table")

    return Build(
        name=name,
        index=index,
        rustc=rustc,
        flags=tuple(flags),
        env=tuple((str(k), str(v)) for k, v in sorted(env.items())),
        threads=bool(info.get("threads", False)),
        commit=info.get("commit"),
        size_display=str(info.get("size_display", "")),
    )


def load_builds(root: Path, names: list[str]) -> list[Build]:
    if not names:
        raise ConfigurationError("at least one build must be selected")
    if len(set(names)) != len(names):
        raise ConfigurationError(f"duplicate build selection: {', '.join(names)}")
    return [load_build(root, name, i) for i, name in enumerate(names)]


def load_benchmark(bench_dir: Path) -> Benchmark:
    info = load_toml(bench_dir / BENCH_FILE)
    cargo_dir = (bench_dir / info.get("cargo_dir", ".")).resolve()
    manifest = cargo_dir / "Cargo.toml"
    if not manifest.exists():
        raise ConfigurationError(f"benchmark `{bench_dir.name}` has no Cargo.toml in {cargo_dir}")
    package = info.get("package") or load_toml(manifest).get("package", {}).get("name") or bench_dir.name
    return Benchmark(name=bench_dir.name, cargo_dir=cargo_dir, package=str(package))


def load_benchmarks(root: Path, selected: list[str] | None = None) -> list[Benchmark]:
    benchs_dir = root / "benchs"
    if not benchs_dir.is_dir():
        raise ConfigurationError(f"benchmark directory not found: {benchs_dir}")

    known = sorted(
        path for path in benchs_dir.iterdir() if path.is_dir() and (path / BENCH_FILE).exists()
    )
    by_name = {path.name: path for path in known}
    if selected:
        missing = [name for name in selected if name not in by_name]
        if missing:
            raise ConfigurationError(
                f"unknown benchmark(s): {', '.join(missing)} (known: {', '.join(by_name) or 'none'})"
            )
        chosen = [by_name[name] for name in dict.fromkeys(selected)]
    else:
        chosen = known
    if not chosen:
        raise ConfigurationError(f"no benchmarks found under {benchs_dir}")
    return [load_benchmark(path) for path in chosen]


def load_cost_table(path: Path | None) -> dict[str, float]:
    if path is None or not path.exists():
        return {}
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"invalid json cost table: {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigurationError(f"cost table must be a json object: {path}")

    costs: dict[str, float] = {}
    for key, value in raw.items():
        if isinstance(value, (int, float)) and value > 0:
            costs[str(key)] = float(value)
        else:
            log.warning("ignoring cost table entry %r=%r in %s", key, value, path)
    return costs


def save_cost_table(path: Path, costs: dict[str, float]) -> None:
    merged = load_cost_table(path)
    merged.update(costs)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(dict(sorted(merged.items())), indent=2), encoding="utf-8", newline="\n")

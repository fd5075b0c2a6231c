from __future__ import annotations

import json
import time
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from . import stats
from .catalog import save_cost_table
from .context import SessionContext
from .model import Build, ConfigInstances


def now_unix_ms() -> int:
    return int(time.time() * 1000)


def build_report(ctx: SessionContext, builds: Sequence[Build], table: Sequence[ConfigInstances]) -> dict[str, Any]:
    summary = stats.session_summary(table)
    benchs: list[dict[str, Any]] = []
    for unit in table:
        benchs.append(
            {
                "name": unit.config.display,
                "benchmark": unit.config.benchmark.name,
                "mode": unit.config.mode.value,
                "incremental": unit.config.incremental.value,
                "builds": [
                    {
                        "build": instance.build.name,
                        "time": list(instance.durations),
                        "avg": stats.average(instance.durations),
                        "times": (
                            [[entry.as_dict() for entry in run] for run in instance.pass_times]
                            if unit.config.details
                            else None
                        ),
                    }
                    for instance in unit.instances
                ],
            }
        )

    return {
        "schema_version": 1,
        "generated_at_unix_ms": now_unix_ms(),
        "inputs": {
            "builds": [
                {"name": build.name, "rustc": str(build.rustc), "commit": build.commit, "flags": list(build.flags)}
                for build in builds
            ],
            "iterations": ctx.iterations,
            "warmups": ctx.warmups,
            "jobs": ctx.jobs,
            "threads": ctx.threads,
            "details": ctx.details,
        },
        "benchs": benchs,
        "totals": summary["totals"],
        "summary": summary["summary"],
    }


def report_path(root: Path, builds: Sequence[Build]) -> Path:
    names = "__vs._".join(build.name for build in builds)
    stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    return root / "reports" / f"{names}_{stamp}.json"


def write_report(path: Path, report: dict[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, indent=2), encoding="utf-8", newline="\n")
    return path


def measured_costs(table: Sequence[ConfigInstances]) -> dict[str, float]:
    costs: dict[str, float] = {}
    for unit in table:
        cost = sum(stats.average(instance.durations) or 0.0 for instance in unit.instances)
        if cost > 0:
            costs[unit.config.display] = cost
    return costs


def refresh_cost_table(path: Path, table: Sequence[ConfigInstances]) -> dict[str, float]:
    costs = measured_costs(table)
    save_cost_table(path, costs)
    return costs


def print_table(builds: Sequence[Build], table: Sequence[ConfigInstances]) -> None:
    print("")
    print("| Benchmark | " + " | ".join(f"{build.name} (s)" for build in builds) + " |")
    print("|---|" + "---:|" * len(builds))
    for unit in table:
        cells = []
        for instance in unit.instances:
            avg = stats.average(instance.durations)
            cells.append(f"{avg:.6f}" if avg is not None else "-")
        print(f"| {unit.config.display} | " + " | ".join(cells) + " |")

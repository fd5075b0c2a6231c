from __future__ import annotations

from collections.abc import Sequence

from .model import ConfigInstances


def average(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


def pct_vs(reference: float | None, current: float | None) -> float | None:
    if reference is None or current is None or reference == 0:
        return None
    return ((current - reference) / reference) * 100.0


def clamped_averages(durations: Sequence[Sequence[float]]) -> list[float] | None:
    """Per-build averages over the iteration count every build has reached.

    Builds that are ahead have their most recent samples left out so that
    the builds are compared over the same iterations.
    """
    if not durations:
        return None
    common = min(len(samples) for samples in durations)
    if common == 0:
        return None
    return [sum(samples[:common]) / common for samples in durations]


def config_durations(unit: ConfigInstances) -> list[list[float]]:
    return [list(instance.durations) for instance in unit.instances]


def build_totals(per_config: Sequence[Sequence[float]]) -> list[float]:
    """Sum each build's per-config average across configs."""
    if not per_config:
        return []
    return [sum(row[build] for row in per_config) for build in range(len(per_config[0]))]


def relative_summary(per_config_totals: Sequence[Sequence[float]]) -> list[float]:
    """Mean over configs of each build's time relative to the first build.

    Each config weighs the same, however long it takes to compile.
    """
    if not per_config_totals:
        return []
    builds = len(per_config_totals[0])
    rows = [row for row in per_config_totals if row[0] > 0]
    if not rows:
        return [1.0] * builds
    return [sum(row[build] / row[0] for row in rows) / len(rows) for build in range(builds)]


def final_averages(table: Sequence[ConfigInstances]) -> list[list[float]]:
    rows: list[list[float]] = []
    for unit in table:
        rows.append([average(instance.durations) or 0.0 for instance in unit.instances])
    return rows


def final_totals(table: Sequence[ConfigInstances]) -> list[list[float]]:
    return [[sum(instance.durations) for instance in unit.instances] for unit in table]


def session_summary(table: Sequence[ConfigInstances]) -> dict[str, list[float]]:
    averages = final_averages(table)
    return {
        "totals": build_totals(averages),
        "summary": relative_summary(final_totals(table)),
    }

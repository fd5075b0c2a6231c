from __future__ import annotations

from collections.abc import Sequence

from .model import (
    Benchmark,
    Build,
    CompilationMode,
    Config,
    ConfigInstances,
    IncrementalMode,
    Instance,
)

DEFAULT_MODES = tuple(CompilationMode)
DEFAULT_INCREMENTAL = tuple(IncrementalMode)


def expand_configs(
    benchmarks: Sequence[Benchmark],
    builds: Sequence[Build],
    modes: Sequence[CompilationMode] | None = None,
    incremental: Sequence[IncrementalMode] | None = None,
    details: bool = False,
) -> list[ConfigInstances]:
    """Build the benchmark x mode x incremental table, one Instance per build."""
    modes = list(dict.fromkeys(modes or DEFAULT_MODES))
    incremental = list(dict.fromkeys(incremental or DEFAULT_INCREMENTAL))

    table: list[ConfigInstances] = []
    for benchmark in benchmarks:
        for mode in modes:
            for incr in incremental:
                config = Config(benchmark=benchmark, mode=mode, incremental=incr, details=details)
                index = len(table)
                table.append(
                    ConfigInstances(
                        config=config,
                        index=index,
                        instances=[Instance(config=config, build=build, config_index=index) for build in builds],
                    )
                )
    return table

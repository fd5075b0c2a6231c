from __future__ import annotations

import threading
import time

import pytest

from compilebench.matrix import expand_configs
from compilebench.model import CompilationMode, IncrementalMode
from compilebench.scheduler import DEFAULT_COST, Scheduler, WorkQueue, config_cost

from conftest import make_benchmark, make_build


@pytest.fixture
def table(tmp_path):
    return expand_configs(
        [make_benchmark(tmp_path, "alpha"), make_benchmark(tmp_path, "beta")],
        [make_build(tmp_path, "base", 0)],
        modes=[CompilationMode.CHECK, CompilationMode.DEBUG],
        incremental=[IncrementalMode.NONE, IncrementalMode.INITIAL],
    )


COSTS = {
    "alpha:check": 0.5,
    "alpha:debug": 4.0,
    "beta:check:initial": 2.5,
    "beta:debug": 9.0,
}


def test_unknown_configs_get_the_default_cost(table):
    assert config_cost(table[0], COSTS) == 0.5
    assert config_cost(table[1], COSTS) == DEFAULT_COST


def test_queue_hands_out_costliest_first(table):
    queue = WorkQueue(table, COSTS)
    popped = []
    while (item := queue.pop()) is not None:
        popped.append(item[1])
    assert popped == sorted(popped, reverse=True)
    assert popped[0] == 9.0
    assert len(queue) == 0


def test_single_job_runs_in_table_order(table):
    seen = []
    started = []
    scheduler = Scheduler(
        table,
        lambda unit, worker, abort: seen.append((unit.index, worker)),
        jobs=1,
        costs=COSTS,
        on_start=lambda unit: started.append(unit.index),
    )
    scheduler.run()
    assert seen == [(i, 0) for i in range(len(table))]
    assert started == list(range(len(table)))
    assert all(unit.started for unit in table)


def test_every_unit_runs_exactly_once(table):
    seen = []
    lock = threading.Lock()

    def run_unit(unit, worker, abort):
        time.sleep(0.01)
        with lock:
            seen.append((unit.index, worker))

    Scheduler(table, run_unit, jobs=3, costs=COSTS).run()

    assert sorted(index for index, _ in seen) == list(range(len(table)))
    assert {worker for _, worker in seen} <= {0, 1, 2}


def test_first_error_is_raised_after_workers_stop(table):
    started = []
    lock = threading.Lock()

    def run_unit(unit, worker, abort):
        with lock:
            started.append(unit.index)
        if unit.config.display == "beta:debug":
            raise RuntimeError("boom")
        abort.wait(1.0)

    scheduler = Scheduler(table, run_unit, jobs=2, costs=COSTS)
    with pytest.raises(RuntimeError, match="boom"):
        scheduler.run()

    assert scheduler.abort.is_set()
    # the failing unit is popped first; the other worker stops after its current unit
    assert len(started) <= 3


def test_jobs_must_be_positive(table):
    with pytest.raises(ValueError):
        Scheduler(table, lambda unit, worker, abort: None, jobs=0)

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence

from .model import ConfigInstances

log = logging.getLogger(__name__)

DEFAULT_COST = 1.0

RunUnit = Callable[[ConfigInstances, int, threading.Event], None]


def config_cost(unit: ConfigInstances, costs: dict[str, float]) -> float:
    return costs.get(unit.config.display, DEFAULT_COST)


class WorkQueue:
    """Config units ordered so that ``pop`` hands out the costliest first."""

    def __init__(self, units: Sequence[ConfigInstances], costs: dict[str, float]) -> None:
        # sorted() is stable, so equal costs pop in reverse table order
        self._items = sorted(((unit, config_cost(unit, costs)) for unit in units), key=lambda item: item[1])
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def pop(self) -> tuple[ConfigInstances, float] | None:
        with self._lock:
            if not self._items:
                return None
            return self._items.pop()


class Scheduler:
    def __init__(
        self,
        units: Sequence[ConfigInstances],
        run_unit: RunUnit,
        jobs: int = 1,
        costs: dict[str, float] | None = None,
        on_start: Callable[[ConfigInstances], None] | None = None,
    ) -> None:
        if jobs < 1:
            raise ValueError("jobs must be >= 1")
        self.units = list(units)
        self.run_unit = run_unit
        self.jobs = jobs
        self.costs = costs or {}
        self.on_start = on_start
        self.abort = threading.Event()
        self._errors: list[BaseException] = []
        self._errors_lock = threading.Lock()

    def _start(self, unit: ConfigInstances) -> None:
        unit.started = True
        if self.on_start is not None:
            self.on_start(unit)

    def run(self) -> None:
        if self.jobs == 1:
            for unit in self.units:
                self._start(unit)
                self.run_unit(unit, 0, self.abort)
            return

        queue = WorkQueue(self.units, self.costs)
        workers = [
            threading.Thread(target=self._worker, args=(queue, worker), name=f"bench-worker-{worker}")
            for worker in range(self.jobs)
        ]
        for thread in workers:
            thread.start()
        for thread in workers:
            thread.join()
        if self._errors:
            raise self._errors[0]

    def _worker(self, queue: WorkQueue, worker: int) -> None:
        try:
            while not self.abort.is_set():
                item = queue.pop()
                if item is None:
                    return
                unit, cost = item
                log.debug("worker %d took %s (cost %.3f)", worker, unit.config.display, cost)
                self._start(unit)
                self.run_unit(unit, worker, self.abort)
        except BaseException as exc:
            with self._errors_lock:
                self._errors.append(exc)
            self.abort.set()

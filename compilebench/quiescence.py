from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from .context import QUIESCENCE_POLL_S, QUIESCENCE_THRESHOLD_S

log = logging.getLogger(__name__)


class QuiescenceCoordinator:
    """Keeps timed runs of different workers from overlapping.

    A worker may start a timed run only once every other worker has been
    idle for ``threshold`` seconds since its last event. The check and the
    update of the caller's own timestamp happen under one lock.
    """

    def __init__(
        self,
        workers: int,
        threshold: float = QUIESCENCE_THRESHOLD_S,
        poll_interval: float = QUIESCENCE_POLL_S,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.workers = workers
        self.threshold = threshold
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_event = [-math.inf] * workers

    @property
    def enabled(self) -> bool:
        return self.workers > 1

    def last_events(self) -> list[float]:
        with self._lock:
            return list(self._last_event)

    def _try_enter(self, worker: int) -> bool:
        with self._lock:
            now = self._clock()
            for other, stamp in enumerate(self._last_event):
                if other != worker and now - stamp <= self.threshold:
                    return False
            self._last_event[worker] = now
            return True

    def wait(self, worker: int) -> None:
        if not self.enabled:
            return
        polls = 0
        while not self._try_enter(worker):
            polls += 1
            self._sleep(self.poll_interval)
        if polls:
            log.debug("worker %d waited %d polls for quiescence", worker, polls)

    def mark(self, worker: int) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._last_event[worker] = self._clock()

    @contextmanager
    def timed_window(self, worker: int) -> Iterator[None]:
        self.wait(worker)
        try:
            yield
        finally:
            self.mark(worker)

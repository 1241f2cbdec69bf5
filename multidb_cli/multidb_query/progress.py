"""Concurrency counters and progress reporting for a run."""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol

from multidb_cli.shared.logging import Logger


class ProgressSink(Protocol):
    def increment(self) -> None: ...

    def done(self) -> None: ...


class ConcurrencyTracker:
    """Counts targets in flight and remembers the peak for one run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current = 0
        self._high_water_mark = 0

    @property
    def current(self) -> int:
        with self._lock:
            return self._current

    @property
    def high_water_mark(self) -> int:
        with self._lock:
            return self._high_water_mark

    def enter(self) -> None:
        with self._lock:
            self._current += 1
            if self._current > self._high_water_mark:
                self._high_water_mark = self._current

    def exit(self) -> None:
        with self._lock:
            self._current -= 1

    @contextmanager
    def track(self) -> Iterator[None]:
        self.enter()
        try:
            yield
        finally:
            self.exit()


class ProgressReporter:
    """Writes ``label : done/total (pct%)`` lines as targets complete."""

    def __init__(self, label: str, total: int, logger: Logger) -> None:
        self.label = label
        self.total = total
        self.logger = logger
        self._completed = 0
        self._lock = threading.Lock()
        self._started = time.perf_counter()

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    def increment(self) -> None:
        with self._lock:
            self._completed += 1
            completed = self._completed
        percent = (completed * 100 // self.total) if self.total else 100
        self.logger.info(f"{self.label} : {completed}/{self.total} ({percent}%)")

    def done(self) -> None:
        elapsed_ms = (time.perf_counter() - self._started) * 1000
        self.logger.info(f"{self.label} : done, {self.completed}/{self.total} in {elapsed_ms:.0f} milliseconds.")

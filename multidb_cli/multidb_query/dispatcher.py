"""Runs the command against every target and gathers the results."""

from __future__ import annotations

import threading
import time
import traceback
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed

from multidb_cli.shared.exceptions import CommandExecutionError, ConnectionFailure
from multidb_cli.shared.logging import Logger

from .drivers.base import Driver
from .materializer import ResultMaterializer
from .progress import ConcurrencyTracker, ProgressReporter, ProgressSink
from .types import ExecutionResult, FailureKind, QueryParameters, Target, TargetOutcome


class QueryDispatcher:
    """Queries targets one by one or on a bounded thread pool.

    A failing target is logged and left out of the results; it never stops
    the other targets. Each ``run`` uses fresh counters.
    """

    def __init__(
        self,
        driver: Driver,
        params: QueryParameters,
        *,
        logger: Logger,
        progress_factory: Callable[[int], ProgressSink] | None = None,
    ) -> None:
        self.driver = driver
        self.params = params
        self.logger = logger
        self.materializer = ResultMaterializer(params, logger=logger)
        self._progress_factory = progress_factory or self._default_progress
        self.tracker = ConcurrencyTracker()
        self.outcomes: list[TargetOutcome] = []
        self._lock = threading.Lock()

    def run(self, targets: Sequence[Target]) -> list[ExecutionResult]:
        self.tracker = ConcurrencyTracker()
        self.outcomes = []
        results: list[ExecutionResult] = []
        progress = self._progress_factory(len(targets))

        if self.params.sequential:
            for target in targets:
                self._process(target, progress, results)
        else:
            with ThreadPoolExecutor(max_workers=self.params.parallelism) as pool:
                futures = [pool.submit(self._process, target, progress, results) for target in targets]
                for future in as_completed(futures):
                    future.result()

        self._notify(progress.done)
        self.logger.info(f"Maximum concurrent queries : {self.tracker.high_water_mark} queries.")
        return results

    def query_target(self, target: Target) -> TargetOutcome:
        """Process one target; every failure is returned, never raised."""
        open_ms = 0.0
        query_ms = 0.0
        with self.tracker.track():
            started = time.perf_counter()
            try:
                with self.driver.open(target, timeout=self.params.connect_timeout) as session:
                    open_ms = (time.perf_counter() - started) * 1000
                    started = time.perf_counter()
                    result = self.materializer.execute(session, target)
                    query_ms = (time.perf_counter() - started) * 1000
                outcome = TargetOutcome.success(result)
            except ConnectionFailure as exc:
                open_ms = (time.perf_counter() - started) * 1000
                outcome = self._failure(target, FailureKind.CONNECTION, exc)
            except CommandExecutionError as exc:
                query_ms = (time.perf_counter() - started) * 1000
                outcome = self._failure(target, FailureKind.COMMAND, exc)
            except Exception as exc:  # noqa: BLE001 - isolate anything else to this target
                outcome = self._failure(target, FailureKind.UNEXPECTED, exc)

        self.logger.info(f"{target.log_prefix} SQL connection : {open_ms:.3f} milliseconds.")
        self.logger.info(f"{target.log_prefix} SQL query : {query_ms:.3f} milliseconds.")
        return outcome

    def _process(
        self,
        target: Target,
        progress: ProgressSink,
        results: list[ExecutionResult],
    ) -> None:
        outcome = self.query_target(target)
        self._notify(progress.increment)
        with self._lock:
            self.outcomes.append(outcome)
            if outcome.result is not None:
                results.append(outcome.result)

    def _failure(self, target: Target, kind: FailureKind, exc: Exception) -> TargetOutcome:
        outcome = TargetOutcome.failure(target, kind, exc)
        self.logger.error(f"{target.log_prefix} {outcome.error.message}")
        self.logger.debug("".join(traceback.format_exception(exc)).rstrip())
        return outcome

    def _notify(self, callback: Callable[[], None]) -> None:
        # Progress output is informational; a broken sink must not affect the run.
        try:
            callback()
        except Exception as exc:  # noqa: BLE001
            self.logger.debug(f"Progress reporting failed: {exc}")

    def _default_progress(self, total: int) -> ProgressSink:
        return ProgressReporter("QueryDispatcher.run", total, self.logger)

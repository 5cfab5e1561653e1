"""Thread-safe accumulation of per-item outcomes."""

import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Sequence

from .exceptions import EngineError
from .models import OperationResult, OperationStatus, RunStatistics


class ResultAggregator:
    """Accumulates operation results and the run counters.

    Every mutation goes through ``record`` under a single lock, so the
    counters returned by ``snapshot`` always satisfy
    ``success + failed + skipped == processed``.
    """

    def __init__(self, total_items: int):
        """Initialize the aggregator.

        Args:
            total_items: Number of work items the run will process
        """
        if total_items < 0:
            raise ValueError("total_items cannot be negative")
        self._lock = threading.Lock()
        self._results: List[OperationResult] = []
        self._stats = RunStatistics(total_items=total_items)

    def start(self) -> None:
        with self._lock:
            self._stats.start_time = datetime.now(timezone.utc)
            self._stats.end_time = None

    def finish(self) -> None:
        with self._lock:
            self._stats.end_time = datetime.now(timezone.utc)

    def record(self, result: OperationResult) -> None:
        """Append one result and update the counters atomically.

        Args:
            result: Terminal result of one work item

        Raises:
            EngineError: If more results arrive than there are items
        """
        with self._lock:
            if self._stats.processed_count >= self._stats.total_items:
                raise EngineError(
                    f"Received more results than the {self._stats.total_items} expected items",
                    context={"identifier": result.identifier},
                )

            self._results.append(result)
            self._stats.processed_count += 1
            if result.status == OperationStatus.SUCCESS:
                self._stats.success_count += 1
            elif result.status == OperationStatus.FAILED:
                self._stats.failure_count += 1
            elif result.status == OperationStatus.SKIPPED:
                self._stats.skipped_count += 1
            else:
                raise EngineError(f"Invalid status: {result.status}")

    def record_batch(self, batch_index: int, results: Sequence[OperationResult]) -> None:
        """Record every result of a completed batch (scheduler hook)."""
        for result in results:
            self.record(result)

    def snapshot(self) -> RunStatistics:
        """Return a copy of the current counters."""
        with self._lock:
            return replace(self._stats)

    def failed_items(self) -> List[OperationResult]:
        """Return failed results in the order they were recorded."""
        with self._lock:
            return [r for r in self._results if r.status == OperationStatus.FAILED]

    def all_items(self) -> List[OperationResult]:
        """Return every result in the order it was recorded."""
        with self._lock:
            return list(self._results)

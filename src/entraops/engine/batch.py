"""Batch processing components for bulk operations.

This module provides the bounded worker pool and the sequential batch
scheduler that drive every bulk tool, plus a Rich progress display.

Classes:
    WorkerPool: Runs the per-item operation over one batch with a concurrency ceiling
    BatchScheduler: Partitions the input and drives the pool batch by batch
    ProgressTracker: Manages progress display for bulk operations
"""

import logging
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Tuple

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
)

from .interfaces import PerItemOperation, ProgressCallback
from .models import BatchPlan, OperationResult, WorkItem
from .retry import RetryingInvoker

logger = logging.getLogger(__name__)

BatchCallback = Callable[[int, List[OperationResult]], None]


class WorkerPool:
    """Runs the per-item operation concurrently over a batch."""

    def __init__(
        self,
        invoker: RetryingInvoker,
        start_delay_range: Tuple[float, float] = (0.1, 0.5),
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        """Initialize worker pool.

        Args:
            invoker: Retrying invoker wrapped around every operation call
            start_delay_range: Random pre-start delay per item, in seconds
            sleep: Sleep function, injectable for tests
            rng: Random source for the pre-start delay
        """
        self.invoker = invoker
        self.start_delay_range = start_delay_range
        self.sleep = sleep
        self.rng = rng or random.Random()
        self._rng_lock = threading.Lock()

    def run_batch(
        self,
        items: Sequence[WorkItem],
        concurrency_limit: int,
        per_item_op: PerItemOperation,
    ) -> List[OperationResult]:
        """Process every item of a batch and wait for all of them.

        Args:
            items: Work items of the batch
            concurrency_limit: Maximum simultaneously running operations
            per_item_op: Operation applied to each item

        Returns:
            One result per item, in completion order
        """
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be a positive integer")
        if not items:
            return []

        results: List[OperationResult] = []
        results_lock = threading.Lock()

        with ThreadPoolExecutor(
            max_workers=min(concurrency_limit, len(items)), thread_name_prefix="entraops-worker"
        ) as executor:
            future_to_item = {
                executor.submit(self._process_item_with_isolation, item, per_item_op): item
                for item in items
            }

            for future in as_completed(future_to_item):
                item = future_to_item[future]
                try:
                    result = future.result()
                except Exception as e:
                    # _process_item_with_isolation never raises; this guards executor faults
                    result = OperationResult.failed(item, f"Worker error: {e}")
                with results_lock:
                    results.append(result)

        return results

    def _start_delay(self) -> float:
        low, high = self.start_delay_range
        if high <= 0:
            return 0.0
        with self._rng_lock:
            return self.rng.uniform(low, high)

    def _process_item_with_isolation(
        self, item: WorkItem, per_item_op: PerItemOperation
    ) -> OperationResult:
        """Process a single item, converting any error into a failed result."""
        started = time.monotonic()
        attempts = 0

        def attempt() -> OperationResult:
            nonlocal attempts
            attempts += 1
            return per_item_op(item)

        try:
            delay = self._start_delay()
            if delay > 0:
                self.sleep(delay)

            result = self.invoker.invoke(attempt, target=item.identifier)
            if not isinstance(result, OperationResult):
                raise TypeError(
                    f"Operation returned {type(result).__name__} instead of OperationResult"
                )
            return replace(result, retry_count=max(attempts - 1, 0))
        except Exception as e:
            logger.debug("Isolated error processing %s: %s", item.identifier, e, exc_info=True)
            return OperationResult.failed(
                item,
                str(e) or type(e).__name__,
                processing_time=time.monotonic() - started,
                retry_count=max(attempts - 1, 0),
            )


class BatchScheduler:
    """Drives the full run batch by batch with inter-batch pacing."""

    def __init__(self, worker_pool: WorkerPool, sleep: Callable[[float], None] = time.sleep):
        """Initialize batch scheduler.

        Args:
            worker_pool: Pool used for each batch
            sleep: Sleep function for the inter-batch cooldown
        """
        self.worker_pool = worker_pool
        self.sleep = sleep

    @staticmethod
    def plan_batches(items: Sequence[WorkItem], batch_size: int) -> List[BatchPlan]:
        """Slice the input into consecutive batches, preserving order.

        Args:
            items: All work items
            batch_size: Items per batch; the final batch may be smaller

        Returns:
            List of BatchPlan in input order
        """
        if batch_size < 1:
            raise ValueError("batch_size must be a positive integer")
        return [
            BatchPlan(batch_index=index, items=tuple(items[start : start + batch_size]))
            for index, start in enumerate(range(0, len(items), batch_size))
        ]

    def run(
        self,
        all_items: Sequence[WorkItem],
        batch_size: int,
        concurrency_limit: int,
        inter_batch_delay_seconds: float,
        per_item_op: PerItemOperation,
        on_batch_complete: BatchCallback,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[BatchPlan]:
        """Process all items batch by batch.

        Args:
            all_items: Work items in input order
            batch_size: Items per batch
            concurrency_limit: Concurrency ceiling within a batch
            inter_batch_delay_seconds: Cooldown after every non-final batch
            per_item_op: Operation applied to each item
            on_batch_complete: Called synchronously with each batch's results
            progress_callback: Called with (processed, total, percent) after each batch
            cancel_event: Checked between batches; when set, remaining batches are abandoned

        Returns:
            The batches that were executed
        """
        plans = self.plan_batches(all_items, batch_size)
        total = len(all_items)
        processed = 0
        executed: List[BatchPlan] = []

        for position, plan in enumerate(plans):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(
                    "Cancellation requested, abandoning %d remaining batches",
                    len(plans) - position,
                )
                break

            logger.debug(
                "Starting batch %d/%d with %d items", plan.batch_index + 1, len(plans), plan.size
            )
            results = self.worker_pool.run_batch(plan.items, concurrency_limit, per_item_op)
            executed.append(plan)
            on_batch_complete(plan.batch_index, results)

            processed += plan.size
            percent = round(processed / total * 100, 1) if total else 100.0
            logger.info("Batch %d/%d complete (%s%%)", plan.batch_index + 1, len(plans), percent)
            if progress_callback:
                progress_callback(processed, total, percent)

            is_last = position == len(plans) - 1
            if not is_last and inter_batch_delay_seconds > 0:
                if cancel_event is not None and cancel_event.is_set():
                    continue
                self.sleep(inter_batch_delay_seconds)

        return executed


class ProgressTracker:
    """Manages progress display for bulk operations."""

    def __init__(self, console: Console):
        """Initialize progress tracker.

        Args:
            console: Rich console for output
        """
        self.console = console
        self.progress: Optional[Progress] = None
        self.task_id: Optional[TaskID] = None
        self.start_time: Optional[float] = None
        self.total_items: int = 0
        self.completed_items: int = 0

    def start_progress(self, total: int, description: str = "Processing users"):
        """Start progress tracking.

        Args:
            total: Total number of items to process
            description: Description for the progress bar
        """
        self.total_items = total
        self.completed_items = 0

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>5.1f}%"),
            TextColumn("({task.completed}/{task.total})"),
            TimeRemainingColumn(),
            console=self.console,
        )

        self.progress.start()
        self.task_id = self.progress.add_task(description, total=total)
        self.start_time = time.time()

    def __call__(self, processed: int, total: int, percent: float):
        """Progress sink signature expected by BatchScheduler."""
        self.set_progress(processed)

    def set_progress(self, completed: int, description: Optional[str] = None):
        """Set absolute progress value.

        Args:
            completed: Absolute number of items completed
            description: Optional new description
        """
        if self.progress and self.task_id is not None:
            self.completed_items = completed
            self.progress.update(self.task_id, completed=completed)
            if description:
                self.progress.update(self.task_id, description=description)

    def finish_progress(self):
        """Complete progress tracking."""
        if self.progress:
            self.progress.stop()
            self.progress = None
            self.task_id = None

    def get_elapsed_time(self) -> float:
        if self.start_time:
            return time.time() - self.start_time
        return 0.0

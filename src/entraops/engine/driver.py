"""Top-level orchestration of a bulk run.

The driver owns the lifecycle of one run: connect, validate, process,
summarize, disconnect. It only tears down a session it established itself.
"""

import logging
import threading
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from .aggregator import ResultAggregator
from .batch import BatchCallback, BatchScheduler, WorkerPool
from .exceptions import ConnectionFailedError, ValidationFailedError
from .interfaces import DirectorySession, PerItemOperation, ProgressCallback
from .models import BulkOperationConfig, BulkRunReport, OperationResult, WorkItem
from .retry import RetryingInvoker

logger = logging.getLogger(__name__)


class DriverState(str, Enum):
    """Lifecycle states of a bulk run."""

    IDLE = "idle"
    CONNECTING = "connecting"
    VALIDATING = "validating"
    PROCESSING = "processing"
    SUMMARIZING = "summarizing"
    DISCONNECTING = "disconnecting"
    DONE = "done"
    VALIDATION_FAILED = "validation_failed"
    CONNECTION_FAILED = "connection_failed"


class DryRunOperation:
    """Stand-in operation that reports every item as skipped."""

    def __init__(self, operation_name: str):
        self.operation_name = operation_name

    def __call__(self, item: WorkItem) -> OperationResult:
        return OperationResult.skipped(item, f"Dry run: {self.operation_name} not executed")


class BulkOperationDriver:
    """Wires the scheduler, the aggregator and a per-item operation together."""

    def __init__(
        self,
        session: DirectorySession,
        config: BulkOperationConfig,
        operation: PerItemOperation,
        operation_name: str = "operation",
        required_identity: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
        batch_listeners: Iterable[BatchCallback] = (),
        scheduler: Optional[BatchScheduler] = None,
    ):
        """Initialize the driver.

        Args:
            session: Directory session used by the operation
            config: Validated run configuration
            operation: Per-item operation performing the real work
            operation_name: Name used in logs and dry-run notes
            required_identity: Identity an existing session must match to be reused
            progress_callback: Sink for (processed, total, percent) after each batch
            batch_listeners: Extra hooks called with each completed batch
            scheduler: Scheduler override; built from ``config`` when omitted
        """
        self.session = session
        self.config = config
        self.operation = operation
        self.operation_name = operation_name
        self.required_identity = required_identity
        self.progress_callback = progress_callback
        self.batch_listeners: List[BatchCallback] = list(batch_listeners)
        self.scheduler = scheduler or self._build_scheduler(config)

        self._state = DriverState.IDLE
        self._owns_session = False
        self._cancel_event = threading.Event()

    @staticmethod
    def _build_scheduler(config: BulkOperationConfig) -> BatchScheduler:
        invoker = RetryingInvoker(
            max_retries=config.max_retries, jitter_range=config.retry_jitter_range
        )
        pool = WorkerPool(invoker, start_delay_range=config.start_delay_range)
        return BatchScheduler(pool)

    @property
    def state(self) -> DriverState:
        return self._state

    @property
    def owns_session(self) -> bool:
        return self._owns_session

    def cancel(self) -> None:
        """Request cancellation; honoured at the next batch boundary."""
        if not self._cancel_event.is_set():
            logger.warning("Cancellation requested for %s", self.operation_name)
        self._cancel_event.set()

    def run(self, items: Sequence[WorkItem]) -> BulkRunReport:
        """Execute the full lifecycle over the given items.

        Args:
            items: Work items in input order

        Returns:
            BulkRunReport with final statistics and results

        Raises:
            ConnectionFailedError: If no usable session could be established
            ValidationFailedError: If the input cannot be processed at all
        """
        self._owns_session = False
        completed = False
        try:
            self._connect()
            self._validate(items)
            report = self._process(items)
            completed = True
            return report
        finally:
            # A failed run keeps the state it failed in
            final_state = DriverState.DONE if completed else self._state
            self._disconnect()
            self._state = final_state

    def _connect(self) -> None:
        self._state = DriverState.CONNECTING

        if self.session.is_connected():
            identity = self.session.identity
            if self.required_identity and identity != self.required_identity:
                self._state = DriverState.CONNECTION_FAILED
                raise ConnectionFailedError(
                    f"Existing session is bound to '{identity}', "
                    f"expected '{self.required_identity}'"
                )
            logger.info("Reusing existing session for %s", identity or "current identity")
            return

        try:
            self.session.connect()
        except Exception as e:
            self._state = DriverState.CONNECTION_FAILED
            raise ConnectionFailedError(f"Failed to connect to directory: {e}") from e

        self._owns_session = True
        logger.info("Connected to directory as %s", self.session.identity or "unknown identity")

    def _validate(self, items: Sequence[WorkItem]) -> None:
        self._state = DriverState.VALIDATING

        if not items:
            self._state = DriverState.VALIDATION_FAILED
            raise ValidationFailedError("Input contains no items to process")

        if not any(item.identifier or item.resolved_key for item in items):
            self._state = DriverState.VALIDATION_FAILED
            raise ValidationFailedError("No input item carries an identifying field")

    def _process(self, items: Sequence[WorkItem]) -> BulkRunReport:
        self._state = DriverState.PROCESSING

        operation = DryRunOperation(self.operation_name) if self.config.dry_run else self.operation
        aggregator = ResultAggregator(total_items=len(items))

        def on_batch_complete(batch_index: int, results: List[OperationResult]) -> None:
            aggregator.record_batch(batch_index, results)
            for listener in self.batch_listeners:
                listener(batch_index, results)

        logger.info(
            "Processing %d items for %s (batch size %d, concurrency %d%s)",
            len(items),
            self.operation_name,
            self.config.batch_size,
            self.config.concurrency_limit,
            ", dry run" if self.config.dry_run else "",
        )

        aggregator.start()
        try:
            batches = self.scheduler.run(
                items,
                batch_size=self.config.batch_size,
                concurrency_limit=self.config.concurrency_limit,
                inter_batch_delay_seconds=self.config.inter_batch_delay_seconds,
                per_item_op=operation,
                on_batch_complete=on_batch_complete,
                progress_callback=self.progress_callback,
                cancel_event=self._cancel_event,
            )
        finally:
            aggregator.finish()

        self._state = DriverState.SUMMARIZING
        statistics = aggregator.snapshot()
        report = BulkRunReport(
            operation_name=self.operation_name,
            statistics=statistics,
            results=aggregator.all_items(),
            failed=aggregator.failed_items(),
            batches=batches,
            cancelled=self._cancel_event.is_set() and statistics.processed_count < len(items),
            dry_run=self.config.dry_run,
            session_owned=self._owns_session,
        )
        logger.info(
            "%s finished: %d succeeded, %d failed, %d skipped of %d",
            self.operation_name,
            statistics.success_count,
            statistics.failure_count,
            statistics.skipped_count,
            statistics.total_items,
        )
        return report

    def _disconnect(self) -> None:
        if not self._owns_session:
            return
        self._state = DriverState.DISCONNECTING
        try:
            self.session.disconnect()
            logger.info("Disconnected from directory")
        except Exception as e:
            logger.warning("Failed to disconnect cleanly: %s", e)
        finally:
            self._owns_session = False

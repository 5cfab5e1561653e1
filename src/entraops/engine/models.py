"""Data models for the bulk operation engine.

Classes:
    OperationStatus: Terminal status of a processed work item
    WorkItem: One unit of input for a bulk operation
    OperationResult: Outcome of processing one work item
    BatchPlan: A positional slice of the input processed together
    RunStatistics: Counters describing a bulk run
    BulkOperationConfig: Validated tuning knobs for a bulk run
    BulkRunReport: Everything a finished run hands back to its caller
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OperationStatus(str, Enum):
    """Terminal status of a processed work item."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class WorkItem:
    """One unit of input for a bulk operation.

    Attributes:
        identifier: Human-readable or opaque identifier of the target
        resolved_key: Optional pre-resolved object id (fast path)
        raw_record: The original input row, kept verbatim for re-export
        row_number: Line number in the input file, if known
    """

    identifier: str
    resolved_key: Optional[str] = None
    raw_record: Dict[str, str] = field(default_factory=dict, compare=False)
    row_number: Optional[int] = field(default=None, compare=False)

    def __post_init__(self):
        """Reject items without an identifier."""
        if not self.identifier or not str(self.identifier).strip():
            raise ValueError("WorkItem identifier cannot be empty")

    @property
    def lookup_key(self) -> str:
        """Key to address the target with, preferring the resolved id."""
        return self.resolved_key or self.identifier


@dataclass(frozen=True)
class OperationResult:
    """Outcome of processing one work item."""

    identifier: str
    status: OperationStatus
    resolved_key: Optional[str] = None
    error_message: Optional[str] = None
    timestamp: datetime = field(default_factory=_utc_now)
    details: Dict[str, Any] = field(default_factory=dict, compare=False)
    retry_count: int = 0
    processing_time: float = 0.0

    @classmethod
    def success(cls, item: WorkItem, **kwargs: Any) -> "OperationResult":
        """Build a successful result for an item."""
        kwargs.setdefault("resolved_key", item.resolved_key)
        return cls(identifier=item.identifier, status=OperationStatus.SUCCESS, **kwargs)

    @classmethod
    def failed(cls, item: WorkItem, error_message: str, **kwargs: Any) -> "OperationResult":
        """Build a failed result for an item."""
        kwargs.setdefault("resolved_key", item.resolved_key)
        return cls(
            identifier=item.identifier,
            status=OperationStatus.FAILED,
            error_message=error_message,
            **kwargs,
        )

    @classmethod
    def skipped(
        cls, item: WorkItem, note: Optional[str] = None, **kwargs: Any
    ) -> "OperationResult":
        """Build a skipped result for an item, with an optional explanatory note."""
        kwargs.setdefault("resolved_key", item.resolved_key)
        return cls(
            identifier=item.identifier,
            status=OperationStatus.SKIPPED,
            error_message=note,
            **kwargs,
        )

    @property
    def is_failure(self) -> bool:
        return self.status == OperationStatus.FAILED


@dataclass(frozen=True)
class BatchPlan:
    """A positional slice of the input processed together."""

    batch_index: int
    items: Tuple[WorkItem, ...]

    @property
    def size(self) -> int:
        return len(self.items)


@dataclass
class RunStatistics:
    """Counters describing a bulk run.

    The aggregator mutates these under its lock; everyone else reads copies
    returned by ``ResultAggregator.snapshot()``.
    """

    total_items: int = 0
    processed_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def percent_complete(self) -> float:
        """Processed share of the total, rounded to one decimal."""
        if self.total_items == 0:
            return 0.0
        return round(self.processed_count / self.total_items * 100, 1)

    @property
    def success_rate(self) -> float:
        """Success rate as a percentage of processed items."""
        if self.processed_count == 0:
            return 0.0
        return (self.success_count / self.processed_count) * 100

    @property
    def duration(self) -> float:
        """Elapsed seconds between start and end (or now, while running)."""
        if self.start_time is None:
            return 0.0
        end = self.end_time or _utc_now()
        return (end - self.start_time).total_seconds()

    @property
    def has_failures(self) -> bool:
        return self.failure_count > 0

    def is_consistent(self) -> bool:
        """Check the counter invariant."""
        return (
            self.success_count + self.failure_count + self.skipped_count == self.processed_count
            and self.processed_count <= self.total_items
        )


@dataclass
class BulkOperationConfig:
    """Validated tuning knobs for a bulk run.

    Attributes:
        batch_size: Items per batch (>= 1)
        concurrency_limit: Simultaneously in-flight operations within a batch (>= 1)
        max_retries: Retries on throttling, not counting the first attempt (>= 0)
        inter_batch_delay_seconds: Cooldown between batches (>= 0)
        dry_run: Substitute a no-op operation that reports every item as skipped
        start_delay_range: Random pre-start delay per item, in seconds
        retry_jitter_range: Random jitter added to each backoff delay, in seconds
    """

    batch_size: int = 20
    concurrency_limit: int = 10
    max_retries: int = 5
    inter_batch_delay_seconds: float = 2.0
    dry_run: bool = False
    start_delay_range: Tuple[float, float] = (0.1, 0.5)
    retry_jitter_range: Tuple[float, float] = (0.2, 1.0)

    def __post_init__(self):
        """Validate field ranges."""
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be a positive integer, got {self.batch_size}")
        if self.concurrency_limit < 1:
            raise ValueError(
                f"concurrency_limit must be a positive integer, got {self.concurrency_limit}"
            )
        if self.max_retries < 0:
            raise ValueError(f"max_retries cannot be negative, got {self.max_retries}")
        if self.inter_batch_delay_seconds < 0:
            raise ValueError(
                f"inter_batch_delay_seconds cannot be negative, got {self.inter_batch_delay_seconds}"
            )
        self.start_delay_range = _validate_range("start_delay_range", self.start_delay_range)
        self.retry_jitter_range = _validate_range("retry_jitter_range", self.retry_jitter_range)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_size": self.batch_size,
            "concurrency_limit": self.concurrency_limit,
            "max_retries": self.max_retries,
            "inter_batch_delay_seconds": self.inter_batch_delay_seconds,
            "dry_run": self.dry_run,
            "start_delay_range": list(self.start_delay_range),
            "retry_jitter_range": list(self.retry_jitter_range),
        }


def _validate_range(name: str, value: Any) -> Tuple[float, float]:
    try:
        low, high = (float(v) for v in value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a pair of numbers, got {value!r}")
    if low < 0 or high < low:
        raise ValueError(f"{name} must satisfy 0 <= low <= high, got ({low}, {high})")
    return (low, high)


@dataclass
class BulkRunReport:
    """Everything a finished run hands back to its caller."""

    operation_name: str
    statistics: RunStatistics
    results: List[OperationResult] = field(default_factory=list)
    failed: List[OperationResult] = field(default_factory=list)
    batches: List[BatchPlan] = field(default_factory=list)
    cancelled: bool = False
    dry_run: bool = False
    session_owned: bool = False

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)

    @property
    def failed_identifiers(self) -> List[str]:
        return [result.identifier for result in self.failed]

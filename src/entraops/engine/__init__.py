"""Bulk operation engine for entraops.

This package contains the batched, rate-limited, parallel engine shared by
every bulk tool: input parsing, retry handling, the worker pool, the batch
scheduler, result aggregation, the run driver and reporting.

Modules:
    models: Work items, results, statistics and run configuration
    retry: Exponential backoff with jitter on throttling
    batch: Worker pool, batch scheduler and progress display
    aggregator: Thread-safe result accumulation
    driver: Run lifecycle and session ownership
    processors: CSV input and report artifacts
    reporting: Rich console reports
"""

from .aggregator import ResultAggregator
from .batch import BatchScheduler, ProgressTracker, WorkerPool
from .driver import BulkOperationDriver, DriverState, DryRunOperation
from .exceptions import (
    ConnectionFailedError,
    EngineError,
    ThrottledError,
    ThrottleExhaustedError,
    ValidationFailedError,
)
from .interfaces import DirectorySession
from .models import (
    BatchPlan,
    BulkOperationConfig,
    BulkRunReport,
    OperationResult,
    OperationStatus,
    RunStatistics,
    WorkItem,
)
from .processors import (
    CSVProcessor,
    FailedItemsWriter,
    IncrementalReportWriter,
    ValidationError,
    load_completed_identifiers,
)
from .reporting import ReportGenerator
from .retry import RetryingInvoker, classify_throttle

__all__ = [
    "BatchPlan",
    "BatchScheduler",
    "BulkOperationConfig",
    "BulkOperationDriver",
    "BulkRunReport",
    "CSVProcessor",
    "ConnectionFailedError",
    "DirectorySession",
    "DriverState",
    "DryRunOperation",
    "EngineError",
    "FailedItemsWriter",
    "IncrementalReportWriter",
    "OperationResult",
    "OperationStatus",
    "ProgressTracker",
    "ReportGenerator",
    "ResultAggregator",
    "RetryingInvoker",
    "RunStatistics",
    "ThrottleExhaustedError",
    "ThrottledError",
    "ValidationError",
    "ValidationFailedError",
    "WorkItem",
    "WorkerPool",
    "classify_throttle",
    "load_completed_identifiers",
]

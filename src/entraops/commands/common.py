"""Common command infrastructure for entraops CLI commands.

This module provides the functionality shared by the bulk commands:
- Standard typer options (batch size, concurrency, dry run, output, resume)
- Graph client creation from configuration
- Input loading from CSV or from a directory enumeration
- Running the bulk driver with progress, Ctrl+C handling and artifacts
- Mapping run outcomes to exit codes
"""

import logging
import signal
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

import typer
from rich.console import Console

from ..engine import (
    BulkOperationDriver,
    BulkRunReport,
    ConnectionFailedError,
    CSVProcessor,
    FailedItemsWriter,
    IncrementalReportWriter,
    ProgressTracker,
    ReportGenerator,
    ValidationFailedError,
    WorkItem,
    load_completed_identifiers,
)
from ..graph_clients import GraphClientManager, GraphError
from ..operations.directory import ENUMERATED_FIELDNAMES, enumerate_users
from ..utils.config import Config

# Shared instances
console = Console()
logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2
EXIT_CANCELLED = 130

MAX_CLI_CONCURRENCY = 20


def batch_size_option() -> Any:
    return typer.Option(
        None, "--batch-size", "-b", min=1, help="Items per batch (default from config: 20)"
    )


def concurrency_option() -> Any:
    return typer.Option(
        None,
        "--concurrency",
        "-c",
        min=1,
        max=MAX_CLI_CONCURRENCY,
        help=f"Parallel workers per batch, 1-{MAX_CLI_CONCURRENCY} (default from config: 10)",
    )


def max_retries_option() -> Any:
    return typer.Option(
        None, "--max-retries", min=0, help="Retries per item when throttled (default: 5)"
    )


def batch_delay_option() -> Any:
    return typer.Option(
        None, "--batch-delay", min=0.0, help="Seconds to wait between batches (default: 2)"
    )


def dry_run_option() -> Any:
    return typer.Option(False, "--dry-run", help="Run the full pipeline without making changes")


def output_dir_option() -> Any:
    return typer.Option(
        None, "--output-dir", "-o", help="Directory for the report and failed-items files"
    )


def resume_option() -> Any:
    return typer.Option(
        None,
        "--resume",
        help="Existing report file; rows already succeeded or skipped there are not processed again",
    )


def all_users_option() -> Any:
    return typer.Option(
        False, "--all-users", help="Process every user in the directory instead of an input file"
    )


def force_option() -> Any:
    return typer.Option(False, "--force", "-f", help="Skip the confirmation prompt")


@dataclass
class BulkRunOptions:
    """Options shared by every bulk command."""

    batch_size: Optional[int] = None
    concurrency: Optional[int] = None
    max_retries: Optional[int] = None
    batch_delay: Optional[float] = None
    dry_run: bool = False
    output_dir: Optional[Path] = None
    resume: Optional[Path] = None


@dataclass
class RunArtifacts:
    """Paths of the files a bulk run produces."""

    report_file: Path
    failed_file: Path


def get_config() -> Config:
    return Config()


def create_graph_client(config: Config) -> GraphClientManager:
    """Create a Graph client manager from configuration and environment."""
    return GraphClientManager.from_config(config.get_graph_config())


def build_artifact_paths(
    operation_name: str, output_dir: Path, resume: Optional[Path] = None
) -> RunArtifacts:
    """Return report and failed-items paths for a run.

    A resumed run keeps appending to the report it resumes from.
    """
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    report_file = resume or output_dir / f"{operation_name}-report-{timestamp}.csv"
    failed_file = output_dir / f"{operation_name}-failed-{timestamp}.csv"
    return RunArtifacts(report_file=report_file, failed_file=failed_file)


def load_input(
    input_file: Optional[Path], all_users: bool, graph: GraphClientManager
) -> Tuple[List[str], List[WorkItem]]:
    """Load work items from a CSV file or from the directory.

    Args:
        input_file: CSV input; ignored when ``all_users`` is set
        all_users: Enumerate every user through Graph
        graph: Graph client, connected here when enumerating

    Returns:
        Tuple of (input fieldnames, work items)

    Raises:
        ValidationFailedError: If the input is missing or invalid
        ConnectionFailedError: If enumeration cannot connect
    """
    if all_users:
        if input_file is not None:
            raise ValidationFailedError("Use either an input file or --all-users, not both")
        if not graph.is_connected():
            try:
                graph.connect()
            except GraphError as e:
                raise ConnectionFailedError(f"Failed to connect to directory: {e}") from e
        with console.status("[blue]Enumerating directory users...[/blue]"):
            items = enumerate_users(graph)
        return list(ENUMERATED_FIELDNAMES), items

    if input_file is None:
        raise ValidationFailedError("An input file is required unless --all-users is given")
    if not input_file.exists():
        raise ValidationFailedError(f"Input file not found: {input_file}")

    processor = CSVProcessor(input_file)
    items = processor.parse_work_items()
    return processor.fieldnames, items


def apply_resume(items: Sequence[WorkItem], resume: Optional[Path]) -> List[WorkItem]:
    """Drop items already completed according to an existing report."""
    if resume is None:
        return list(items)
    if not resume.exists():
        raise ValidationFailedError(f"Report to resume not found: {resume}")

    completed = load_completed_identifiers(resume)
    remaining = [item for item in items if item.identifier not in completed]
    console.print(
        f"[dim]Resuming from {resume}: {len(items) - len(remaining)} already completed, "
        f"{len(remaining)} remaining[/dim]"
    )
    return remaining


def exit_code_for(report: BulkRunReport) -> int:
    if report.cancelled:
        return EXIT_CANCELLED
    if report.has_failures:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS


class _InterruptHandler:
    """Routes the first Ctrl+C to ``driver.cancel()``; a second one aborts."""

    def __init__(self, driver: BulkOperationDriver):
        self.driver = driver
        self._previous: Any = None
        self._installed = False
        self._interrupted = False

    def __enter__(self) -> "_InterruptHandler":
        # Signal handlers can only be installed from the main thread
        if threading.current_thread() is threading.main_thread():
            self._previous = signal.signal(signal.SIGINT, self._handle)
            self._installed = True
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._installed:
            signal.signal(signal.SIGINT, self._previous)
            self._installed = False

    def _handle(self, signum, frame) -> None:
        if self._interrupted:
            raise KeyboardInterrupt
        self._interrupted = True
        console.print(
            "\n[yellow]Cancelling after the current batch... press Ctrl+C again to abort[/yellow]"
        )
        self.driver.cancel()


def run_bulk_operation(
    operation: Any,
    graph: GraphClientManager,
    input_file: Optional[Path],
    options: BulkRunOptions,
    all_users: bool = False,
    config: Optional[Config] = None,
) -> int:
    """Run one per-item operation over the input and report on it.

    Args:
        operation: Per-item operation with ``name`` and ``report_fields`` attributes
        graph: Graph client shared by the operation
        input_file: CSV input file
        options: Common bulk options from the command line
        all_users: Enumerate the directory instead of reading ``input_file``
        config: Configuration (loaded when omitted)

    Returns:
        Process exit code
    """
    config = config or get_config()
    operation_name = operation.name
    owns_enumeration_session = all_users and not graph.is_connected()

    try:
        # Step 1: load input
        console.print("[blue]Step 1: Loading input...[/blue]")
        fieldnames, items = load_input(input_file, all_users, graph)
        console.print(f"[green]✓ Loaded {len(items)} items[/green]")
        items = apply_resume(items, options.resume)
        if options.resume is not None and not items:
            console.print("[green]Nothing left to process, every item is already complete.[/green]")
            return EXIT_SUCCESS

        try:
            bulk_config = config.bulk_config(
                batch_size=options.batch_size,
                concurrency_limit=options.concurrency,
                max_retries=options.max_retries,
                inter_batch_delay_seconds=options.batch_delay,
                dry_run=options.dry_run,
            )
        except ValueError as e:
            raise ValidationFailedError(f"Invalid bulk configuration: {e}") from e

        output_dir = options.output_dir or Path(config.get("bulk.output_directory", "."))
        artifacts = build_artifact_paths(operation_name, Path(output_dir), options.resume)

        # Step 2: process
        console.print(f"\n[blue]Step 2: Running {operation_name}...[/blue]")
        console.print(
            f"[dim]Batch size: {bulk_config.batch_size}, concurrency: "
            f"{bulk_config.concurrency_limit}, dry run: {bulk_config.dry_run}[/dim]"
        )
        report_writer = IncrementalReportWriter(
            artifacts.report_file,
            fieldnames,
            items,
            detail_fields=getattr(operation, "report_fields", ()),
            append=options.resume is not None,
            redacted_columns=getattr(operation, "redacted_columns", ()),
        )
        progress = ProgressTracker(console)
        driver = BulkOperationDriver(
            graph,
            bulk_config,
            operation,
            operation_name=operation_name,
            progress_callback=progress,
            batch_listeners=[report_writer],
        )

        progress.start_progress(len(items), f"{operation_name}")
        try:
            with _InterruptHandler(driver):
                report = driver.run(items)
        finally:
            progress.finish_progress()

    except ValidationFailedError as e:
        console.print(f"[red]✗ Input validation failed: {e.message}[/red]")
        for error in e.errors:
            console.print(f"  [red]{error}[/red]")
        return EXIT_FATAL
    except ConnectionFailedError as e:
        console.print(f"[red]✗ {e.message}[/red]")
        return EXIT_FATAL
    except GraphError as e:
        console.print(f"[red]✗ Microsoft Graph error: {e}[/red]")
        return EXIT_FATAL
    finally:
        if owns_enumeration_session and graph.is_connected():
            graph.disconnect()

    # Step 3: report
    console.print("\n[blue]Step 3: Results[/blue]")
    report_generator = ReportGenerator(console)
    report_generator.generate_summary_report(report)
    if report.failed:
        report_generator.generate_error_summary(report)
        report_generator.generate_detailed_report(report, show_successful=False)
        written = FailedItemsWriter(fieldnames, items).write(artifacts.failed_file, report.failed)
        console.print(f"[yellow]Failed items ({written}) written to {artifacts.failed_file}[/yellow]")
        console.print("[dim]Fix the causes above and re-run with that file as input.[/dim]")
    if report_writer.rows_written:
        console.print(f"[dim]Report written to {artifacts.report_file}[/dim]")

    return exit_code_for(report)


def confirm_or_abort(message: str, force: bool, dry_run: bool) -> None:
    """Ask for confirmation unless forced or dry running."""
    if force or dry_run:
        return
    if not typer.confirm(message):
        console.print("[yellow]Operation cancelled.[/yellow]")
        raise typer.Exit(EXIT_SUCCESS)

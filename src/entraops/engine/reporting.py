"""Reporting components for bulk operations.

This module provides summary and error reports for bulk run results, with
Rich formatting for console output.

Classes:
    ReportGenerator: Generates formatted reports for bulk operation results
"""

from typing import Dict, List

from rich.columns import Columns
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .models import BulkRunReport, OperationResult, OperationStatus


class ReportGenerator:
    """Generates summary and detailed reports for bulk operations."""

    def __init__(self, console: Console):
        """Initialize report generator.

        Args:
            console: Rich console for output
        """
        self.console = console

    def generate_summary_report(self, report: BulkRunReport):
        """Generate and display summary report.

        Args:
            report: Finished bulk run report
        """
        stats = report.statistics
        title = report.operation_name.replace("-", " ").title()

        summary_table = Table(show_header=False, box=None, padding=(0, 1))
        summary_table.add_column("Metric", style="bold cyan")
        summary_table.add_column("Value", style="bold")

        summary_table.add_row("Operation", title + (" (dry run)" if report.dry_run else ""))
        summary_table.add_row("Total Items", str(stats.total_items))
        summary_table.add_row("Processed", f"{stats.processed_count} ({stats.percent_complete}%)")
        summary_table.add_row("Successful", f"[green]{stats.success_count}[/green]")
        summary_table.add_row("Failed", f"[red]{stats.failure_count}[/red]")
        summary_table.add_row("Skipped", f"[yellow]{stats.skipped_count}[/yellow]")
        summary_table.add_row("Success Rate", f"{stats.success_rate:.1f}%")
        summary_table.add_row("Batches", str(len(report.batches)))
        summary_table.add_row("Duration", self._format_duration(stats.duration))

        status_panels = []
        if stats.success_count > 0:
            status_panels.append(
                Panel(
                    f"[bold green]{stats.success_count}[/bold green]\nSuccessful",
                    style="green",
                    width=15,
                )
            )
        if stats.failure_count > 0:
            status_panels.append(
                Panel(f"[bold red]{stats.failure_count}[/bold red]\nFailed", style="red", width=15)
            )
        if stats.skipped_count > 0:
            status_panels.append(
                Panel(
                    f"[bold yellow]{stats.skipped_count}[/bold yellow]\nSkipped",
                    style="yellow",
                    width=15,
                )
            )

        self.console.print()
        self.console.print(
            Panel(summary_table, title=f"[bold]{title} Summary[/bold]", border_style="blue")
        )

        if status_panels:
            self.console.print()
            self.console.print(Columns(status_panels, equal=True, expand=True))

        if report.cancelled:
            self.console.print(
                f"[yellow]Run was cancelled: {stats.total_items - stats.processed_count} "
                f"items were not processed[/yellow]"
            )

    def generate_error_summary(self, report: BulkRunReport, max_examples: int = 3):
        """Generate summary of errors encountered during processing.

        Args:
            report: Finished bulk run report
            max_examples: Number of example identifiers per error type
        """
        if not report.failed:
            self.console.print("[green]No errors encountered![/green]")
            return

        error_groups: Dict[str, List[OperationResult]] = {}
        for result in report.failed:
            error_msg = result.error_message or "Unknown error"
            error_type = error_msg.split(":")[0].strip()
            error_groups.setdefault(error_type, []).append(result)

        error_table = Table(title="Error Summary", show_header=True, header_style="bold red")
        error_table.add_column("Error Type", style="red", width=40)
        error_table.add_column("Count", justify="right", width=8)
        error_table.add_column("Examples", style="dim", width=50)

        for error_type, error_results in error_groups.items():
            examples = [r.identifier for r in error_results[:max_examples]]
            if len(error_results) > max_examples:
                examples.append(f"... and {len(error_results) - max_examples} more")
            error_table.add_row(error_type, str(len(error_results)), "; ".join(examples))

        self.console.print()
        self.console.print(error_table)

    def generate_detailed_report(self, report: BulkRunReport, show_successful: bool = False):
        """Display a per-item table of results.

        Args:
            report: Finished bulk run report
            show_successful: Include successful items, not just failed and skipped ones
        """
        rows = [
            r
            for r in report.results
            if show_successful or r.status != OperationStatus.SUCCESS
        ]
        if not rows:
            self.console.print("[dim]No detailed results to display[/dim]")
            return

        table = Table(title="Detailed Results", show_header=True, header_style="bold magenta")
        table.add_column("Status", style="bold", width=8)
        table.add_column("Identifier", style="cyan")
        table.add_column("Message", style="red")

        for result in rows:
            if result.status == OperationStatus.SUCCESS:
                status_style = "[green]✓[/green]"
            elif result.status == OperationStatus.FAILED:
                status_style = "[red]✗[/red]"
            else:
                status_style = "[yellow]⚠[/yellow]"
            table.add_row(status_style, result.identifier, result.error_message or "")

        self.console.print()
        self.console.print(table)

    def _format_duration(self, seconds: float) -> str:
        """Format duration in seconds to human-readable string."""
        if seconds < 0:
            return "N/A"

        if seconds < 1:
            return f"{seconds*1000:.0f}ms"
        elif seconds < 60:
            return f"{seconds:.2f}s"
        elif seconds < 3600:
            minutes = int(seconds // 60)
            remaining_seconds = seconds % 60
            return f"{minutes}m {remaining_seconds:.1f}s"
        else:
            hours = int(seconds // 3600)
            remaining_minutes = int((seconds % 3600) // 60)
            remaining_seconds = seconds % 60
            return f"{hours}h {remaining_minutes}m {remaining_seconds:.1f}s"

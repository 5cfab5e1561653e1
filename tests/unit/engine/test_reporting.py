"""Tests for bulk operations reporting components."""

import io
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
from rich.console import Console

from src.entraops.engine.models import BatchPlan, BulkRunReport, OperationResult, RunStatistics
from src.entraops.engine.reporting import ReportGenerator
from tests.fixtures.engine import make_items


def _report(cancelled=False, dry_run=False):
    items = make_items(5)
    results = [
        OperationResult.success(items[0]),
        OperationResult.failed(items[1], "Request_ResourceNotFound: user not found"),
        OperationResult.success(items[2]),
        OperationResult.failed(items[3], "Request_ResourceNotFound: user not found"),
        OperationResult.skipped(items[4], "Already a member"),
    ]
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    stats = RunStatistics(
        total_items=5 if not cancelled else 10,
        processed_count=5,
        success_count=2,
        failure_count=2,
        skipped_count=1,
        start_time=start,
        end_time=start + timedelta(seconds=3),
    )
    return BulkRunReport(
        operation_name="mfa-sync-group",
        statistics=stats,
        results=results,
        failed=[r for r in results if r.is_failure],
        batches=[BatchPlan(0, tuple(items))],
        cancelled=cancelled,
        dry_run=dry_run,
    )


class TestReportGenerator:
    """Test cases for ReportGenerator class."""

    @pytest.fixture
    def mock_console(self):
        """Create a mock console for testing."""
        return Mock(spec=Console)

    @pytest.fixture
    def text_console(self):
        return Console(file=io.StringIO(), width=160, force_terminal=False)

    def test_summary_report_prints_panels(self, mock_console):
        ReportGenerator(mock_console).generate_summary_report(_report())
        assert mock_console.print.call_count >= 3

    def test_summary_report_content(self, text_console):
        ReportGenerator(text_console).generate_summary_report(_report(dry_run=True))
        output = text_console.file.getvalue()

        assert "Mfa Sync Group Summary" in output
        assert "(dry run)" in output
        assert "40.0%" in output
        assert "3.00s" in output

    def test_summary_report_mentions_cancellation(self, text_console):
        ReportGenerator(text_console).generate_summary_report(_report(cancelled=True))
        assert "5 items were not processed" in text_console.file.getvalue()

    def test_error_summary_groups_by_type(self, text_console):
        ReportGenerator(text_console).generate_error_summary(_report())
        output = text_console.file.getvalue()

        assert "Request_ResourceNotFound" in output
        assert "user2@contoso.com" in output

    def test_error_summary_without_failures(self, mock_console):
        report = _report()
        report.failed = []

        ReportGenerator(mock_console).generate_error_summary(report)

        mock_console.print.assert_called_once_with("[green]No errors encountered![/green]")

    def test_detailed_report_hides_successes_by_default(self, text_console):
        ReportGenerator(text_console).generate_detailed_report(_report())
        output = text_console.file.getvalue()

        assert "user2@contoso.com" in output
        assert "user5@contoso.com" in output
        assert "user1@contoso.com" not in output

    def test_detailed_report_with_nothing_to_show(self, mock_console):
        report = _report()
        report.results = [r for r in report.results if r.status.value == "success"]

        ReportGenerator(mock_console).generate_detailed_report(report)

        mock_console.print.assert_called_once_with("[dim]No detailed results to display[/dim]")

    @pytest.mark.parametrize(
        "seconds,expected",
        [(0.25, "250ms"), (12.5, "12.50s"), (125, "2m 5.0s"), (3725, "1h 2m 5.0s"), (-1, "N/A")],
    )
    def test_format_duration(self, mock_console, seconds, expected):
        assert ReportGenerator(mock_console)._format_duration(seconds) == expected

"""File processing components for bulk operations.

This module reads the tabular input of the bulk tools and writes their
artifacts: the incremental audit report and the failed-items file that can
be fed back in as the next run's input.

Classes:
    CSVProcessor: Handles CSV file parsing and validation
    IncrementalReportWriter: Appends each completed batch to the audit CSV
    FailedItemsWriter: Writes failed items using the input's own schema
"""

import csv
import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from pathlib import Path
from typing import Deque, Dict, Iterable, List, Optional, Sequence, Set

from .exceptions import ValidationFailedError
from .models import OperationResult, OperationStatus, WorkItem

logger = logging.getLogger(__name__)

OBJECT_ID_COLUMNS = {"objectid", "id", "userid"}
PRINCIPAL_NAME_COLUMNS = {"userprincipalname", "upn", "mail"}

REPORT_BASE_FIELDS = ["Identifier", "Status", "ErrorMessage", "Timestamp", "RetryCount"]
COMPLETED_STATUSES = {OperationStatus.SUCCESS.value, OperationStatus.SKIPPED.value}


def normalize_column(name: str) -> str:
    """Normalize a header for matching: case, spaces, dashes and underscores are ignored."""
    return "".join(ch for ch in (name or "").lower() if ch not in " -_")


@dataclass
class ValidationError:
    """Represents a validation error with details."""

    message: str
    line_number: Optional[int] = None
    field: Optional[str] = None

    def __str__(self) -> str:
        if self.line_number:
            return f"Line {self.line_number}: {self.message}"
        return self.message


class CSVProcessor:
    """Handles CSV file parsing and validation for bulk operations.

    The file must carry at least one identifying column: the object id
    (``ObjectId``, ``Id`` or ``UserId``) or the user principal name
    (``UserPrincipalName``, ``UPN`` or ``Mail``). Any other columns are kept
    verbatim on each work item.
    """

    def __init__(self, file_path: Path):
        """Initialize CSV processor with file path.

        Args:
            file_path: Path to the CSV file to process
        """
        self.file_path = Path(file_path)
        self.fieldnames: List[str] = []
        self.object_id_column: Optional[str] = None
        self.principal_name_column: Optional[str] = None

    def _detect_key_columns(self, fieldnames: Sequence[str]) -> None:
        self.fieldnames = list(fieldnames)
        self.object_id_column = None
        self.principal_name_column = None
        for column in fieldnames:
            normalized = normalize_column(column)
            if normalized in OBJECT_ID_COLUMNS and self.object_id_column is None:
                self.object_id_column = column
            elif normalized in PRINCIPAL_NAME_COLUMNS and self.principal_name_column is None:
                self.principal_name_column = column

    def validate_format(self) -> List[ValidationError]:
        """Validate CSV format and return list of validation errors.

        Returns:
            List of ValidationError objects describing any validation issues
        """
        errors: List[ValidationError] = []

        if not self.file_path.exists():
            errors.append(ValidationError(f"File not found: {self.file_path}"))
            return errors

        if not self.file_path.is_file():
            errors.append(ValidationError(f"Path is not a file: {self.file_path}"))
            return errors

        try:
            with open(self.file_path, "r", encoding="utf-8-sig", newline="") as file:
                reader = csv.DictReader(file)

                if not reader.fieldnames:
                    errors.append(ValidationError("CSV file appears to be empty or has no headers"))
                    return errors

                self._detect_key_columns(reader.fieldnames)
                if not self.object_id_column and not self.principal_name_column:
                    errors.append(
                        ValidationError(
                            "Missing identifying column: expected one of "
                            "ObjectId, Id, UserId, UserPrincipalName, UPN, Mail"
                        )
                    )
                    return errors

                row_count = 0
                for row_num, row in enumerate(reader, start=2):
                    row_count += 1
                    if not self._row_key(row):
                        errors.append(
                            ValidationError(
                                "Row has neither an object id nor a user principal name",
                                line_number=row_num,
                            )
                        )

                if row_count == 0:
                    errors.append(ValidationError("CSV file contains no data rows"))

        except csv.Error as e:
            errors.append(ValidationError(f"CSV parsing error: {str(e)}"))
        except UnicodeDecodeError as e:
            errors.append(
                ValidationError(
                    f"File encoding error: {str(e)}. Please ensure file is UTF-8 encoded"
                )
            )

        return errors

    def _value(self, row: Dict[str, str], column: Optional[str]) -> str:
        if not column:
            return ""
        return (row.get(column) or "").strip()

    def _row_key(self, row: Dict[str, str]) -> str:
        return self._value(row, self.principal_name_column) or self._value(
            row, self.object_id_column
        )

    def parse_work_items(self) -> List[WorkItem]:
        """Parse the CSV file into work items.

        Returns:
            List of WorkItem in file order

        Raises:
            ValidationFailedError: If file validation fails
        """
        validation_errors = self.validate_format()
        if validation_errors:
            raise ValidationFailedError(
                f"CSV validation failed for {self.file_path}",
                errors=[str(error) for error in validation_errors],
            )

        items: List[WorkItem] = []
        with open(self.file_path, "r", encoding="utf-8-sig", newline="") as file:
            reader = csv.DictReader(file)
            for row_num, row in enumerate(reader, start=2):
                record = {key: (value or "") for key, value in row.items() if key is not None}
                object_id = self._value(row, self.object_id_column) or None
                identifier = self._value(row, self.principal_name_column) or object_id
                items.append(
                    WorkItem(
                        identifier=identifier,
                        resolved_key=object_id,
                        raw_record=record,
                        row_number=row_num,
                    )
                )

        logger.debug("Parsed %d work items from %s", len(items), self.file_path)
        return items


class _RecordIndex:
    """Maps results back to the work items they came from."""

    def __init__(self, items: Iterable[WorkItem]):
        self._items: Dict[str, Deque[WorkItem]] = defaultdict(deque)
        for item in items:
            self._items[item.identifier].append(item)

    def pop(self, identifier: str) -> Optional[WorkItem]:
        queue = self._items.get(identifier)
        if queue:
            return queue.popleft()
        return None


class IncrementalReportWriter:
    """Appends each completed batch to the audit CSV.

    Usable directly as a ``BatchScheduler`` batch listener. Rows carry the
    input columns followed by the result columns and any operation detail
    columns. Nothing is written until the first batch completes, so a run
    that fails before processing leaves no report behind.
    """

    def __init__(
        self,
        output_file: Path,
        input_fieldnames: Sequence[str],
        items: Iterable[WorkItem],
        detail_fields: Sequence[str] = (),
        append: bool = False,
        redacted_columns: Iterable[str] = (),
    ):
        """Initialize the writer.

        Args:
            output_file: Audit report path
            input_fieldnames: Header of the input file
            items: Work items of the run, used to recover input columns
            detail_fields: Operation specific report columns
            append: Keep existing rows (resume) instead of truncating the file
            redacted_columns: Input columns written blank, matched after normalization

        Raises:
            ValidationFailedError: If the report being appended to has different columns
        """
        self.output_file = Path(output_file)
        self.input_fieldnames = [f for f in input_fieldnames if f not in REPORT_BASE_FIELDS]
        self.detail_fields = [
            f for f in detail_fields if f not in REPORT_BASE_FIELDS and f not in input_fieldnames
        ]
        self.fieldnames = REPORT_BASE_FIELDS[:1] + self.input_fieldnames
        self.fieldnames += REPORT_BASE_FIELDS[1:] + self.detail_fields
        self.redacted_columns = {normalize_column(c) for c in redacted_columns}
        self._index = _RecordIndex(items)
        self.rows_written = 0

        has_content = self.output_file.exists() and self.output_file.stat().st_size > 0
        self._header_pending = not (append and has_content)
        if not self._header_pending:
            self.fieldnames = self._existing_fieldnames()

    def _existing_fieldnames(self) -> List[str]:
        with open(self.output_file, "r", encoding="utf-8-sig", newline="") as f:
            existing = next(csv.reader(f), [])

        if set(existing) != set(self.fieldnames):
            missing = sorted(set(self.fieldnames) - set(existing))
            unexpected = sorted(set(existing) - set(self.fieldnames))
            raise ValidationFailedError(
                f"Report {self.output_file} does not match this run's columns",
                errors=[
                    f"Missing columns: {', '.join(missing) or 'none'}",
                    f"Unexpected columns: {', '.join(unexpected) or 'none'}",
                ],
            )
        return existing

    def _row(self, result: OperationResult) -> Dict[str, str]:
        item = self._index.pop(result.identifier)
        row: Dict[str, str] = {}
        if item:
            for column, value in item.raw_record.items():
                row[column] = "" if normalize_column(column) in self.redacted_columns else value
        row.update({key: _stringify(value) for key, value in result.details.items()})
        row.update(
            {
                "Identifier": result.identifier,
                "Status": result.status.value,
                "ErrorMessage": result.error_message or "",
                "Timestamp": result.timestamp.isoformat(),
                "RetryCount": str(result.retry_count),
            }
        )
        return row

    def __call__(self, batch_index: int, results: Sequence[OperationResult]) -> None:
        if self._header_pending:
            self.output_file.parent.mkdir(parents=True, exist_ok=True)
            mode = "w"
        else:
            mode = "a"

        with open(self.output_file, mode, encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=self.fieldnames, extrasaction="ignore")
            if self._header_pending:
                writer.writeheader()
                self._header_pending = False
            for result in results:
                writer.writerow(self._row(result))
        self.rows_written += len(results)


def _stringify(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, (list, tuple, set)):
        return ";".join(str(v) for v in value)
    return str(value)


def load_completed_identifiers(report_file: Path) -> Set[str]:
    """Read identifiers already completed (success or skipped) from an audit report.

    Args:
        report_file: Existing audit report

    Returns:
        Set of identifiers that should not be processed again
    """
    report_file = Path(report_file)
    if not report_file.exists():
        return set()

    completed: Set[str] = set()
    with open(report_file, "r", encoding="utf-8-sig", newline="") as f:
        for row in csv.DictReader(f):
            if (row.get("Status") or "").strip().lower() in COMPLETED_STATUSES:
                identifier = (row.get("Identifier") or "").strip()
                if identifier:
                    completed.add(identifier)
    return completed


class FailedItemsWriter:
    """Writes failed items using the input's own schema so the file can be re-run."""

    def __init__(self, input_fieldnames: Sequence[str], items: Iterable[WorkItem]):
        self.input_fieldnames = list(input_fieldnames)
        self.items = list(items)

    def write(self, output_file: Path, failed: Sequence[OperationResult]) -> int:
        """Write the failed subset.

        Args:
            output_file: Destination path
            failed: Failed results of the run

        Returns:
            Number of rows written
        """
        index = _RecordIndex(self.items)
        output_file = Path(output_file)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        written = 0
        with open(output_file, "w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=self.input_fieldnames, extrasaction="ignore")
            writer.writeheader()
            for result in failed:
                item = index.pop(result.identifier)
                if item is None:
                    logger.warning("No input row found for failed item %s", result.identifier)
                    continue
                writer.writerow(item.raw_record)
                written += 1

        logger.info("Wrote %d failed items to %s", written, output_file)
        return written

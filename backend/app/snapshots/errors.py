from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from backend.app.snapshots.models import ImportReport
    from backend.app.snapshots.validation import ValidationReport


class SnapshotError(Exception):
    """Base class for import and snapshot failures."""


class StorageError(SnapshotError):
    """A store call failed. Only `TransientStorageError` is retried."""


class TransientStorageError(StorageError):
    """Connection loss or timeout; worth another attempt."""


class ImportValidationError(SnapshotError):
    def __init__(self, report: "ValidationReport") -> None:
        self.report = report
        super().__init__(
            f"Import blocked by {report.critical_count} critical validation issue(s)"
        )


class ImportCancelledError(SnapshotError):
    def __init__(self, report: Optional["ImportReport"] = None) -> None:
        self.report = report
        super().__init__("Import cancelled")


class SnapshotImportError(SnapshotError):
    """No snapshot at all could be produced for a non-empty import."""

    def __init__(self, report: "ImportReport") -> None:
        self.report = report
        super().__init__(f"No snapshot produced for batch {report.batch_id}")


class WorkbookError(SnapshotError):
    """The workbook is missing a required sheet or cannot be read."""

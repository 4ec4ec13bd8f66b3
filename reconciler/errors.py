"""Error taxonomy for reconciliation runs."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

__all__ = [
    "AuditLogError",
    "ConfigurationError",
    "ConfirmationRequiredError",
    "DeletionError",
    "FetchError",
    "ReconciliationError",
    "UnparseableDateWarning",
]


class ReconciliationError(RuntimeError):
    """Base exception for fatal reconciliation failures."""


class ConfigurationError(ReconciliationError):
    """Raised when connection settings are missing or unreadable."""


class FetchError(ReconciliationError):
    """Raised when the store query fails; nothing is reported or deleted."""

    def __init__(self, table: str, filters: Iterable[Any] = (), reason: str = "") -> None:
        self.table = table
        self.filters = tuple(filters)
        rendered = ", ".join(getattr(item, "describe", lambda: repr(item))() for item in self.filters)
        message = f"Failed to fetch rows from '{table}'"
        if rendered:
            message += f" (filters: {rendered})"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class DeletionError(ReconciliationError):
    """Raised when a delete batch is rejected by the store."""

    def __init__(
        self,
        table: str,
        batch_ids: Sequence[Any],
        *,
        deleted_before_failure: int = 0,
        reason: str = "",
    ) -> None:
        self.table = table
        self.batch_ids = tuple(batch_ids)
        self.deleted_before_failure = deleted_before_failure
        preview = ", ".join(str(item) for item in self.batch_ids[:10])
        if len(self.batch_ids) > 10:
            preview += f", ... ({len(self.batch_ids)} ids)"
        message = (
            f"Failed to delete batch [{preview}] from '{table}' after "
            f"{deleted_before_failure} rows were already removed"
        )
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ConfirmationRequiredError(ReconciliationError):
    """Raised when a destructive apply is attempted without confirmation."""


class AuditLogError(ReconciliationError):
    """Raised when the run audit log cannot be read or written."""


@dataclass(frozen=True)
class UnparseableDateWarning:
    """A record whose date matched none of the normalizer strategies."""

    record_id: Any
    raw_date: Optional[str]
    reason: str = "no date strategy matched"

    def describe(self) -> str:
        return f"ID: {self.record_id} | Date: {self.raw_date!r} ({self.reason})"

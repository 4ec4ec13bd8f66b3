"""Deletion executor for finalized removal sets."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple

from connector import StoreClient, SupabaseClientError

from .errors import ConfirmationRequiredError, DeletionError
from .models import ReconciliationPlan

logger = logging.getLogger(__name__)

__all__ = ["BatchOutcome", "DeletionExecutor", "DeletionResult"]


@dataclass(frozen=True)
class BatchOutcome:
    ids: Tuple[Any, ...]
    deleted: int


@dataclass
class DeletionResult:
    """Outcome of one apply step."""

    requested: int
    deleted: int = 0
    batches: List[BatchOutcome] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "requested": self.requested,
            "deleted": self.deleted,
            "batches": [{"ids": list(batch.ids), "deleted": batch.deleted} for batch in self.batches],
        }


class DeletionExecutor:
    """Issues the destructive delete for ids chosen by a reconciliation plan.

    Nothing is ever retried: a rejected batch aborts the apply step and the
    caller is expected to recompute the plan from a fresh snapshot.
    """

    def __init__(self, store: StoreClient, table: str = "appointments", *, batch_size: Optional[int] = None) -> None:
        if not table:
            raise ValueError("table must be provided")
        if batch_size is not None and batch_size < 1:
            raise ValueError("batch_size must be a positive integer")
        self._store = store
        self._table = table
        self._batch_size = batch_size

    def _batches(self, ids: List[Any]) -> Iterable[List[Any]]:
        size = self._batch_size or len(ids)
        for start in range(0, len(ids), size):
            yield ids[start : start + size]

    def apply(self, ids: Iterable[Any], *, confirm: bool = False) -> DeletionResult:
        """Delete ``ids`` from the store once the operator has confirmed."""

        ids = list(ids)
        if not ids:
            logger.info("No records to delete from %s", self._table)
            return DeletionResult(requested=0)
        if not confirm:
            raise ConfirmationRequiredError(
                f"Refusing to delete {len(ids)} records from '{self._table}' without confirmation"
            )

        result = DeletionResult(requested=len(ids))
        for batch in self._batches(ids):
            try:
                deleted = self._store.delete_by_ids(self._table, batch)
            except (SupabaseClientError, LookupError) as exc:
                logger.error("Delete batch of %d ids from %s failed: %s", len(batch), self._table, exc)
                raise DeletionError(
                    self._table,
                    batch,
                    deleted_before_failure=result.deleted,
                    reason=str(exc),
                ) from exc
            if deleted != len(batch):
                logger.warning(
                    "Store removed %d of %d ids in batch; the rest were already gone", deleted, len(batch)
                )
            logger.info("Deleted batch of %d ids from %s", deleted, self._table)
            result.batches.append(BatchOutcome(ids=tuple(batch), deleted=deleted))
            result.deleted += deleted

        logger.info("Deleted %d of %d requested records from %s", result.deleted, result.requested, self._table)
        return result

    def apply_plan(self, plan: ReconciliationPlan, *, confirm: bool = False) -> DeletionResult:
        return self.apply(plan.to_delete, confirm=confirm)

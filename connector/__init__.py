"""Connector interfaces for the appointment store."""

from __future__ import annotations

import copy
import json
import operator
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .base import Filter, StoreClient
from .supabase_client import SupabaseAPIError, SupabaseClientError, SupabaseRestClient

_COMPARATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "neq": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}


def _row_matches(row: Dict[str, Any], predicate: Filter) -> bool:
    value = row.get(predicate.column)
    if predicate.op == "is":
        return value is predicate.value or value == predicate.value
    if predicate.op == "in":
        return value in set(predicate.value)
    comparator = _COMPARATORS.get(predicate.op)
    if comparator is None:
        raise ValueError(f"Unsupported filter operator '{predicate.op}'")
    if value is None:
        return False
    if predicate.op in ("eq", "neq"):
        return comparator(value, predicate.value)
    # Text columns compare lexically, like the hosted store does.
    return comparator(str(value), str(predicate.value))


class InMemoryStore:
    """In-memory store simulator serving a snapshot of appointment rows."""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None) -> None:
        self._tables: Dict[str, List[Dict[str, Any]]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }
        self.fetch_calls: List[Tuple[str, Tuple[Filter, ...]]] = []
        self.delete_calls: List[Tuple[str, Tuple[Any, ...]]] = []

    @classmethod
    def from_json_file(cls, path: Path | str, table: str = "appointments") -> "InMemoryStore":
        """Load a JSON list of rows (as exported from the store) into ``table``."""

        path = Path(path)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid snapshot JSON in {path}: {exc.msg}") from exc
        if isinstance(payload, dict) and isinstance(payload.get(table), list):
            payload = payload[table]
        if not isinstance(payload, list):
            raise ValueError("Snapshot must contain a JSON list of rows.")
        rows = [row for row in payload if isinstance(row, dict)]
        return cls({table: rows})

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return [copy.deepcopy(row) for row in self._tables.get(table, [])]

    def fetch_all(
        self,
        table: str,
        filters: Iterable[Filter] = (),
        *,
        select: str = "*",
        order: Optional[Tuple[str, bool]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        filters = tuple(filters)
        self.fetch_calls.append((table, filters))
        if table not in self._tables:
            raise LookupError(f"Unknown table '{table}'")

        matched = [
            copy.deepcopy(row)
            for row in self._tables[table]
            if all(_row_matches(row, predicate) for predicate in filters)
        ]
        if order is not None:
            column, ascending = order
            matched.sort(key=lambda row: (row.get(column) is None, str(row.get(column))), reverse=not ascending)
        if limit is not None:
            matched = matched[:limit]
        return matched

    def delete_by_ids(self, table: str, ids: Sequence[Any]) -> int:
        self.delete_calls.append((table, tuple(ids)))
        if table not in self._tables:
            raise LookupError(f"Unknown table '{table}'")
        doomed = set(ids)
        before = len(self._tables[table])
        self._tables[table] = [row for row in self._tables[table] if row.get("id") not in doomed]
        return before - len(self._tables[table])


__all__ = [
    "Filter",
    "InMemoryStore",
    "StoreClient",
    "SupabaseAPIError",
    "SupabaseClientError",
    "SupabaseRestClient",
]

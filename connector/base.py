"""Store-facing types shared by every connector."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

__all__ = ["Filter", "StoreClient"]


@dataclass(frozen=True)
class Filter:
    """A single column predicate understood by every store client."""

    column: str
    op: str
    value: Any = None

    def describe(self) -> str:
        return f"{self.column} {self.op} {self.value!r}"


class StoreClient(Protocol):
    """Minimal interface the reconciliation engine needs from a store."""

    def fetch_all(
        self,
        table: str,
        filters: Iterable[Filter] = (),
        *,
        select: str = "*",
        order: Optional[Tuple[str, bool]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return every row of ``table`` matching all ``filters``."""

    def delete_by_ids(self, table: str, ids: Sequence[Any]) -> int:
        """Delete rows by primary key and return the number removed."""

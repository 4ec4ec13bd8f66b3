"""Record-fetch plumbing shared by planning and window verification."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from connector import Filter, StoreClient, SupabaseClientError

from .errors import FetchError
from .models import AppointmentRecord

logger = logging.getLogger(__name__)

__all__ = ["fetch_records"]


def fetch_records(
    store: StoreClient,
    table: str,
    filters: Iterable[Filter] = (),
    *,
    select: str = "*",
    order: Optional[Tuple[str, bool]] = None,
) -> List[AppointmentRecord]:
    """Fetch ``table`` in a single query and normalize the rows.

    Any store failure aborts the run with :class:`FetchError`; rows without
    an ``id`` cannot be reconciled and are skipped with a warning.
    """

    filters = tuple(filters)
    try:
        rows = store.fetch_all(table, filters, select=select, order=order)
    except (SupabaseClientError, LookupError, ValueError) as exc:
        logger.error("Fetching %s failed: %s", table, exc)
        raise FetchError(table, filters, reason=str(exc)) from exc

    records: List[AppointmentRecord] = []
    for row in rows:
        try:
            records.append(AppointmentRecord.from_row(row))
        except ValueError as exc:
            logger.warning("Skipping invalid appointment row %s: %s", row, exc)
    logger.info("Loaded %d appointment records from %s", len(records), table)
    return records

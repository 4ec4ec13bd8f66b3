"""Grouping of appointment records and survivor selection."""
from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from .dates import parse_timestamp
from .identity import IdentityKey, KeyBuilder, build_key
from .models import AppointmentRecord, DuplicateGroup, ReconciliationPlan

logger = logging.getLogger(__name__)

__all__ = ["build_plan", "first_seen_pairs", "find_id_collisions", "group", "survivor_order"]

# Records without a usable creation time sort as if created last.
_CREATED_LAST = datetime.max.replace(tzinfo=timezone.utc)


def _id_order(record_id: Any) -> Tuple[int, Any]:
    if isinstance(record_id, int) and not isinstance(record_id, bool):
        return (0, record_id)
    return (1, str(record_id))


def survivor_order(record: AppointmentRecord) -> Tuple[datetime, Tuple[int, Any]]:
    """Sort key placing the survivor first: oldest ``created_at``, then lowest id."""

    created = parse_timestamp(record.created_at)
    if created is None and record.created_at:
        logger.debug("Record %s has unparseable created_at %r", record.id, record.created_at)
    return (created or _CREATED_LAST, _id_order(record.id))


def group(
    records: Iterable[AppointmentRecord], key_builder: KeyBuilder = build_key
) -> List[DuplicateGroup]:
    """Partition ``records`` by identity key.

    Every record lands in exactly one group. Groups keep the order in which
    their key was first seen; members are sorted by :func:`survivor_order`.
    """

    buckets: Dict[IdentityKey, List[AppointmentRecord]] = {}
    for record in records:
        buckets.setdefault(key_builder(record), []).append(record)

    return [
        DuplicateGroup(key=key, members=tuple(sorted(members, key=survivor_order)))
        for key, members in buckets.items()
    ]


def find_id_collisions(records: Sequence[AppointmentRecord]) -> List[Any]:
    """Return ids that appear more than once in one snapshot."""

    counts = Counter(str(record.id) for record in records)
    seen: set = set()
    collisions: List[Any] = []
    for record in records:
        marker = str(record.id)
        if counts[marker] > 1 and marker not in seen:
            seen.add(marker)
            collisions.append(record.id)
    return collisions


def first_seen_pairs(
    records: Iterable[AppointmentRecord], key_builder: KeyBuilder = build_key
) -> List[Tuple[AppointmentRecord, AppointmentRecord]]:
    """List ``(original, duplicate)`` pairs in fetch order, ignoring timestamps."""

    seen: Dict[IdentityKey, AppointmentRecord] = {}
    pairs: List[Tuple[AppointmentRecord, AppointmentRecord]] = []
    for record in records:
        key = key_builder(record)
        if key in seen:
            pairs.append((seen[key], record))
        else:
            seen[key] = record
    return pairs


def build_plan(
    records: Sequence[AppointmentRecord], key_builder: KeyBuilder = build_key
) -> ReconciliationPlan:
    """Compute the survivors and removal set for one snapshot. Never mutates."""

    records = list(records)
    duplicate_groups = [item for item in group(records, key_builder) if item.is_duplicate]
    collisions = find_id_collisions(records)
    if collisions:
        logger.warning("Snapshot contains %d repeated ids: %s", len(collisions), collisions)

    survivors = [item.survivor.id for item in duplicate_groups]
    protected = {str(record_id) for record_id in survivors}
    queued: set = set()
    to_delete: List[Any] = []
    for item in duplicate_groups:
        for candidate in item.candidates:
            marker = str(candidate.id)
            if marker in protected:
                logger.warning(
                    "Not deleting %s: the id is also the survivor of another group", candidate.id
                )
                continue
            if marker in queued:
                continue
            queued.add(marker)
            to_delete.append(candidate.id)

    logger.info(
        "Planned removal of %d records across %d duplicate groups (%d records fetched)",
        len(to_delete),
        len(duplicate_groups),
        len(records),
    )
    return ReconciliationPlan(
        total_records=len(records),
        groups=tuple(duplicate_groups),
        survivors=tuple(survivors),
        to_delete=tuple(to_delete),
        id_collisions=tuple(collisions),
    )

"""Human-auditable rendering of reconciliation plans.

Rendering is side-effect free: the same plan always produces the same text,
which operators review before any deletion is applied.
"""
from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

from .identity import ABSENT_TOKEN
from .models import AppointmentRecord, ReconciliationPlan

__all__ = ["plan_to_dict", "render_pairs", "render_plan"]


def _created(record: AppointmentRecord) -> str:
    return record.created_at if record.created_at is not None else ABSENT_TOKEN


def render_plan(plan: ReconciliationPlan) -> str:
    """Render header, one block per duplicate group and the totals trailer."""

    lines: List[str] = [f"Total appointments: {plan.total_records}"]
    for item in plan.groups:
        lines.append(f"Duplicate Group found for key: {item.key}")
        lines.append(f"  Keeping ID: {item.survivor.id} (Created: {_created(item.survivor)})")
        for candidate in item.candidates:
            lines.append(f"  Deleting ID: {candidate.id} (Created: {_created(candidate)})")
    for record_id in plan.id_collisions:
        lines.append(f"WARNING: ID appears more than once in snapshot: {record_id}")
    lines.append(f"Found {plan.groups_with_duplicates} groups with duplicates")
    lines.append(f"Total records to delete: {plan.total_to_delete}")
    return "\n".join(lines)


def render_pairs(pairs: Sequence[Tuple[AppointmentRecord, AppointmentRecord]]) -> str:
    """Render ``(original, duplicate)`` pairs for a quick read-only check."""

    if not pairs:
        return "No exact content duplicates found."
    lines = [f"Found {len(pairs)} duplicates based on client|pet|date|service:"]
    for original, duplicate in pairs:
        lines.append(f"Original ID: {original.id}, Duplicate ID: {duplicate.id}")
        lines.append(f"  Date: {original.date}")
        lines.append(f"  Client: {original.client_id}")
        lines.append(f"  Pet: {original.pet_id}")
    return "\n".join(lines)


def _member_entry(record: AppointmentRecord) -> Dict[str, Any]:
    return {"id": record.id, "created_at": record.created_at, "date": record.date}


def plan_to_dict(plan: ReconciliationPlan) -> Dict[str, Any]:
    """JSON-serialisable snapshot of ``plan`` for exports and the audit log."""

    return {
        "total_records": plan.total_records,
        "groups_with_duplicates": plan.groups_with_duplicates,
        "total_to_delete": plan.total_to_delete,
        "groups": [
            {
                "key": item.key,
                "survivor": _member_entry(item.survivor),
                "candidates": [_member_entry(candidate) for candidate in item.candidates],
            }
            for item in plan.groups
        ],
        "survivors": list(plan.survivors),
        "to_delete": list(plan.to_delete),
        "id_collisions": list(plan.id_collisions),
    }

"""Data models shared by the reconciliation engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Tuple


def _extract_first(row: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if key in row and row[key] is not None:
            return row[key]
    return None


def _embedded_name(row: Mapping[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        embedded = row.get(key)
        if isinstance(embedded, Mapping) and embedded.get("name"):
            return str(embedded["name"])
    return None


@dataclass(frozen=True)
class AppointmentRecord:
    """Normalized representation of an appointment row read from the store.

    Only ``id``, the identity fields, ``date`` and ``created_at`` are ever
    inspected. The payment and status fields are carried through for
    reporting and never compared.
    """

    id: Any
    client_id: Any = None
    pet_id: Any = None
    service_id: Any = None
    date: Optional[str] = None
    created_at: Optional[str] = None
    status: Optional[str] = None
    payment_method: Optional[str] = None
    paid_amount: Any = None
    payment_status: Optional[str] = None
    raw_payload: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "AppointmentRecord":
        if not row:
            raise ValueError("Appointment row payload is empty")
        if row.get("id") is None:
            raise ValueError("Appointment row has no 'id'")

        date_value = _extract_first(row, ("date", "appointment_date"))
        created_value = _extract_first(row, ("created_at", "createdAt"))
        return cls(
            id=row["id"],
            client_id=_extract_first(row, ("client_id", "clientId")),
            pet_id=_extract_first(row, ("pet_id", "petId")),
            service_id=_extract_first(row, ("service_id", "serviceId")),
            date=str(date_value) if date_value is not None else None,
            created_at=str(created_value) if created_value is not None else None,
            status=_extract_first(row, ("status",)),
            payment_method=_extract_first(row, ("payment_method", "paymentMethod")),
            paid_amount=_extract_first(row, ("paid_amount", "paidAmount")),
            payment_status=_extract_first(row, ("payment_status", "paymentStatus")),
            raw_payload=dict(row),
        )

    @property
    def pet_name(self) -> Optional[str]:
        return _embedded_name(self.raw_payload, ("pet", "pets"))

    @property
    def client_name(self) -> Optional[str]:
        return _embedded_name(self.raw_payload, ("client", "clients"))


@dataclass(frozen=True)
class DuplicateGroup:
    """Records sharing one identity key, oldest first.

    The first member is the survivor; every other member is a candidate for
    removal.
    """

    key: str
    members: Tuple[AppointmentRecord, ...]

    def __post_init__(self) -> None:
        if not self.members:
            raise ValueError("A duplicate group needs at least one member")

    def __len__(self) -> int:
        return len(self.members)

    @property
    def survivor(self) -> AppointmentRecord:
        return self.members[0]

    @property
    def candidates(self) -> Tuple[AppointmentRecord, ...]:
        return self.members[1:]

    @property
    def is_duplicate(self) -> bool:
        return len(self.members) > 1


@dataclass(frozen=True)
class ReconciliationPlan:
    """Read-only snapshot of what one reconciliation run would remove."""

    total_records: int
    groups: Tuple[DuplicateGroup, ...] = ()
    survivors: Tuple[Any, ...] = ()
    to_delete: Tuple[Any, ...] = ()
    id_collisions: Tuple[Any, ...] = ()

    @property
    def groups_with_duplicates(self) -> int:
        return len(self.groups)

    @property
    def total_to_delete(self) -> int:
        return len(self.to_delete)

"""Identity keys used to decide which appointments duplicate each other."""
from __future__ import annotations

import enum
from datetime import timedelta
from typing import Any, Callable

from .dates import canonical_day
from .models import AppointmentRecord

__all__ = [
    "ABSENT_TOKEN",
    "KEY_SEPARATOR",
    "AbsentFieldPolicy",
    "IdentityKey",
    "KeyBuilder",
    "build_key",
    "make_key_builder",
]

IdentityKey = str
KeyBuilder = Callable[[AppointmentRecord], IdentityKey]

ABSENT_TOKEN = "null"
KEY_SEPARATOR = "|"


class AbsentFieldPolicy(str, enum.Enum):
    """How records with a missing identity field are grouped."""

    # Missing values render as the same token and compare equal.
    LITERAL = "literal"
    # A record with any missing identity field only ever matches itself.
    STRICT = "strict"


def _render(value: Any) -> str:
    return ABSENT_TOKEN if value is None else str(value)


def build_key(
    record: AppointmentRecord,
    *,
    policy: AbsentFieldPolicy = AbsentFieldPolicy.LITERAL,
    match_calendar_day: bool = False,
    reference_offset: timedelta = timedelta(0),
) -> IdentityKey:
    """Render ``client|pet|date|service`` for ``record``.

    ``match_calendar_day`` swaps the raw date string for its canonical day so
    that one appointment stored in two encodings shares a key; dates that
    cannot be parsed keep their raw form.
    """

    date_part: Any = record.date
    if match_calendar_day:
        day = canonical_day(record.date, reference_offset)
        if day is not None:
            date_part = day.isoformat()

    fields = (record.client_id, record.pet_id, date_part, record.service_id)
    key = KEY_SEPARATOR.join(_render(value) for value in fields)

    policy = AbsentFieldPolicy(policy)
    if policy is AbsentFieldPolicy.STRICT and any(value is None for value in fields):
        key = f"{key}{KEY_SEPARATOR}#{record.id}"
    return key


def make_key_builder(
    *,
    policy: AbsentFieldPolicy = AbsentFieldPolicy.LITERAL,
    match_calendar_day: bool = False,
    reference_offset: timedelta = timedelta(0),
) -> KeyBuilder:
    """Bind key options once so grouping can call a one-argument builder."""

    def _builder(record: AppointmentRecord) -> IdentityKey:
        return build_key(
            record,
            policy=policy,
            match_calendar_day=match_calendar_day,
            reference_offset=reference_offset,
        )

    return _builder

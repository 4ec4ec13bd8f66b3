"""Date normalization for heterogeneously encoded appointment dates.

Appointment rows have been written over time as plain ``YYYY-MM-DD`` strings,
ISO-8601 timestamps with an explicit UTC offset, and localized
``DD/MM/YYYY`` or ``DD/MM/YY`` strings. This module turns any of those into a
calendar day and answers whether a raw value falls on a given day.

Day matching tries its strategies in a fixed order and stops at the first
success:

1. literal ``YYYY-MM-DD`` rendering of the target day,
2. literal ``DD/MM/YYYY`` rendering,
3. literal ``DD/MM/YY`` rendering,
4. a general date/time parse compared on the store's calendar.

Absolute timestamps are placed on the store's UTC calendar, the same calendar
the store's own ``...T00:00:00Z`` range queries use. Timestamps written
without an offset are wall-clock times in the reference offset and are
converted onto that calendar as well.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple

from dateutil import parser as date_parser
from dateutil.parser import isoparse

__all__ = [
    "STRATEGY_ISO",
    "STRATEGY_DMY",
    "STRATEGY_DMY_SHORT",
    "STRATEGY_PARSED",
    "canonical_day",
    "day_renderings",
    "literal_match",
    "match_strategy",
    "matches_day",
    "parse_offset",
    "parse_timestamp",
]

STRATEGY_ISO = "iso"
STRATEGY_DMY = "dmy"
STRATEGY_DMY_SHORT = "dmy_short"
STRATEGY_PARSED = "parsed"

_PLAIN_ISO_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_LOCALIZED_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4}|\d{2})(?:[ T,].*)?$")
_OFFSET_RE = re.compile(r"^([+-])(\d{2}):?(\d{2})?$")
_YEAR_FIRST_RE = re.compile(r"^\d{4}[-/.]")
_ISO_TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}")
_EMBEDDED_ISO_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_EMBEDDED_LOCALIZED_RE = re.compile(r"(?<!\d)(\d{1,2})/(\d{1,2})/(\d{4}|\d{2})(?!\d)")

# Two distinct defaults expose components dateutil had to invent.
_PROBE_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def parse_offset(value: str) -> timedelta:
    """Parse ``Z``, ``±HH:MM``, ``±HHMM`` or ``±HH`` into a timedelta."""

    text = (value or "").strip()
    if text.upper() in ("Z", "UTC"):
        return timedelta(0)
    match = _OFFSET_RE.match(text)
    if not match:
        raise ValueError(f"Invalid UTC offset '{value}'")
    sign, hours, minutes = match.groups()
    delta = timedelta(hours=int(hours), minutes=int(minutes or 0))
    if delta >= timedelta(hours=24):
        raise ValueError(f"UTC offset '{value}' is out of range")
    return -delta if sign == "-" else delta


def day_renderings(day: date) -> Tuple[str, str, str]:
    """Return the ``YYYY-MM-DD``, ``DD/MM/YYYY`` and ``DD/MM/YY`` forms of ``day``."""

    return (
        day.isoformat(),
        f"{day.day:02d}/{day.month:02d}/{day.year:04d}",
        f"{day.day:02d}/{day.month:02d}/{day.year % 100:02d}",
    )


def literal_match(raw_date: Optional[str], day: date) -> Optional[str]:
    """Return the first literal strategy that finds ``day`` inside ``raw_date``."""

    if not raw_date:
        return None
    text = str(raw_date)
    iso, dmy, dmy_short = day_renderings(day)
    if iso in text:
        return STRATEGY_ISO
    if re.search(rf"(?<!\d){re.escape(dmy)}(?!\d)", text):
        return STRATEGY_DMY
    if re.search(rf"(?<!\d){re.escape(dmy_short)}(?!\d)", text):
        return STRATEGY_DMY_SHORT
    return None


def _to_store_day(moment: datetime, reference_offset: timedelta) -> Optional[date]:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone(reference_offset))
    try:
        return moment.astimezone(timezone.utc).date()
    except (OverflowError, ValueError):
        # The instant falls outside the representable calendar.
        return None


def _parse_moment(text: str) -> Optional[datetime]:
    if _ISO_TIMESTAMP_RE.match(text):
        try:
            return isoparse(text)
        except (ValueError, OverflowError):
            pass

    # Year-first text is never day-first; dateutil would swap month and day.
    dayfirst = not _YEAR_FIRST_RE.match(text)
    try:
        first, second = (
            date_parser.parse(text, dayfirst=dayfirst, default=default) for default in _PROBE_DEFAULTS
        )
    except (ValueError, OverflowError):
        return None
    if first.date() != second.date():
        # Year, month or day was missing from the text.
        return None
    return first


def _embedded_day(text: str) -> Optional[date]:
    """First valid ``YYYY-MM-DD`` or ``DD/MM/YYYY`` date written inside ``text``."""

    for match in _EMBEDDED_ISO_RE.finditer(text):
        try:
            return date(*(int(part) for part in match.groups()))
        except ValueError:
            continue
    for match in _EMBEDDED_LOCALIZED_RE.finditer(text):
        day, month, year = (int(part) for part in match.groups())
        if len(match.group(3)) == 2:
            year += 2000
        try:
            return date(year, month, day)
        except ValueError:
            continue
    return None


def canonical_day(raw_date: Optional[str], reference_offset: timedelta = timedelta(0)) -> Optional[date]:
    """Return the calendar day of ``raw_date`` or ``None`` when unparseable.

    Values the general parse rejects, or whose instant cannot be placed on
    the calendar, fall back to the date literally written inside them.
    """

    if raw_date is None:
        return None
    text = str(raw_date).strip()
    if not text:
        return None

    plain = _PLAIN_ISO_RE.match(text)
    if plain:
        try:
            return date(*(int(part) for part in plain.groups()))
        except ValueError:
            return None

    localized = _LOCALIZED_RE.match(text)
    if localized and ("T" not in text and ":" not in text):
        day, month, year = (int(part) for part in localized.groups())
        if len(localized.group(3)) == 2:
            year += 2000
        try:
            return date(year, month, day)
        except ValueError:
            return None

    moment = _parse_moment(text)
    if moment is not None:
        day = _to_store_day(moment, reference_offset)
        if day is not None:
            return day
    return _embedded_day(text)


def match_strategy(
    raw_date: Optional[str], day: date, reference_offset: timedelta = timedelta(0)
) -> Optional[str]:
    """Return the name of the strategy that placed ``raw_date`` on ``day``."""

    strategy = literal_match(raw_date, day)
    if strategy is not None:
        return strategy
    if canonical_day(raw_date, reference_offset) == day:
        return STRATEGY_PARSED
    return None


def matches_day(raw_date: Optional[str], day: date, reference_offset: timedelta = timedelta(0)) -> bool:
    """Whether ``raw_date`` falls on ``day`` under any matching strategy."""

    return match_strategy(raw_date, day, reference_offset) is not None


def parse_timestamp(raw_value: Optional[str]) -> Optional[datetime]:
    """Parse a store timestamp into an aware UTC datetime, ``None`` if unusable."""

    if raw_value is None:
        return None
    text = str(raw_value).strip()
    if not text:
        return None
    moment = _parse_moment(text)
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    try:
        return moment.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        return None

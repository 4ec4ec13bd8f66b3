"""Window verification of per-day appointment counts.

Counts are computed twice. The primary count places every record on its
canonical day. An independent literal count looks for each day's rendered
strings inside the raw values. Parsing alone under-counts ambiguous localized
dates and literal matching alone over-counts timestamps near midnight, so the
two are compared and every divergence is reported instead of resolved.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from connector import Filter

from .dates import canonical_day, literal_match
from .errors import UnparseableDateWarning
from .models import AppointmentRecord

logger = logging.getLogger(__name__)

__all__ = ["DayCount", "WindowReport", "format_offset", "render_window", "verify", "window_filters"]


@dataclass
class DayCount:
    day: date
    records: List[AppointmentRecord] = field(default_factory=list)
    literal_count: int = 0
    boundary_ids: List[object] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.records)


@dataclass
class WindowReport:
    """Per-day counts for ``[start, end)`` plus data-quality findings."""

    start: date
    end: date
    reference_offset: timedelta
    days: List[DayCount]
    unparseable: List[UnparseableDateWarning] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    detail_day: Optional[date] = None

    @property
    def total(self) -> int:
        return sum(item.count for item in self.days)

    def counts(self) -> Dict[str, int]:
        return {item.day.isoformat(): item.count for item in self.days}

    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "reference_offset": format_offset(self.reference_offset),
            "counts": self.counts(),
            "literal_counts": {item.day.isoformat(): item.literal_count for item in self.days},
            "total": self.total,
            "warnings": list(self.warnings),
            "unparseable": [
                {"id": item.record_id, "date": item.raw_date, "reason": item.reason} for item in self.unparseable
            ],
        }


def format_offset(offset: timedelta) -> str:
    minutes = int(offset.total_seconds() // 60)
    sign = "-" if minutes < 0 else "+"
    hours, minutes = divmod(abs(minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def _neighbours(day: date) -> List[date]:
    found = []
    for step in (-1, 1):
        try:
            found.append(day + timedelta(days=step))
        except OverflowError:
            continue
    return found


def _days_in(start: date, end: date) -> List[date]:
    return [start + timedelta(days=offset) for offset in range((end - start).days)]


def window_filters(start: date, end: date, column: str = "date") -> Tuple[Filter, ...]:
    """Range predicates for a store-side fetch, widened a day on each side."""

    return (
        Filter(column, "gte", (start - timedelta(days=1)).isoformat()),
        Filter(column, "lt", (end + timedelta(days=1)).isoformat()),
    )


def verify(
    all_records: Iterable[AppointmentRecord],
    start_inclusive: date,
    end_exclusive: date,
    reference_offset: timedelta = timedelta(0),
    *,
    detail_day: Optional[date] = None,
) -> WindowReport:
    """Count records per calendar day of ``[start_inclusive, end_exclusive)``."""

    if end_exclusive <= start_inclusive:
        raise ValueError("Window end must be after its start")

    records = list(all_records)
    days = {day: DayCount(day=day) for day in _days_in(start_inclusive, end_exclusive)}
    report = WindowReport(
        start=start_inclusive,
        end=end_exclusive,
        reference_offset=reference_offset,
        days=list(days.values()),
        detail_day=detail_day,
    )

    for record in records:
        day = canonical_day(record.date, reference_offset)
        if day is None:
            reason = "missing date" if not record.date else "no date strategy matched"
            report.unparseable.append(UnparseableDateWarning(record.id, record.date, reason))
            logger.warning("Unparseable date %r on record %s", record.date, record.id)
            continue
        if day in days:
            days[day].records.append(record)

    for bucket in report.days:
        bucket.literal_count = sum(1 for record in records if literal_match(record.date, bucket.day))
        if bucket.literal_count != bucket.count:
            report.warnings.append(
                f"Day {bucket.day.isoformat()}: parsed count {bucket.count} differs from "
                f"literal match count {bucket.literal_count}"
            )

        neighbours = _neighbours(bucket.day)
        for record in bucket.records:
            if literal_match(record.date, bucket.day):
                continue
            named = next((other for other in neighbours if literal_match(record.date, other)), None)
            if named is not None:
                bucket.boundary_ids.append(record.id)
                report.warnings.append(
                    f"Record {record.id} [{record.date}] reads as {named.isoformat()} "
                    f"but falls on {bucket.day.isoformat()}"
                )

    for warning in report.warnings:
        logger.warning("Window check: %s", warning)
    logger.info(
        "Verified window %s..%s: %d records counted, %d unparseable",
        start_inclusive,
        end_exclusive,
        report.total,
        len(report.unparseable),
    )
    return report


def _detail_line(record: AppointmentRecord) -> str:
    pet = record.pet_name or record.pet_id or "UNKNOWN"
    client = record.client_name or record.client_id or "UNKNOWN"
    return f"  - [{record.date}] Pet: {pet} | Client: {client} | Status: {record.status}"


def render_window(report: WindowReport) -> str:
    lines = [
        f"Window {report.start.isoformat()} to {report.end.isoformat()} (end exclusive), "
        f"reference offset {format_offset(report.reference_offset)}"
    ]
    for bucket in report.days:
        lines.append(f"Day {bucket.day.isoformat()}: {bucket.count} apps")
        if report.detail_day == bucket.day:
            for record in sorted(bucket.records, key=lambda item: item.date or ""):
                lines.append(_detail_line(record))
    lines.append(f"Total apps in window: {report.total}")

    if report.warnings:
        lines.append("Data quality warnings:")
        lines.extend(f"  - {warning}" for warning in report.warnings)
    if report.unparseable:
        lines.append(f"Unparseable dates ({len(report.unparseable)}):")
        lines.extend(f"  - {item.describe()}" for item in report.unparseable)
    return "\n".join(lines)

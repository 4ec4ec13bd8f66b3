"""Appointment reconciliation engine.

Detects duplicate appointments under the ``client|pet|date|service`` identity
rule, picks the oldest record of each group as survivor, removes the rest
only on explicit confirmation, and verifies per-day counts over calendar
windows despite mixed date encodings.
"""

from .dates import canonical_day, matches_day
from .deletion import DeletionExecutor, DeletionResult
from .errors import (
    AuditLogError,
    ConfigurationError,
    ConfirmationRequiredError,
    DeletionError,
    FetchError,
    ReconciliationError,
    UnparseableDateWarning,
)
from .fetch import fetch_records
from .grouping import build_plan, first_seen_pairs, group
from .identity import AbsentFieldPolicy, build_key, make_key_builder
from .models import AppointmentRecord, DuplicateGroup, ReconciliationPlan
from .report import plan_to_dict, render_plan
from .window import WindowReport, render_window, verify

__all__ = [
    "AbsentFieldPolicy",
    "AppointmentRecord",
    "AuditLogError",
    "ConfigurationError",
    "ConfirmationRequiredError",
    "DeletionError",
    "DeletionExecutor",
    "DeletionResult",
    "DuplicateGroup",
    "FetchError",
    "ReconciliationError",
    "ReconciliationPlan",
    "UnparseableDateWarning",
    "WindowReport",
    "build_key",
    "build_plan",
    "canonical_day",
    "fetch_records",
    "first_seen_pairs",
    "group",
    "make_key_builder",
    "matches_day",
    "plan_to_dict",
    "render_plan",
    "render_window",
    "verify",
]

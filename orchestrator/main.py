"""Command-line entry point for appointment reconciliation runs."""
from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from contextlib import ExitStack
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, TypeVar

if __package__ is None or __package__ == "":  # pragma: no cover - runtime safety for script execution
    sys.path.append(str(Path(__file__).resolve().parent.parent))

from connector import InMemoryStore, StoreClient, SupabaseRestClient
from reconciler.config import DEFAULT_ENV_FILE, Settings, load_settings
from reconciler.dates import parse_offset
from reconciler.deletion import DeletionExecutor
from reconciler.errors import AuditLogError, ConfigurationError, DeletionError, FetchError
from reconciler.fetch import fetch_records
from reconciler.grouping import build_plan, first_seen_pairs
from reconciler.identity import AbsentFieldPolicy, make_key_builder
from reconciler.report import plan_to_dict, render_pairs, render_plan
from reconciler.window import render_window, verify, window_filters

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NOT_CONFIRMED = 2

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat().replace("+00:00", "Z")


class TaskLogger:
    """Persists run stages into a JSON audit log."""

    def __init__(self, log_path: Path) -> None:
        self._log_path = log_path
        self._lock = threading.Lock()
        try:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise AuditLogError(f"Audit log directory {self._log_path.parent} is not writable: {exc}") from exc
        # Fail before any work when the existing history is unusable.
        self._read_history()

    def log(
        self,
        task_name: str,
        status: str,
        *,
        start_time: Optional[datetime] = None,
        message: Optional[str] = None,
        details: Optional[Dict[str, object]] = None,
    ) -> None:
        completed_at = _utc_now()
        started_at = start_time or completed_at
        entry: Dict[str, object] = {
            "task": task_name,
            "status": status,
            "started_at": _format_timestamp(started_at),
            "completed_at": _format_timestamp(completed_at),
        }
        if message:
            entry["message"] = message
        if details is not None:
            entry["details"] = details

        with self._lock:
            history = self._read_history()
            history.append(entry)
            serialized = json.dumps(history, indent=2, default=str)
            try:
                self._log_path.write_text(f"{serialized}\n", encoding="utf-8")
            except OSError as exc:
                raise AuditLogError(f"Could not write audit log {self._log_path}: {exc}") from exc

    def _read_history(self) -> List[Dict[str, object]]:
        if not self._log_path.exists():
            return []
        try:
            raw_content = self._log_path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as exc:
            raise AuditLogError(f"Could not read audit log {self._log_path}: {exc}") from exc
        if not raw_content:
            return []
        try:
            data = json.loads(raw_content)
        except json.JSONDecodeError as exc:
            raise AuditLogError(
                f"Audit log is corrupted and cannot be parsed: {exc.msg}"
            ) from exc
        if not isinstance(data, list):
            raise AuditLogError("Audit log must contain a JSON list of entries.")
        return data


def execute_with_logging(
    task_name: str,
    action: Callable[[], T],
    logger: TaskLogger,
    describe: Optional[Callable[[T], Dict[str, object]]] = None,
) -> T:
    """Run ``action`` while emitting an audit entry for the stage.

    A failure to record the entry is logged but never replaces the outcome
    of ``action`` itself.
    """

    start_time = _utc_now()
    details: Optional[Dict[str, object]] = None
    status = "success"
    message: Optional[str] = None

    try:
        result = action()
        if describe is not None:
            details = describe(result)
        elif isinstance(result, dict):
            details = result
        return result
    except Exception as exc:
        status = "failed"
        message = str(exc)
        raise
    finally:
        try:
            logger.log(
                task_name,
                status,
                start_time=start_time,
                message=message,
                details=details,
            )
        except AuditLogError as exc:
            LOGGER.error("Audit entry for %s (%s) was not recorded: %s", task_name, status, exc)


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from exc


def _parse_offset_arg(value: str):
    try:
        return parse_offset(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Appointment duplicate reconciliation and window verification")
    parser.add_argument("--env-file", default=DEFAULT_ENV_FILE, help="dotenv file holding store credentials")
    parser.add_argument("--snapshot", type=Path, help="run against a JSON snapshot instead of the live store")
    parser.add_argument("--table", help="appointments table name (overrides settings)")
    parser.add_argument("--select", default="*", help="column selection, e.g. '*, pet:pets(name)'")
    parser.add_argument("--audit-log", type=Path, help="JSON audit log path (overrides settings)")
    parser.add_argument("--verbose", action="store_true", help="enable debug logging")

    subcommands = parser.add_subparsers(dest="command", required=True)

    def _add_key_options(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "--match-calendar-day",
            action="store_true",
            help="compare the canonical day instead of the raw date string",
        )
        sub.add_argument(
            "--absent-fields",
            choices=[item.value for item in AbsentFieldPolicy],
            help="how missing identity fields are grouped (overrides settings)",
        )

    plan_parser = subcommands.add_parser("plan", help="report duplicate groups without deleting")
    _add_key_options(plan_parser)
    plan_parser.add_argument("--export", type=Path, help="write the plan as JSON")

    apply_parser = subcommands.add_parser("apply", help="report and delete duplicate records")
    _add_key_options(apply_parser)
    apply_parser.add_argument("--confirm", action="store_true", help="actually delete the reported records")

    pairs_parser = subcommands.add_parser("pairs", help="list duplicate pairs in fetch order")
    _add_key_options(pairs_parser)

    verify_parser = subcommands.add_parser("verify", help="per-day counts for a calendar window")
    verify_parser.add_argument("--start", type=_parse_day, required=True, help="first day (inclusive)")
    verify_parser.add_argument("--end", type=_parse_day, required=True, help="last day (exclusive)")
    verify_parser.add_argument("--offset", type=_parse_offset_arg, help="reference UTC offset, e.g. -03:00")
    verify_parser.add_argument("--detail-day", type=_parse_day, help="list every record on this day")
    verify_parser.add_argument(
        "--server-filter",
        action="store_true",
        help="range-filter on the store (misses localized dates)",
    )
    return parser.parse_args(argv)


def _open_store(args: argparse.Namespace, settings: Settings, table: str, stack: ExitStack) -> StoreClient:
    if args.snapshot is not None:
        LOGGER.info("Using snapshot %s; the live store is not contacted", args.snapshot)
        try:
            return InMemoryStore.from_json_file(args.snapshot, table=table)
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"Could not load snapshot {args.snapshot}: {exc}") from exc
    client = SupabaseRestClient(
        settings.store_url,
        settings.api_key,
        timeout=settings.timeout,
        max_retries=settings.max_retries,
    )
    return stack.enter_context(client)


def _key_builder(args: argparse.Namespace, settings: Settings):
    policy = AbsentFieldPolicy(args.absent_fields) if args.absent_fields else settings.absent_field_policy
    return make_key_builder(
        policy=policy,
        match_calendar_day=args.match_calendar_day,
        reference_offset=settings.reference_offset,
    )


def _run(args: argparse.Namespace, settings: Settings, audit: TaskLogger, store: StoreClient, table: str) -> int:
    if args.command == "verify":
        offset = args.offset if args.offset is not None else settings.reference_offset
        filters = window_filters(args.start, args.end) if args.server_filter else ()
        records = execute_with_logging(
            "fetch",
            lambda: fetch_records(store, table, filters, select=args.select),
            audit,
            lambda rows: {"table": table, "filters": [item.describe() for item in filters], "rows": len(rows)},
        )
        report = execute_with_logging(
            "verify",
            lambda: verify(records, args.start, args.end, offset, detail_day=args.detail_day),
            audit,
            lambda result: result.to_dict(),
        )
        print(render_window(report))
        return EXIT_OK

    records = execute_with_logging(
        "fetch",
        lambda: fetch_records(store, table, select=args.select),
        audit,
        lambda rows: {"table": table, "rows": len(rows)},
    )
    key_builder = _key_builder(args, settings)

    if args.command == "pairs":
        print(render_pairs(first_seen_pairs(records, key_builder)))
        return EXIT_OK

    plan = execute_with_logging("plan", lambda: build_plan(records, key_builder), audit, plan_to_dict)
    print(render_plan(plan))

    if args.command == "plan":
        if args.export is not None:
            args.export.parent.mkdir(parents=True, exist_ok=True)
            args.export.write_text(json.dumps(plan_to_dict(plan), indent=2, default=str) + "\n", encoding="utf-8")
            print(f"Plan written to {args.export}")
        return EXIT_OK

    if not plan.to_delete:
        print("No duplicates to delete.")
        return EXIT_OK
    if not args.confirm:
        print("Dry run: nothing deleted. Re-run with --confirm to delete the records above.")
        return EXIT_NOT_CONFIRMED

    executor = DeletionExecutor(store, table, batch_size=settings.batch_size)
    result = execute_with_logging(
        "apply",
        lambda: executor.apply_plan(plan, confirm=True),
        audit,
        lambda outcome: outcome.to_dict(),
    )
    print(f"Successfully deleted {result.deleted} of {result.requested} duplicates.")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        settings = load_settings(args.env_file, require_credentials=args.snapshot is None)
        table = args.table or settings.table
        audit = TaskLogger(args.audit_log or settings.audit_log_path)
        with ExitStack() as stack:
            store = _open_store(args, settings, table, stack)
            return _run(args, settings, audit, store, table)
    except (AuditLogError, ConfigurationError, FetchError, DeletionError) as exc:
        LOGGER.error("%s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())

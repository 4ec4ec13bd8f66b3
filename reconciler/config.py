"""Settings for reconciliation runs.

Connection secrets come from a dotenv file (``.env.local`` by default, the
same file the web client reads) and may be overridden by the process
environment. Every value is validated before any network call is made.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional, Sequence

from dotenv import dotenv_values

from .dates import parse_offset
from .errors import ConfigurationError
from .identity import AbsentFieldPolicy

logger = logging.getLogger(__name__)

__all__ = ["DEFAULT_ENV_FILE", "Settings", "load_settings"]

DEFAULT_ENV_FILE = ".env.local"
DEFAULT_TABLE = "appointments"
DEFAULT_REFERENCE_OFFSET = "-03:00"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_AUDIT_LOG = "reconciliation_log.json"


@dataclass(frozen=True)
class Settings:
    store_url: str
    api_key: str
    table: str = DEFAULT_TABLE
    reference_offset: timedelta = timedelta(hours=-3)
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    batch_size: Optional[int] = None
    audit_log_path: Path = Path(DEFAULT_AUDIT_LOG)
    absent_field_policy: AbsentFieldPolicy = AbsentFieldPolicy.LITERAL


def _first(values: Mapping[str, Optional[str]], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = values.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def _parse_number(raw: Optional[str], label: str, cast, default, *, minimum=None):
    if raw is None:
        return default
    try:
        value = cast(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{label} must be a number, got {raw!r}") from exc
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"{label} must be at least {minimum}, got {raw!r}")
    return value


def load_settings(
    env_file: Optional[Path | str] = DEFAULT_ENV_FILE,
    environ: Optional[Mapping[str, str]] = None,
    *,
    require_credentials: bool = True,
) -> Settings:
    """Load settings from ``env_file`` then the environment.

    Raises :class:`ConfigurationError` when the store URL or key is missing
    (unless ``require_credentials`` is false) or any value is malformed.
    """

    values: dict = {}
    if env_file is not None:
        env_path = Path(env_file)
        if env_path.exists():
            try:
                values.update(dotenv_values(env_path))
            except (OSError, UnicodeDecodeError) as exc:
                raise ConfigurationError(f"Could not read {env_path}: {exc}") from exc
            logger.debug("Loaded settings file %s", env_path)
        else:
            logger.debug("Settings file %s not found; using environment only", env_path)
    values.update(os.environ if environ is None else environ)

    store_url = _first(values, ("SUPABASE_URL", "VITE_SUPABASE_URL"))
    api_key = _first(values, ("SUPABASE_KEY", "VITE_SUPABASE_ANON_KEY"))
    if require_credentials and (not store_url or not api_key):
        raise ConfigurationError(
            "Store credentials not found: set SUPABASE_URL/VITE_SUPABASE_URL and "
            f"SUPABASE_KEY/VITE_SUPABASE_ANON_KEY in {env_file or 'the environment'}"
        )

    offset_raw = _first(values, ("RECONCILER_REFERENCE_OFFSET",)) or DEFAULT_REFERENCE_OFFSET
    try:
        reference_offset = parse_offset(offset_raw)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    policy_raw = (_first(values, ("RECONCILER_ABSENT_FIELDS",)) or AbsentFieldPolicy.LITERAL.value).lower()
    try:
        policy = AbsentFieldPolicy(policy_raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"RECONCILER_ABSENT_FIELDS must be one of {[item.value for item in AbsentFieldPolicy]}"
        ) from exc

    return Settings(
        store_url=store_url or "",
        api_key=api_key or "",
        table=_first(values, ("RECONCILER_TABLE",)) or DEFAULT_TABLE,
        reference_offset=reference_offset,
        timeout=_parse_number(
            _first(values, ("RECONCILER_TIMEOUT",)), "RECONCILER_TIMEOUT", float, DEFAULT_TIMEOUT_SECONDS, minimum=0
        ),
        max_retries=_parse_number(
            _first(values, ("RECONCILER_MAX_RETRIES",)), "RECONCILER_MAX_RETRIES", int, DEFAULT_MAX_RETRIES, minimum=0
        ),
        batch_size=_parse_number(
            _first(values, ("RECONCILER_DELETE_BATCH_SIZE",)), "RECONCILER_DELETE_BATCH_SIZE", int, None, minimum=1
        ),
        audit_log_path=Path(_first(values, ("RECONCILER_AUDIT_LOG",)) or DEFAULT_AUDIT_LOG),
        absent_field_policy=policy,
    )

"""Supabase REST client utilities.

This module provides a client for the PostgREST interface that backs a
hosted Supabase project. The client manages API key headers, HTTP session
handling with retries for read requests, and structured error reporting so
the reconciliation engine can fetch and delete appointment rows safely.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import Filter

__all__ = ["SupabaseClientError", "SupabaseAPIError", "SupabaseRestClient"]


# Handlers are left to the hosting application to avoid duplicate log lines.
logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_FACTOR = 0.5
DEFAULT_SCHEMA = "public"

_OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte", "in", "is")


class SupabaseClientError(RuntimeError):
    """Base exception for Supabase client errors."""


class SupabaseAPIError(SupabaseClientError):
    """Raised when the Supabase REST endpoint returns an error response."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def _render_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quote_list_item(value: Any) -> str:
    rendered = _render_value(value)
    if any(ch in rendered for ch in ',()"'):
        escaped = rendered.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return rendered


def render_filter(predicate: Filter) -> Tuple[str, str]:
    """Render a predicate as a PostgREST ``column=op.value`` query pair."""

    if predicate.op not in _OPERATORS:
        raise ValueError(f"Unsupported filter operator '{predicate.op}'")
    if predicate.op == "in":
        if isinstance(predicate.value, (str, bytes)) or not isinstance(predicate.value, Iterable):
            raise ValueError("'in' filters require a sequence of values")
        items = ",".join(_quote_list_item(item) for item in predicate.value)
        return predicate.column, f"in.({items})"
    return predicate.column, f"{predicate.op}.{_render_value(predicate.value)}"


class SupabaseRestClient:
    """Client for a Supabase project's auto-generated REST API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        schema: str = DEFAULT_SCHEMA,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url must be provided")
        if not api_key:
            raise ValueError("api_key must be provided")

        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.schema = schema
        self.timeout = timeout
        self._session = session or self._build_session(
            max_retries=max_retries, backoff_factor=backoff_factor
        )

    def _build_session(self, *, max_retries: int, backoff_factor: float) -> requests.Session:
        session = requests.Session()
        # Only reads are retried; a repeated DELETE could hide a partial failure.
        retry_strategy = Retry(
            total=max_retries,
            read=max_retries,
            connect=max_retries,
            status=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=("GET", "HEAD", "OPTIONS"),
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "SupabaseRestClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Sequence[Tuple[str, str]]] = None,
        headers: Optional[Dict[str, str]] = None,
        expected_status: Union[int, Tuple[int, ...]] = (200,),
    ) -> Response:
        if not table:
            raise ValueError("table must be provided")
        if isinstance(expected_status, int):
            expected_status = (expected_status,)

        url = f"{self.base_url}/rest/v1/{table.strip('/')}"
        request_headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Accept-Profile": self.schema,
            "Content-Profile": self.schema,
        }
        if headers:
            request_headers.update(headers)

        try:
            response = self._session.request(
                method=method.upper(),
                url=url,
                params=list(params or ()),
                headers=request_headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Request to Supabase failed: %s", exc)
            raise SupabaseClientError(f"Failed to execute {method.upper()} request on '{table}'") from exc

        if response.status_code not in expected_status:
            self._log_error_response(response)
            raise SupabaseAPIError(
                f"Supabase responded with unexpected status {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        return response

    @staticmethod
    def _log_error_response(response: Response) -> None:
        content_type = response.headers.get("Content-Type", "")
        if "json" in content_type:
            try:
                parsed = response.json()
                logger.error("Supabase error response: status=%s body=%s", response.status_code, parsed)
                return
            except ValueError:
                pass
        logger.error("Supabase error response: status=%s body=%s", response.status_code, response.text[:2048])

    @staticmethod
    def _decode_rows(response: Response) -> List[Dict[str, Any]]:
        if not response.content:
            return []
        try:
            payload = response.json()
        except ValueError as exc:
            raise SupabaseAPIError("Supabase response was not valid JSON", status_code=response.status_code) from exc
        if not isinstance(payload, list):
            raise SupabaseAPIError("Supabase response was not a list of rows", status_code=response.status_code)
        return [row for row in payload if isinstance(row, Mapping)]

    def fetch_all(
        self,
        table: str,
        filters: Iterable[Filter] = (),
        *,
        select: str = "*",
        order: Optional[Tuple[str, bool]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return every row of ``table`` matching ``filters`` in one request."""

        params: List[Tuple[str, str]] = [("select", select or "*")]
        params.extend(render_filter(predicate) for predicate in filters)
        if order is not None:
            column, ascending = order
            params.append(("order", f"{column}.{'asc' if ascending else 'desc'}"))
        if limit is not None:
            if limit < 0:
                raise ValueError("limit must not be negative")
            params.append(("limit", str(limit)))

        logger.debug("Fetching rows from %s with params %s", table, params)
        response = self._request("GET", table, params=params)
        rows = self._decode_rows(response)
        logger.info("Fetched %d rows from %s", len(rows), table)
        return rows

    def delete_by_ids(self, table: str, ids: Sequence[Any]) -> int:
        """Delete the rows whose ``id`` is in ``ids`` and return how many went."""

        if not ids:
            return 0
        params = [render_filter(Filter("id", "in", list(ids)))]
        response = self._request(
            "DELETE",
            table,
            params=params,
            headers={"Prefer": "return=representation"},
            expected_status=(200, 204),
        )
        if response.status_code == 204:
            # Representation was not returned; the store accepted the whole batch.
            return len(ids)
        deleted = len(self._decode_rows(response))
        logger.info("Deleted %d rows from %s", deleted, table)
        return deleted

"""Client for the hosted backend-as-a-service (auth, tables and RPC).

The hosted platform is the system of record for users, subscriptions,
patients, reports, appointments and help content.  This module only speaks
its REST dialect:

* ``/auth/v1/...``  identity provider (current user, sign out)
* ``/rest/v1/<table>``  row access with PostgREST filters
* ``/rest/v1/rpc/<fn>``  server-side functions (atomic counters, search)

Every failure is raised as :class:`StoreError` so callers can map it onto
their own error kind.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import requests
import structlog

from inforia.config import get_settings
from inforia.egress import secure_request

logger = structlog.get_logger(__name__)

FilterValue = Union[str, int, bool, None, Tuple[str, Any]]
Filters = Mapping[str, FilterValue]


class StoreError(Exception):
    """Raised when the hosted store rejects or fails a request."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


def _render_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _filter_params(filters: Optional[Filters]) -> List[Tuple[str, str]]:
    """Translate ``{column: value}`` into PostgREST query parameters.

    A plain value means equality; a ``(operator, value)`` tuple selects any
    other PostgREST operator such as ``gte`` or ``ilike``.
    """

    params: List[Tuple[str, str]] = []
    for column, value in (filters or {}).items():
        if isinstance(value, tuple):
            op, operand = value
        elif value is None:
            op, operand = "is", None
        else:
            op, operand = "eq", value
        params.append((column, f"{op}.{_render_value(operand)}"))
    return params


def _error_message(response: Optional[requests.Response], fallback: str) -> str:
    if response is None:
        return fallback
    try:
        body = response.json()
    except ValueError:
        return response.text or fallback
    if isinstance(body, dict):
        for key in ("message", "msg", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return fallback


class HostedStore:
    """Thin wrapper around the hosted platform's REST endpoints."""

    def __init__(self, url: str, service_key: str, *, timeout: Optional[int] = None) -> None:
        self._url = url.rstrip("/")
        self._key = service_key
        self._timeout = timeout

    # -- plumbing -----------------------------------------------------------

    def _headers(self, access_token: Optional[str] = None, **extra: str) -> Dict[str, str]:
        headers = {
            "apikey": self._key,
            "Authorization": f"Bearer {access_token or self._key}",
        }
        headers.update(extra)
        return headers

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if not self._url or not self._key:
            raise StoreError("Hosted store is not configured")
        if self._timeout is not None:
            kwargs.setdefault("timeout", self._timeout)
        url = f"{self._url}{path}"
        try:
            response = secure_request(method, url, **kwargs)
        except requests.exceptions.HTTPError as exc:
            resp = exc.response
            status = resp.status_code if resp is not None else None
            raise StoreError(_error_message(resp, str(exc)), status=status) from exc
        except (requests.exceptions.RequestException, RuntimeError) as exc:
            raise StoreError(str(exc)) from exc
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise StoreError("Malformed response from hosted store", response.status_code) from exc

    # -- auth ---------------------------------------------------------------

    def get_user(self, access_token: str) -> Dict[str, Any]:
        """Return the user owning ``access_token``."""

        data = self._request("GET", "/auth/v1/user", headers=self._headers(access_token))
        if not isinstance(data, dict) or not data.get("id"):
            raise StoreError("User not found", status=401)
        return data

    def sign_out(self, access_token: str) -> None:
        self._request("POST", "/auth/v1/logout", headers=self._headers(access_token))

    # -- tables -------------------------------------------------------------

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        *,
        columns: str = "*",
        order: Sequence[Tuple[str, bool]] = (),
        limit: Optional[int] = None,
        or_: Optional[Iterable[str]] = None,
    ) -> List[Dict[str, Any]]:
        params: List[Tuple[str, str]] = [("select", columns)]
        params.extend(_filter_params(filters))
        if or_:
            params.append(("or", f"({','.join(or_)})"))
        if order:
            params.append(
                ("order", ",".join(f"{col}.{'asc' if asc else 'desc'}" for col, asc in order))
            )
        if limit is not None:
            params.append(("limit", str(limit)))
        rows = self._request("GET", f"/rest/v1/{table}", params=params, headers=self._headers())
        return list(rows or [])

    def select_one(
        self,
        table: str,
        filters: Optional[Filters] = None,
        *,
        columns: str = "*",
    ) -> Optional[Dict[str, Any]]:
        rows = self.select(table, filters, columns=columns, limit=1)
        return rows[0] if rows else None

    def insert(self, table: str, row: Mapping[str, Any]) -> Dict[str, Any]:
        rows = self._request(
            "POST",
            f"/rest/v1/{table}",
            json=dict(row),
            headers=self._headers(Prefer="return=representation"),
        )
        if isinstance(rows, list):
            if not rows:
                raise StoreError(f"Insert into {table} returned no rows")
            return rows[0]
        if isinstance(rows, dict):
            return rows
        raise StoreError(f"Insert into {table} returned no rows")

    def update(
        self, table: str, values: Mapping[str, Any], filters: Filters
    ) -> List[Dict[str, Any]]:
        rows = self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=_filter_params(filters),
            json=dict(values),
            headers=self._headers(Prefer="return=representation"),
        )
        return list(rows or [])

    def delete(self, table: str, filters: Filters) -> None:
        self._request(
            "DELETE",
            f"/rest/v1/{table}",
            params=_filter_params(filters),
            headers=self._headers(),
        )

    # -- rpc ----------------------------------------------------------------

    def rpc(
        self,
        function: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        access_token: Optional[str] = None,
    ) -> Any:
        """Invoke a server-side function, as the caller when a token is given."""

        return self._request(
            "POST",
            f"/rest/v1/rpc/{function}",
            json=dict(params or {}),
            headers=self._headers(access_token),
        )


_STORE: Optional[HostedStore] = None


def get_store() -> HostedStore:
    """Return the process-wide :class:`HostedStore`."""

    global _STORE
    if _STORE is None:
        settings = get_settings()
        _STORE = HostedStore(
            settings.supabase_url,
            settings.supabase_service_key,
            timeout=settings.http_timeout,
        )
    return _STORE


def reset_store() -> None:
    global _STORE
    _STORE = None


__all__ = ["HostedStore", "StoreError", "get_store", "reset_store"]

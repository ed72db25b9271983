"""Record-oriented access to the hosted relational backend (PostgREST)."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from .models import Record
from .supabase import (
    SupabaseError,
    build_client,
    response_error_message,
    service_headers,
)

logger = logging.getLogger("myswing.admin.storage")


class StorageError(SupabaseError):
    """The storage service rejected or failed a request."""


class RecordNotFound(StorageError):
    """No row matched the requested identifier."""


def _eq(value: object) -> str:
    return f"eq.{value}"


def _parse_content_range(header: Optional[str]) -> Optional[int]:
    """Return the total from a ``Content-Range: 0-9/42`` style header."""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1].strip()
    if not total.isdigit():
        return None
    return int(total)


class SupabaseStorage:
    """Thin wrapper over the PostgREST endpoints of the project database."""

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._key = service_role_key.strip()
        if not self._key:
            raise ValueError("Supabase service role key must not be empty")
        self._client = build_client(base_url, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self, **extra: str) -> Dict[str, str]:
        headers = service_headers(self._key)
        headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method,
                f"/rest/v1/{table}",
                params=dict(params or {}),
                json=json,
                headers=headers or self._headers(),
            )
        except httpx.RequestError as exc:
            raise StorageError(f"Failed to contact the storage service: {exc}") from exc

        if response.status_code >= 400:
            message = response_error_message(
                response, f"Storage request failed with status {response.status_code}"
            )
            logger.error("%s %s failed (%s): %s", method, table, response.status_code, message)
            raise StorageError(message, status_code=response.status_code)
        return response

    @staticmethod
    def _rows(response: httpx.Response) -> List[Record]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise StorageError("Storage service returned an invalid JSON payload") from exc
        if isinstance(payload, dict):
            return [payload]
        if not isinstance(payload, list):
            raise StorageError("Storage service returned an unexpected payload")
        return [row for row in payload if isinstance(row, dict)]

    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        order: Optional[str] = None,
        filters: Optional[Mapping[str, str]] = None,
        limit: Optional[int] = None,
    ) -> List[Record]:
        """Return rows of ``table``; ``order`` uses PostgREST syntax (``created_at.desc``)."""
        params: Dict[str, str] = {"select": columns}
        if order:
            params["order"] = order
        if filters:
            params.update(filters)
        if limit is not None:
            params["limit"] = str(limit)
        response = await self._request("GET", table, params=params)
        return self._rows(response)

    async def fetch_by_id(self, table: str, record_id: str) -> Record:
        rows = await self.select(table, filters={"id": _eq(record_id)}, limit=1)
        if not rows:
            raise RecordNotFound(
                f"No row with id {record_id} in {table}", status_code=404
            )
        return rows[0]

    async def update_partial(
        self, table: str, record_id: str, values: Mapping[str, Any]
    ) -> Record:
        """Apply ``values`` to one row in a single request and return the stored row."""
        response = await self._request(
            "PATCH",
            table,
            params={"id": _eq(record_id), "select": "*"},
            json=dict(values),
            headers=self._headers(Prefer="return=representation"),
        )
        rows = self._rows(response)
        if not rows:
            raise RecordNotFound(
                f"No row with id {record_id} in {table}", status_code=404
            )
        return rows[0]

    async def insert(self, table: str, values: Mapping[str, Any]) -> Record:
        response = await self._request(
            "POST",
            table,
            params={"select": "*"},
            json=dict(values),
            headers=self._headers(Prefer="return=representation"),
        )
        rows = self._rows(response)
        return rows[0] if rows else dict(values)

    async def delete(self, table: str, record_id: str) -> None:
        await self._request(
            "DELETE",
            table,
            params={"id": _eq(record_id)},
            headers=self._headers(Prefer="return=minimal"),
        )

    async def count(self, table: str, filters: Optional[Mapping[str, str]] = None) -> int:
        params: Dict[str, str] = {"select": "id", "limit": "1"}
        if filters:
            params.update(filters)
        response = await self._request(
            "GET",
            table,
            params=params,
            headers=self._headers(Prefer="count=exact"),
        )
        total = _parse_content_range(response.headers.get("content-range"))
        if total is None:
            raise StorageError(f"Storage service did not report a row count for {table}")
        return total


__all__ = ["RecordNotFound", "StorageError", "SupabaseStorage"]

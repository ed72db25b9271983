"""Shared plumbing for the hosted Supabase auth and storage services."""

from __future__ import annotations

from typing import Dict, Optional

import httpx


class SupabaseError(Exception):
    """Base class for failures reported by a Supabase service."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def normalize_base_url(base_url: str) -> str:
    cleaned = (base_url or "").strip()
    if not cleaned:
        raise ValueError("Supabase URL must not be empty")
    return cleaned.rstrip("/")


def extract_error_message(payload: object, default: str) -> str:
    """Pick the human readable message out of a Supabase error body."""
    if isinstance(payload, dict):
        for key in ("msg", "message", "error_description", "error", "detail", "hint"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return default


def response_error_message(response: httpx.Response, default: str) -> str:
    try:
        parsed = response.json()
    except ValueError:
        parsed = response.text
    return extract_error_message(parsed, default)


def service_headers(api_key: str, *, bearer: Optional[str] = None) -> Dict[str, str]:
    return {
        "apikey": api_key,
        "Authorization": f"Bearer {bearer or api_key}",
    }


def build_client(
    base_url: str,
    *,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=normalize_base_url(base_url),
        timeout=timeout,
        transport=transport,
    )


__all__ = [
    "SupabaseError",
    "build_client",
    "extract_error_message",
    "normalize_base_url",
    "response_error_message",
    "service_headers",
]

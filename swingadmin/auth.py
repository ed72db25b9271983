"""Client for the hosted (GoTrue) authentication service."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx

from .models import AuthUser, Session
from .supabase import (
    SupabaseError,
    build_client,
    response_error_message,
    service_headers,
)

logger = logging.getLogger("myswing.admin.auth")


class AuthError(SupabaseError):
    """The auth service rejected the request (bad credentials, unknown user...)."""


class AuthServiceError(SupabaseError):
    """The auth service could not be reached or failed internally."""


def _user_from_payload(payload: object) -> Optional[AuthUser]:
    if not isinstance(payload, dict):
        return None
    user_id = payload.get("id")
    if not user_id:
        return None
    email = payload.get("email")
    return AuthUser(id=str(user_id), email=str(email) if email else None)


def _json(response: httpx.Response) -> object:
    try:
        return response.json()
    except ValueError as exc:
        raise AuthServiceError("Auth service returned an invalid JSON payload") from exc


def _session_from_grant(payload: object) -> Session:
    if not isinstance(payload, dict):
        raise AuthServiceError("Auth service returned an unexpected token response")

    access_token = payload.get("access_token")
    user = _user_from_payload(payload.get("user"))
    if not access_token or user is None:
        raise AuthServiceError("Auth service token response was missing required fields")

    expires_at: Optional[datetime] = None
    if payload.get("expires_at") is not None:
        try:
            expires_at = datetime.fromtimestamp(int(payload["expires_at"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            expires_at = None
    elif payload.get("expires_in") is not None:
        try:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(payload["expires_in"]))
        except (TypeError, ValueError):
            expires_at = None

    refresh_token = payload.get("refresh_token")
    return Session(
        user_id=user.id,
        email=user.email,
        access_token=str(access_token),
        refresh_token=str(refresh_token) if refresh_token else None,
        expires_at=expires_at,
    )


class SupabaseAuthClient:
    """Sign administrators in and look up accounts on the hosted auth service."""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        service_role_key: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._anon_key = anon_key.strip()
        self._service_role_key = service_role_key.strip()
        if not self._anon_key or not self._service_role_key:
            raise ValueError("Supabase API keys must not be empty")
        self._client = build_client(base_url, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Dict[str, str],
        json: Any = None,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method, path, headers=headers, json=json, params=params
            )
        except httpx.RequestError as exc:
            raise AuthServiceError(f"Failed to contact the auth service: {exc}") from exc

        if response.status_code >= 500:
            message = response_error_message(
                response, f"Auth service request failed with status {response.status_code}"
            )
            raise AuthServiceError(message, status_code=response.status_code)
        return response

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        response = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            headers=service_headers(self._anon_key),
            json={"email": email.strip(), "password": password},
        )
        if response.status_code >= 400:
            raise AuthError(
                response_error_message(response, "Invalid login credentials"),
                status_code=response.status_code,
            )
        return _session_from_grant(_json(response))

    async def refresh_session(self, refresh_token: str) -> Optional[Session]:
        response = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            headers=service_headers(self._anon_key),
            json={"refresh_token": refresh_token},
        )
        if response.status_code >= 400:
            return None
        return _session_from_grant(_json(response))

    async def get_user(self, access_token: str) -> Optional[AuthUser]:
        """Return the account behind ``access_token`` or ``None`` when it is not valid."""
        response = await self._request(
            "GET",
            "/auth/v1/user",
            headers=service_headers(self._anon_key, bearer=access_token),
        )
        if response.status_code in (401, 403):
            return None
        if response.status_code >= 400:
            raise AuthServiceError(
                response_error_message(response, "Unable to resolve the current user"),
                status_code=response.status_code,
            )
        return _user_from_payload(_json(response))

    async def sign_out(self, access_token: str) -> None:
        try:
            response = await self._request(
                "POST",
                "/auth/v1/logout",
                headers=service_headers(self._anon_key, bearer=access_token),
            )
        except AuthServiceError as exc:
            logger.warning("Sign-out request failed: %s", exc)
            return
        if response.status_code >= 400 and response.status_code not in (401, 403):
            logger.warning("Sign-out request returned status %s", response.status_code)

    async def get_user_by_id(self, user_id: str) -> Optional[AuthUser]:
        response = await self._request(
            "GET",
            f"/auth/v1/admin/users/{user_id}",
            headers=service_headers(self._service_role_key),
        )
        if response.status_code in (400, 404):
            return None
        if response.status_code >= 400:
            raise AuthError(
                response_error_message(response, "Unable to load the user account"),
                status_code=response.status_code,
            )
        return _user_from_payload(_json(response))

    async def reset_password_for_email(
        self, email: str, *, redirect_to: Optional[str] = None
    ) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        response = await self._request(
            "POST",
            "/auth/v1/recover",
            params=params,
            headers=service_headers(self._anon_key),
            json={"email": email},
        )
        if response.status_code >= 400:
            raise AuthError(
                response_error_message(response, "Unable to send the password reset email"),
                status_code=response.status_code,
            )


__all__ = ["AuthError", "AuthServiceError", "SupabaseAuthClient"]

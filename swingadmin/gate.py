"""Admin authorization gate for pages and API calls.

Only one identity is ever authorized: the configured admin email.  Pages and
API calls share the same resolution and comparison but report failures
differently; pages redirect to the login screen while API calls answer
401/403/500 with a JSON error body.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from fastapi import Request, status

from .auth import AuthServiceError
from .config import AdminIdentity
from .errors import ApiError
from .models import Session
from .sessions import SessionResolver

logger = logging.getLogger("myswing.admin.gate")

LOGIN_PATH = "/login"


@dataclass(frozen=True)
class Authorized:
    session: Session


@dataclass(frozen=True)
class Redirect:
    target: str


PageAccess = Union[Authorized, Redirect]


class SessionGate:
    """Authorize callers against the single configured admin identity."""

    def __init__(
        self,
        admin: AdminIdentity,
        resolver: SessionResolver,
        *,
        login_path: str = LOGIN_PATH,
    ) -> None:
        self._admin = admin
        self._resolver = resolver
        self._login_path = login_path

    @property
    def resolver(self) -> SessionResolver:
        return self._resolver

    def is_admin(self, session: Optional[Session]) -> bool:
        if session is None or not session.email:
            return False
        return self._admin.matches(session.email)

    async def authorize_server_render(self, request: Request) -> PageAccess:
        """Return the authorized session, or where to send the browser instead."""
        try:
            session = await self._resolver.get_current_session(request)
        except AuthServiceError as exc:
            logger.error("Session lookup failed while rendering %s: %s", request.url.path, exc)
            return Redirect(self._login_path)

        if session is None or not session.email:
            return Redirect(self._login_path)

        if not self.is_admin(session):
            logger.warning(
                "Denied dashboard access to %s for user %s", request.url.path, session.user_id
            )
            return Redirect(self._login_path)

        return Authorized(session)

    async def authorize_api_call(self, request: Request) -> Authorized:
        """Return the authorized session or raise :class:`ApiError` (401, 403 or 500)."""
        try:
            session = await self._resolver.get_current_session(request)
        except AuthServiceError as exc:
            logger.error("Session lookup failed for %s %s: %s", request.method, request.url.path, exc)
            raise ApiError(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Server error while verifying the session.",
            ) from exc

        if session is None or not session.email:
            raise ApiError(status.HTTP_401_UNAUTHORIZED, "Authentication required.")

        if not self.is_admin(session):
            logger.warning(
                "Denied API access to %s %s for user %s",
                request.method,
                request.url.path,
                session.user_id,
            )
            raise ApiError(status.HTTP_403_FORBIDDEN, "Access denied.")

        return Authorized(session)


__all__ = ["Authorized", "LOGIN_PATH", "PageAccess", "Redirect", "SessionGate"]

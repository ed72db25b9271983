"""Cookie-backed session handling for the admin dashboard.

Tokens issued by the auth service are kept in the signed Starlette session
cookie.  Every lookup validates the access token with the auth service and,
when it has expired, exchanges the refresh token once for a new pair.
"""

from __future__ import annotations

import logging
from typing import Optional

from starlette.requests import HTTPConnection

from .auth import SupabaseAuthClient
from .models import Session

logger = logging.getLogger("myswing.admin.sessions")

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"


class SessionResolver:
    """Resolve, store, and clear the caller's session."""

    def __init__(self, auth: SupabaseAuthClient) -> None:
        self._auth = auth

    async def get_current_session(self, request: HTTPConnection) -> Optional[Session]:
        """Return the caller's session, or ``None`` when not signed in.

        Auth service failures propagate as :class:`~swingadmin.auth.AuthServiceError`.
        """
        access_token = request.session.get(ACCESS_TOKEN_KEY)
        if not isinstance(access_token, str) or not access_token:
            return None

        user = await self._auth.get_user(access_token)
        if user is not None:
            refresh_token = request.session.get(REFRESH_TOKEN_KEY)
            return Session(
                user_id=user.id,
                email=user.email,
                access_token=access_token,
                refresh_token=refresh_token if isinstance(refresh_token, str) else None,
            )

        refresh_token = request.session.get(REFRESH_TOKEN_KEY)
        if not isinstance(refresh_token, str) or not refresh_token:
            self.clear(request)
            return None

        refreshed = await self._auth.refresh_session(refresh_token)
        if refreshed is None:
            self.clear(request)
            return None

        logger.info("Refreshed session for user %s", refreshed.user_id)
        self.store(request, refreshed)
        return refreshed

    def store(self, request: HTTPConnection, session: Session) -> None:
        request.session[ACCESS_TOKEN_KEY] = session.access_token
        if session.refresh_token:
            request.session[REFRESH_TOKEN_KEY] = session.refresh_token
        else:
            request.session.pop(REFRESH_TOKEN_KEY, None)

    def clear(self, request: HTTPConnection) -> None:
        request.session.pop(ACCESS_TOKEN_KEY, None)
        request.session.pop(REFRESH_TOKEN_KEY, None)

    async def sign_out(self, request: HTTPConnection) -> None:
        access_token = request.session.get(ACCESS_TOKEN_KEY)
        if isinstance(access_token, str) and access_token:
            await self._auth.sign_out(access_token)
        request.session.clear()


__all__ = ["SessionResolver"]

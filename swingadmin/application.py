"""Application factory that serves both the JSON API and the dashboard UI."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from .api import create_api_app
from .auth import SupabaseAuthClient
from .config import Settings, load_settings
from .gate import SessionGate
from .sessions import SessionResolver
from .storage import SupabaseStorage
from .web import create_web_app

SESSION_COOKIE = "myswing_admin_session"
SESSION_MAX_AGE = 60 * 60 * 24 * 7

logger = logging.getLogger("myswing.admin.application")


def create_application(
    settings: Optional[Settings] = None,
    *,
    auth: Optional[SupabaseAuthClient] = None,
    storage: Optional[SupabaseStorage] = None,
) -> FastAPI:
    """Create the combined ASGI application.

    Settings are loaded from the environment when not supplied, so a missing
    required value stops the process before it starts serving.
    """

    if settings is None:
        settings = load_settings()

    if auth is None:
        auth = SupabaseAuthClient(
            settings.supabase_url,
            settings.supabase_anon_key,
            settings.supabase_service_role_key,
            timeout=settings.http_timeout,
        )
    if storage is None:
        storage = SupabaseStorage(
            settings.supabase_url,
            settings.supabase_service_role_key,
            timeout=settings.http_timeout,
        )

    resolver = SessionResolver(auth)
    gate = SessionGate(settings.admin, resolver)

    api_app = create_api_app(settings=settings, gate=gate, auth=auth, storage=storage)
    web_app = create_web_app(settings=settings, gate=gate, auth=auth, storage=storage)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info("Serving the admin dashboard for %s", settings.admin.email)
        try:
            yield
        finally:
            await auth.aclose()
            await storage.aclose()

    app = FastAPI(
        title="My Swing Admin",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=SESSION_COOKIE,
        https_only=settings.secure_cookies,
        same_site="lax",
        max_age=SESSION_MAX_AGE,
    )
    app.state.settings = settings
    app.state.auth = auth
    app.state.storage = storage
    app.state.gate = gate
    app.state.api = api_app
    app.state.web = web_app

    app.mount("/api", api_app)
    app.mount("/", web_app)

    return app


__all__ = ["create_application"]

"""JSON API backing the dashboard's message and profile screens."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import AuthError, AuthServiceError, SupabaseAuthClient
from .config import Settings
from .editor import InvalidUpdate, sanitize_updates
from .errors import ApiError, api_error_handler, error_response, http_error_handler
from .gate import Authorized, SessionGate
from .messages import MessageInput, MessageToggle
from .models import MESSAGES_TABLE, PROFILES_TABLE, Record
from .storage import RecordNotFound, StorageError, SupabaseStorage

logger = logging.getLogger("myswing.admin.api")

ALL_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")

RESET_PASSWORD_PATH = "/auth/reset-password"


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())[1:])
        message = error.get("msg", "Invalid value")
        problems.append(f"{location}: {message}" if location else message)
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        "; ".join(problems) or "The request body is invalid.",
    )


def _storage_failure(exc: StorageError) -> ApiError:
    return ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)


def resolve_reset_redirect(request: Request, site_url: Optional[str]) -> Optional[str]:
    """Where the password reset email should send the player back to."""
    base = site_url
    if not base:
        host = request.headers.get("host", "")
        if host:
            proto = request.headers.get("x-forwarded-proto") or "https"
            base = f"{proto}://{host}"
    if not base:
        return None
    return f"{base.rstrip('/')}{RESET_PASSWORD_PATH}"


def _method_not_allowed(allowed: Sequence[str]) -> Callable[[], Any]:
    allow_header = ",".join(allowed)

    async def handler() -> None:
        raise ApiError(
            status.HTTP_405_METHOD_NOT_ALLOWED,
            "Method not allowed.",
            headers={"Allow": allow_header},
        )

    return handler


def _restrict_methods(router: APIRouter, path: str, allowed: Sequence[str]) -> None:
    remaining = [method for method in ALL_METHODS if method not in allowed]
    router.add_api_route(
        path,
        _method_not_allowed(allowed),
        methods=remaining,
        include_in_schema=False,
    )


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as exc:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "The request body must be JSON.") from exc


def register_api_routes(
    app: FastAPI,
    *,
    settings: Settings,
    gate: SessionGate,
    auth: SupabaseAuthClient,
    storage: SupabaseStorage,
) -> None:
    """Expose the JSON API endpoints on the provided FastAPI application."""

    async def require_admin(request: Request) -> Authorized:
        return await gate.authorize_api_call(request)

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    router = APIRouter(dependencies=[Depends(require_admin)])

    @router.get("/messages")
    async def list_messages() -> List[Record]:
        try:
            return await storage.select(MESSAGES_TABLE, order="created_at.desc")
        except StorageError as exc:
            raise _storage_failure(exc) from exc

    @router.post("/messages", status_code=status.HTTP_201_CREATED)
    async def create_message(
        body: MessageInput,
        access: Authorized = Depends(require_admin),
    ) -> Dict[str, bool]:
        try:
            created = await storage.insert(MESSAGES_TABLE, body.to_row())
        except StorageError as exc:
            raise _storage_failure(exc) from exc
        logger.info("User %s created message %s", access.session.user_id, created.get("id"))
        return {"success": True}

    _restrict_methods(router, "/messages", ("GET", "POST"))

    @router.get("/messages/{message_id}")
    async def get_message(message_id: str) -> Record:
        try:
            return await storage.fetch_by_id(MESSAGES_TABLE, message_id)
        except StorageError as exc:
            raise ApiError(status.HTTP_404_NOT_FOUND, exc.message) from exc

    @router.put("/messages/{message_id}")
    async def update_message(
        message_id: str,
        body: MessageInput,
        access: Authorized = Depends(require_admin),
    ) -> Dict[str, bool]:
        try:
            await storage.update_partial(MESSAGES_TABLE, message_id, body.to_row())
        except RecordNotFound as exc:
            raise ApiError(status.HTTP_404_NOT_FOUND, exc.message) from exc
        except StorageError as exc:
            raise _storage_failure(exc) from exc
        logger.info("User %s updated message %s", access.session.user_id, message_id)
        return {"success": True}

    @router.delete("/messages/{message_id}")
    async def delete_message(
        message_id: str,
        access: Authorized = Depends(require_admin),
    ) -> Dict[str, bool]:
        try:
            await storage.delete(MESSAGES_TABLE, message_id)
        except StorageError as exc:
            raise _storage_failure(exc) from exc
        logger.info("User %s deleted message %s", access.session.user_id, message_id)
        return {"success": True}

    _restrict_methods(router, "/messages/{message_id}", ("GET", "PUT", "DELETE"))

    @router.post("/messages/{message_id}/toggle")
    async def toggle_message(
        message_id: str,
        body: MessageToggle,
        access: Authorized = Depends(require_admin),
    ) -> Dict[str, bool]:
        try:
            await storage.update_partial(
                MESSAGES_TABLE, message_id, {"is_active": body.is_active}
            )
        except RecordNotFound as exc:
            raise ApiError(status.HTTP_404_NOT_FOUND, exc.message) from exc
        except StorageError as exc:
            raise _storage_failure(exc) from exc
        logger.info(
            "User %s set message %s is_active=%s",
            access.session.user_id,
            message_id,
            body.is_active,
        )
        return {"success": True}

    _restrict_methods(router, "/messages/{message_id}/toggle", ("POST",))

    @router.get("/users/{user_id}")
    async def get_profile(user_id: str) -> Dict[str, Record]:
        try:
            profile = await storage.fetch_by_id(PROFILES_TABLE, user_id)
        except StorageError as exc:
            raise ApiError(status.HTTP_404_NOT_FOUND, exc.message) from exc
        return {"profile": profile}

    @router.put("/users/{user_id}")
    async def update_profile(
        user_id: str,
        request: Request,
        access: Authorized = Depends(require_admin),
    ) -> Dict[str, Record]:
        body = await _read_json(request)
        updates = body.get("updates") if isinstance(body, dict) else None
        try:
            sanitized = sanitize_updates(updates)
        except InvalidUpdate as exc:
            raise ApiError(status.HTTP_400_BAD_REQUEST, str(exc)) from exc
        if not sanitized:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "The update payload has no editable fields.")

        try:
            profile = await storage.update_partial(PROFILES_TABLE, user_id, sanitized)
        except RecordNotFound as exc:
            raise ApiError(status.HTTP_404_NOT_FOUND, exc.message) from exc
        except StorageError as exc:
            raise _storage_failure(exc) from exc

        logger.info(
            "User %s updated profile %s (%s)",
            access.session.user_id,
            user_id,
            ", ".join(sorted(sanitized)),
        )
        return {"profile": profile}

    _restrict_methods(router, "/users/{user_id}", ("GET", "PUT"))

    @router.post("/users/{user_id}/reset-password")
    async def reset_password(
        user_id: str,
        request: Request,
        access: Authorized = Depends(require_admin),
    ) -> Dict[str, bool]:
        await send_password_reset(
            auth,
            user_id,
            redirect_to=resolve_reset_redirect(request, settings.site_url),
        )
        logger.info("User %s sent a password reset to account %s", access.session.user_id, user_id)
        return {"success": True}

    _restrict_methods(router, "/users/{user_id}/reset-password", ("POST",))

    app.include_router(router)


async def send_password_reset(
    auth: SupabaseAuthClient, user_id: str, *, redirect_to: Optional[str]
) -> None:
    """Email a password reset link to the account ``user_id``; raises :class:`ApiError`."""
    try:
        user = await auth.get_user_by_id(user_id)
    except (AuthError, AuthServiceError):
        user = None
    if user is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, "Unable to find the associated user.")
    if not user.email:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "The user has no associated email address.")

    try:
        await auth.reset_password_for_email(user.email, redirect_to=redirect_to)
    except (AuthError, AuthServiceError) as exc:
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message) from exc


def create_api_app(
    *,
    settings: Settings,
    gate: SessionGate,
    auth: SupabaseAuthClient,
    storage: SupabaseStorage,
) -> FastAPI:
    """Return an application exposing only the JSON API."""

    app = FastAPI(
        title="My Swing Admin API",
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    register_api_routes(app, settings=settings, gate=gate, auth=auth, storage=storage)
    return app


__all__ = ["create_api_app", "register_api_routes", "resolve_reset_redirect", "send_password_reset"]

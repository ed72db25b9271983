"""Browser-based dashboard for the My Swing administrator."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from fastapi import FastAPI, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from .api import resolve_reset_redirect, send_password_reset
from .auth import AuthError, AuthServiceError, SupabaseAuthClient
from .config import Settings
from .editor import RecordEditor, sanitize_updates
from .errors import ApiError
from .gate import Authorized, Redirect, SessionGate
from .messages import (
    CONTENT_TYPE_LABELS,
    DISPLAY_TYPE_LABELS,
    MessageInput,
    compute_message_stats,
    empty_message_stats,
    parse_target_user_ids,
    parse_timestamp,
)
from .metrics import collect_dashboard_metrics, format_delta
from .models import MESSAGES_TABLE, PROFILES_TABLE
from .navigation import navigation_for
from .storage import StorageError, SupabaseStorage

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

USERS_PAGE_SIZE = 50

_PROFILE_NAME_KEYS = ("full_name", "display_name", "username", "first_name", "email")

NOT_ADMIN_MESSAGE = "This account does not have administrator access. Sign in with the authorized account."

logger = logging.getLogger("myswing.admin.web")


def _format_datetime(value: Any) -> str:
    if isinstance(value, str):
        value = parse_timestamp(value)
    if not isinstance(value, datetime):
        return "No date"
    return value.astimezone(timezone.utc).strftime("%d %b %Y • %H:%M %Z")


def _format_date(value: Any) -> str:
    parsed = parse_timestamp(value) if isinstance(value, str) else value
    if not isinstance(parsed, datetime):
        return "No date" if not value else "Invalid date"
    return parsed.astimezone(timezone.utc).strftime("%d %b %Y")


def _input_datetime(value: Any) -> str:
    """Render a stored timestamp for a ``datetime-local`` input."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return str(value or "")
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M")


def _message_form_values(source: Mapping[str, Any], *, from_record: bool) -> Dict[str, Any]:
    """Values used to fill the message editor, from a stored row or a submitted form."""
    if from_record:
        target_ids = source.get("target_user_ids") or []
        return {
            "title": source.get("title") or "",
            "content": source.get("content") or "",
            "content_type": source.get("content_type") or "text",
            "image_url": source.get("image_url") or "",
            "type": source.get("type") or "banner",
            "priority": source.get("priority") if source.get("priority") is not None else 0,
            "target_user_ids": "\n".join(str(item) for item in target_ids),
            "requires_marketing_consent": bool(source.get("requires_marketing_consent")),
            "start_date": _input_datetime(source.get("start_date")),
            "end_date": _input_datetime(source.get("end_date")),
            "is_active": bool(source.get("is_active")),
            "action_url": source.get("action_url") or "",
            "action_label": source.get("action_label") or "",
        }
    return {
        "title": source.get("title") or "",
        "content": source.get("content") or "",
        "content_type": source.get("content_type") or "text",
        "image_url": source.get("image_url") or "",
        "type": source.get("type") or "banner",
        "priority": source.get("priority") or 0,
        "target_user_ids": source.get("target_user_ids") or "",
        "requires_marketing_consent": "requires_marketing_consent" in source,
        "start_date": source.get("start_date") or "",
        "end_date": source.get("end_date") or "",
        "is_active": "is_active" in source,
        "action_url": source.get("action_url") or "",
        "action_label": source.get("action_label") or "",
    }


_NEW_MESSAGE_DEFAULTS: Dict[str, Any] = {
    "title": "",
    "content": "",
    "content_type": "text",
    "image_url": "",
    "type": "banner",
    "priority": 0,
    "target_user_ids": "",
    "requires_marketing_consent": False,
    "start_date": "",
    "end_date": "",
    "is_active": True,
    "action_url": "",
    "action_label": "",
}


def _validation_message(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        problems.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(problems) or "The message is invalid."


def _profile_display_name(profile: Mapping[str, Any]) -> str:
    for key in _PROFILE_NAME_KEYS:
        value = profile.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return str(profile.get("id", "Unknown player"))


def register_ui_routes(
    app: FastAPI,
    *,
    settings: Settings,
    gate: SessionGate,
    auth: SupabaseAuthClient,
    storage: SupabaseStorage,
) -> None:
    """Expose the HTML dashboard on the provided FastAPI app."""

    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
    templates.env.filters["datetime"] = _format_datetime
    templates.env.filters["date"] = _format_date
    templates.env.filters["delta"] = format_delta
    templates.env.globals["display_type_labels"] = DISPLAY_TYPE_LABELS
    templates.env.globals["content_type_labels"] = CONTENT_TYPE_LABELS

    resolver = gate.resolver

    def _flash(request: Request, message: str, *, category: str = "info") -> None:
        messages = request.session.get("flash_messages")
        if not isinstance(messages, list):
            messages = []
        messages.append({"message": message, "category": category})
        request.session["flash_messages"] = messages

    def _consume_flash(request: Request) -> List[Dict[str, str]]:
        messages = request.session.pop("flash_messages", [])
        if isinstance(messages, list):
            return messages
        return []

    def _redirect(request: Request, name: str, **path_params: Any) -> RedirectResponse:
        return RedirectResponse(
            request.url_for(name, **path_params),
            status_code=status.HTTP_303_SEE_OTHER,
        )

    def _redirect_to(target: Redirect) -> RedirectResponse:
        return RedirectResponse(target.target, status_code=status.HTTP_303_SEE_OTHER)

    def _render(
        request: Request,
        template: str,
        access: Authorized,
        *,
        status_code: int = status.HTTP_200_OK,
        **context: Any,
    ) -> HTMLResponse:
        context.update(
            {
                "user_email": access.session.email,
                "navigation": navigation_for(request.url.path),
                "messages": _consume_flash(request),
            }
        )
        return templates.TemplateResponse(
            request, template, context, status_code=status_code
        )

    @app.get("/login", response_class=HTMLResponse, name="show_login")
    async def login_form(request: Request):
        try:
            session = await resolver.get_current_session(request)
        except AuthServiceError as exc:
            logger.error("Session lookup failed on the login page: %s", exc)
            session = None

        if session is not None and gate.is_admin(session):
            return _redirect(request, "dashboard")

        error = request.session.pop("login_error", None)
        if session is not None:
            logger.warning("Signing out non-admin user %s", session.user_id)
            await resolver.sign_out(request)
            error = NOT_ADMIN_MESSAGE
        return templates.TemplateResponse(request, "login.html", {"error": error})

    @app.post("/login", name="process_login")
    async def process_login(request: Request, email: str = Form(...), password: str = Form(...)):
        try:
            session = await auth.sign_in_with_password(email, password)
        except AuthError as exc:
            request.session["login_error"] = exc.message
            return _redirect(request, "show_login")
        except AuthServiceError as exc:
            logger.error("Sign-in failed: %s", exc)
            request.session["login_error"] = "Unable to sign in right now. Try again."
            return _redirect(request, "show_login")

        request.session.clear()
        if not gate.is_admin(session):
            logger.warning("Rejected sign-in of non-admin user %s", session.user_id)
            await auth.sign_out(session.access_token)
            request.session["login_error"] = NOT_ADMIN_MESSAGE
            return _redirect(request, "show_login")

        resolver.store(request, session)
        return _redirect(request, "dashboard")

    @app.get("/logout", name="logout")
    async def logout(request: Request):
        await resolver.sign_out(request)
        return _redirect(request, "show_login")

    @app.get("/", response_class=HTMLResponse, name="dashboard")
    async def dashboard(request: Request):
        access = await gate.authorize_server_render(request)
        if isinstance(access, Redirect):
            return _redirect_to(access)

        now = datetime.now(timezone.utc)
        try:
            rows = await storage.select(
                MESSAGES_TABLE,
                columns="id,title,is_active,start_date,target_user_ids,updated_at,created_at",
                order="updated_at.desc",
            )
        except StorageError as exc:
            logger.error("Error loading messages: %s", exc)
            stats = empty_message_stats(now)
        else:
            stats = compute_message_stats(rows, now)

        metrics = await collect_dashboard_metrics(storage, now)
        return _render(request, "dashboard.html", access, stats=stats, metrics=metrics)

    @app.get("/messages", response_class=HTMLResponse, name="messages")
    async def list_messages(request: Request):
        access = await gate.authorize_server_render(request)
        if isinstance(access, Redirect):
            return _redirect_to(access)

        error: Optional[str] = None
        try:
            rows = await storage.select(MESSAGES_TABLE, order="created_at.desc")
        except StorageError as exc:
            rows = []
            error = exc.message
        has_targeting = any(row.get("target_user_ids") for row in rows)
        return _render(
            request,
            "messages/list.html",
            access,
            rows=rows,
            has_targeting=has_targeting,
            error=error,
        )

    async def _read_message_form(form: Any) -> MessageInput:
        upload = form.get("target_file")
        uploaded_ids: Optional[List[str]] = None
        if isinstance(upload, UploadFile) and upload.filename:
            raw = await upload.read()
            uploaded_ids = parse_target_user_ids(
                upload.filename, raw.decode("utf-8", errors="replace")
            )
        return MessageInput.from_form(form, uploaded_ids=uploaded_ids)

    def _render_message_form(
        request: Request,
        access: Authorized,
        *,
        values: Mapping[str, Any],
        message_id: Optional[str] = None,
        error: Optional[str] = None,
        status_code: int = status.HTTP_200_OK,
    ) -> HTMLResponse:
        return _render(
            request,
            "messages/form.html",
            access,
            status_code=status_code,
            values=values,
            message_id=message_id,
            error=error,
        )

    @app.get("/messages/new", response_class=HTMLResponse, name="new_message")
    async def new_message(request: Request):
        access = await gate.authorize_server_render(request)
        if isinstance(access, Redirect):
            return _redirect_to(access)
        return _render_message_form(request, access, values=_NEW_MESSAGE_DEFAULTS)

    @app.post("/messages/new", name="create_message")
    async def create_message(request: Request):
        access = await gate.authorize_server_render(request)
        if isinstance(access, Redirect):
            return _redirect_to(access)

        form = await request.form()
        try:
            message = await _read_message_form(form)
        except (ValidationError, ValueError) as exc:
            message_text = _validation_message(exc) if isinstance(exc, ValidationError) else str(exc)
            return _render_message_form(
                request,
                access,
                values=_message_form_values(form, from_record=False),
                error=message_text,
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        try:
            created = await storage.insert(MESSAGES_TABLE, message.to_row())
        except StorageError as exc:
            return _render_message_form(
                request,
                access,
                values=_message_form_values(form, from_record=False),
                error=exc.message,
                status_code=status.HTTP_502_BAD_GATEWAY,
            )

        logger.info("User %s created message %s", access.session.user_id, created.get("id"))
        _flash(request, f'Message "{message.title}" created.', category="success")
        return _redirect(request, "messages")

    @app.get("/messages/{message_id}/edit", response_class=HTMLResponse, name="edit_message")
    async def edit_message(request: Request, message_id: str):
        access = await gate.authorize_server_render(request)
        if isinstance(access, Redirect):
            return _redirect_to(access)

        try:
            record = await storage.fetch_by_id(MESSAGES_TABLE, message_id)
        except StorageError as exc:
            logger.error("Error loading message %s: %s", message_id, exc)
            _flash(request, "This message could not be loaded.", category="error")
            return _redirect(request, "messages")

        return _render_message_form(
            request,
            access,
            values=_message_form_values(record, from_record=True),
            message_id=message_id,
        )

    @app.post("/messages/{message_id}/edit", name="update_message")
    async def update_message(request: Request, message_id: str):
        access = await gate.authorize_server_render(request)
        if isinstance(access, Redirect):
            return _redirect_to(access)

        form = await request.form()
        try:
            message = await _read_message_form(form)
        except (ValidationError, ValueError) as exc:
            message_text = _validation_message(exc) if isinstance(exc, ValidationError) else str(exc)
            return _render_message_form(
                request,
                access,
                values=_message_form_values(form, from_record=False),
                message_id=message_id,
                error=message_text,
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        try:
            await storage.update_partial(MESSAGES_TABLE, message_id, message.to_row())
        except StorageError as exc:
            return _render_message_form(
                request,
                access,
                values=_message_form_values(form, from_record=False),
                message_id=message_id,
                error=exc.message,
                status_code=status.HTTP_502_BAD_GATEWAY,
            )

        logger.info("User %s updated message %s", access.session.user_id, message_id)
        _flash(request, f'Message "{message.title}" updated.', category="success")
        return _redirect(request, "messages")

    @app.post("/messages/{message_id}/toggle", name="toggle_message")
    async def toggle_message(request: Request, message_id: str, is_active: str = Form(...)):
        access = await gate.authorize_server_render(request)
        if isinstance(access, Redirect):
            return _redirect_to(access)

        desired = is_active.strip().lower() in {"1", "true", "on", "yes"}
        try:
            await storage.update_partial(MESSAGES_TABLE, message_id, {"is_active": desired})
        except StorageError as exc:
            _flash(request, exc.message, category="error")
        else:
            logger.info(
                "User %s set message %s is_active=%s", access.session.user_id, message_id, desired
            )
        return _redirect(request, "messages")

    @app.post("/messages/{message_id}/delete", name="delete_message")
    async def delete_message(request: Request, message_id: str):
        access = await gate.authorize_server_render(request)
        if isinstance(access, Redirect):
            return _redirect_to(access)

        try:
            await storage.delete(MESSAGES_TABLE, message_id)
        except StorageError as exc:
            _flash(request, exc.message, category="error")
        else:
            logger.info("User %s deleted message %s", access.session.user_id, message_id)
            _flash(request, "Message deleted.", category="success")
        return _redirect(request, "messages")

    @app.get("/users", response_class=HTMLResponse, name="users")
    async def list_users(request: Request, q: str = ""):
        access = await gate.authorize_server_render(request)
        if isinstance(access, Redirect):
            return _redirect_to(access)

        query = q.strip()
        filters = {"email": f"ilike.*{query}*"} if query else None
        error: Optional[str] = None
        try:
            profiles = await storage.select(
                PROFILES_TABLE,
                order="created_at.desc",
                filters=filters,
                limit=USERS_PAGE_SIZE,
            )
        except StorageError as exc:
            profiles = []
            error = exc.message

        rows = [
            {
                "id": profile.get("id"),
                "name": _profile_display_name(profile),
                "email": profile.get("email"),
                "created_at": profile.get("created_at"),
            }
            for profile in profiles
        ]
        return _render(request, "users/list.html", access, rows=rows, query=query, error=error)

    def _render_editor(
        request: Request,
        access: Authorized,
        editor: RecordEditor,
        *,
        error: Optional[str] = None,
        status_code: int = status.HTTP_200_OK,
    ) -> HTMLResponse:
        return _render(
            request,
            "users/edit.html",
            access,
            status_code=status_code,
            editor=editor,
            profile_id=editor.record_id,
            display_name=_profile_display_name(editor.record),
            error=error,
        )

    @app.get("/users/{user_id}", response_class=HTMLResponse, name="edit_user")
    async def edit_user(request: Request, user_id: str):
        access = await gate.authorize_server_render(request)
        if isinstance(access, Redirect):
            return _redirect_to(access)

        try:
            profile = await storage.fetch_by_id(PROFILES_TABLE, user_id)
        except StorageError as exc:
            logger.error("Error loading profile %s: %s", user_id, exc)
            _flash(request, "This profile could not be loaded.", category="error")
            return _redirect(request, "users")

        return _render_editor(request, access, RecordEditor(profile))

    @app.post("/users/{user_id}", name="update_user")
    async def update_user(request: Request, user_id: str):
        access = await gate.authorize_server_render(request)
        if isinstance(access, Redirect):
            return _redirect_to(access)

        # Editable columns are derived again from the stored row, never from the form.
        try:
            profile = await storage.fetch_by_id(PROFILES_TABLE, user_id)
        except StorageError as exc:
            logger.error("Error loading profile %s: %s", user_id, exc)
            _flash(request, "This profile could not be loaded.", category="error")
            return _redirect(request, "users")

        editor = RecordEditor(profile)
        if editor.nothing_editable:
            return _render_editor(request, access, editor)

        editor.apply(await request.form())
        updates = sanitize_updates(editor.payload())
        try:
            await storage.update_partial(PROFILES_TABLE, user_id, updates)
        except StorageError as exc:
            return _render_editor(
                request,
                access,
                editor,
                error=exc.message,
                status_code=status.HTTP_502_BAD_GATEWAY,
            )

        logger.info(
            "User %s updated profile %s (%s)",
            access.session.user_id,
            user_id,
            ", ".join(sorted(updates)),
        )
        _flash(request, "Profile updated.", category="success")
        return _redirect(request, "edit_user", user_id=user_id)

    @app.post("/users/{user_id}/reset-password", name="reset_user_password")
    async def reset_user_password(request: Request, user_id: str):
        access = await gate.authorize_server_render(request)
        if isinstance(access, Redirect):
            return _redirect_to(access)

        try:
            await send_password_reset(
                auth,
                user_id,
                redirect_to=resolve_reset_redirect(request, settings.site_url),
            )
        except ApiError as exc:
            _flash(request, exc.message, category="error")
        else:
            logger.info(
                "User %s sent a password reset to account %s", access.session.user_id, user_id
            )
            _flash(request, "Password reset email sent.", category="success")
        return _redirect(request, "edit_user", user_id=user_id)

    @app.get("/data", response_class=HTMLResponse, name="data")
    async def data(request: Request):
        access = await gate.authorize_server_render(request)
        if isinstance(access, Redirect):
            return _redirect_to(access)

        metrics = await collect_dashboard_metrics(storage, datetime.now(timezone.utc))
        return _render(request, "data.html", access, metrics=metrics)


def create_web_app(
    *,
    settings: Settings,
    gate: SessionGate,
    auth: SupabaseAuthClient,
    storage: SupabaseStorage,
) -> FastAPI:
    """Return an application exposing only the HTML dashboard."""

    app = FastAPI(
        title="My Swing Admin",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    register_ui_routes(app, settings=settings, gate=gate, auth=auth, storage=storage)
    return app


__all__ = ["create_web_app", "register_ui_routes"]

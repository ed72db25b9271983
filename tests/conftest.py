import base64
import json
import sys
from copy import deepcopy
from itertools import count
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import pytest
from fastapi.testclient import TestClient
from itsdangerous import TimestampSigner

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from swingadmin.application import SESSION_COOKIE, create_application
from swingadmin.auth import AuthError, AuthServiceError
from swingadmin.config import Settings
from swingadmin.models import AuthUser, Session
from swingadmin.storage import RecordNotFound, StorageError


ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "correct horse battery staple"
PLAYER_EMAIL = "someone@example.com"
PLAYER_PASSWORD = "player-password"


class FakeAuthClient:
    """In-memory stand-in for the hosted auth service."""

    def __init__(self) -> None:
        self.accounts: Dict[str, Dict[str, str]] = {}
        self.tokens: Dict[str, AuthUser] = {}
        self.refresh_tokens: Dict[str, AuthUser] = {}
        self.directory: Dict[str, AuthUser] = {}
        self.reset_requests: List[Dict[str, Optional[str]]] = []
        self.signed_out: List[str] = []
        self.fail_lookups = False
        self.fail_resets = False
        self._ids = count(1)
        self.closed = False

    def add_account(self, email: str, password: str, *, user_id: Optional[str] = None) -> AuthUser:
        user = AuthUser(id=user_id or f"user-{next(self._ids)}", email=email)
        self.accounts[email.lower()] = {"password": password, "id": user.id}
        self.directory[user.id] = user
        return user

    def issue(self, user: AuthUser) -> Session:
        serial = next(self._ids)
        access = f"access-{user.id}-{serial}"
        refresh = f"refresh-{user.id}-{serial}"
        self.tokens[access] = user
        self.refresh_tokens[refresh] = user
        return Session(
            user_id=user.id,
            email=user.email,
            access_token=access,
            refresh_token=refresh,
        )

    def expire_access_tokens(self) -> None:
        self.tokens.clear()

    async def aclose(self) -> None:
        self.closed = True

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        account = self.accounts.get(email.strip().lower())
        if account is None or account["password"] != password:
            raise AuthError("Invalid login credentials", status_code=400)
        return self.issue(self.directory[account["id"]])

    async def refresh_session(self, refresh_token: str) -> Optional[Session]:
        user = self.refresh_tokens.pop(refresh_token, None)
        if user is None:
            return None
        return self.issue(user)

    async def get_user(self, access_token: str) -> Optional[AuthUser]:
        if self.fail_lookups:
            raise AuthServiceError("Auth service unavailable", status_code=503)
        return self.tokens.get(access_token)

    async def sign_out(self, access_token: str) -> None:
        self.signed_out.append(access_token)
        user = self.tokens.pop(access_token, None)
        if user is not None:
            self.refresh_tokens = {
                token: owner for token, owner in self.refresh_tokens.items() if owner != user
            }

    def live_access_tokens(self) -> List[str]:
        return sorted(self.tokens)

    async def get_user_by_id(self, user_id: str) -> Optional[AuthUser]:
        return self.directory.get(user_id)

    async def reset_password_for_email(self, email: str, *, redirect_to: Optional[str] = None) -> None:
        if self.fail_resets:
            raise AuthError("Email rate limit exceeded", status_code=429)
        self.reset_requests.append({"email": email, "redirect_to": redirect_to})


class FakeStorage:
    """In-memory stand-in for the relational backend."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.failures: Dict[str, StorageError] = {}
        self.counts: Dict[str, int] = {}
        self.failing_counts: set = set()
        self._ids = count(1)
        self.closed = False

    def seed(self, table: str, *rows: Mapping[str, Any]) -> None:
        self.tables.setdefault(table, []).extend(dict(row) for row in rows)

    def _maybe_fail(self, operation: str) -> None:
        error = self.failures.get(operation)
        if error is not None:
            raise error

    def _find(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        for row in self.tables.get(table, []):
            if str(row.get("id")) == str(record_id):
                return row
        return None

    async def aclose(self) -> None:
        self.closed = True

    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        order: Optional[str] = None,
        filters: Optional[Mapping[str, str]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        self.calls.append(("select", table, dict(filters or {})))
        self._maybe_fail("select")
        rows = [deepcopy(row) for row in self.tables.get(table, [])]
        for column, expression in (filters or {}).items():
            if expression.startswith("eq."):
                rows = [row for row in rows if str(row.get(column)) == expression[3:]]
            elif expression.startswith("ilike."):
                needle = expression[len("ilike."):].strip("*").lower()
                rows = [row for row in rows if needle in str(row.get(column) or "").lower()]
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def fetch_by_id(self, table: str, record_id: str) -> Dict[str, Any]:
        self.calls.append(("fetch_by_id", table, record_id))
        self._maybe_fail("fetch_by_id")
        row = self._find(table, record_id)
        if row is None:
            raise RecordNotFound(f"No row with id {record_id} in {table}", status_code=404)
        return deepcopy(row)

    async def update_partial(self, table: str, record_id: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        self.calls.append(("update_partial", table, record_id, dict(values)))
        self._maybe_fail("update_partial")
        row = self._find(table, record_id)
        if row is None:
            raise RecordNotFound(f"No row with id {record_id} in {table}", status_code=404)
        row.update(values)
        return deepcopy(row)

    async def insert(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        self.calls.append(("insert", table, dict(values)))
        self._maybe_fail("insert")
        row = {"id": f"row-{next(self._ids)}", **values}
        self.tables.setdefault(table, []).append(row)
        return deepcopy(row)

    async def delete(self, table: str, record_id: str) -> None:
        self.calls.append(("delete", table, record_id))
        self._maybe_fail("delete")
        self.tables[table] = [
            row for row in self.tables.get(table, []) if str(row.get("id")) != str(record_id)
        ]

    async def count(self, table: str, filters: Optional[Mapping[str, str]] = None) -> int:
        self.calls.append(("count", table, dict(filters or {})))
        if table in self.failing_counts:
            raise StorageError(f"count on {table} failed", status_code=500)
        return self.counts.get(table, len(self.tables.get(table, [])))

    def mutations(self) -> List[tuple]:
        return [call for call in self.calls if call[0] in {"update_partial", "insert", "delete"}]


@pytest.fixture
def settings() -> Settings:
    return Settings.from_mapping(
        {
            "ADMIN_EMAIL": ADMIN_EMAIL,
            "SUPABASE_URL": "https://project.supabase.test",
            "SUPABASE_ANON_KEY": "anon-key",
            "SUPABASE_SERVICE_ROLE_KEY": "service-role-key",
            "ADMIN_SESSION_SECRET": "tests-secret-key",
            "ADMIN_SESSION_SECURE": "false",
            "ADMIN_SITE_URL": "https://admin.myswing.test",
        }
    )


@pytest.fixture
def auth() -> FakeAuthClient:
    client = FakeAuthClient()
    client.add_account(ADMIN_EMAIL, ADMIN_PASSWORD, user_id="admin-id")
    client.add_account(PLAYER_EMAIL, PLAYER_PASSWORD, user_id="player-id")
    return client


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def app(settings, auth, storage):
    return create_application(settings, auth=auth, storage=storage)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def login(client: TestClient, email: str, password: str):
    return client.post(
        "/login",
        data={"email": email, "password": password},
        follow_redirects=False,
    )


@pytest.fixture
def admin_client(client):
    response = login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    assert response.status_code == 303
    return client


def use_session(client: TestClient, settings: Settings, session: Session) -> None:
    """Put ``session`` in the signed cookie the way the session middleware writes it."""
    payload = {"access_token": session.access_token, "refresh_token": session.refresh_token}
    data = base64.b64encode(json.dumps(payload).encode("utf-8"))
    cookie = TimestampSigner(settings.session_secret).sign(data).decode("utf-8")
    client.cookies.set(SESSION_COOKIE, cookie, domain="testserver.local", path="/")


@pytest.fixture
def player_session(auth) -> Session:
    return auth.issue(auth.directory["player-id"])


@pytest.fixture
def player_client(client, settings, player_session):
    """A client holding a live session of an account that is not the administrator."""
    use_session(client, settings, player_session)
    return client

"""Domain models shared by the dashboard components."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

PROFILES_TABLE = "profiles"
MESSAGES_TABLE = "in_app_messages"
ANALYSES_TABLE = "swing_analyses"

# Column name -> scalar value, as returned by the storage service.
Record = Dict[str, Any]


@dataclass(frozen=True)
class AuthUser:
    """An account known to the hosted auth service."""

    id: str
    email: Optional[str]


@dataclass(frozen=True)
class Session:
    """An authenticated caller, as issued by the auth service."""

    user_id: str
    email: Optional[str]
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None


__all__ = [
    "ANALYSES_TABLE",
    "AuthUser",
    "MESSAGES_TABLE",
    "PROFILES_TABLE",
    "Record",
    "Session",
]

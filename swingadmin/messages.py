"""In-app message payloads, targeting uploads and dashboard statistics."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional

from pydantic import BaseModel, Field, StrictBool

from .models import Record

CONTENT_TYPES = ("text", "html", "markdown")
DISPLAY_TYPES = ("banner", "overlay")

DISPLAY_TYPE_LABELS = {"banner": "Banner", "overlay": "Overlay"}
CONTENT_TYPE_LABELS = {"text": "Text", "html": "HTML", "markdown": "Markdown"}


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    return value or None


def _clean_ids(values: Iterable[Any]) -> List[str]:
    return [str(value).strip() for value in values if str(value).strip()]


class MessageInput(BaseModel):
    """Body accepted when creating or replacing an in-app message."""

    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    content_type: Literal["text", "html", "markdown"] = "text"
    image_url: Optional[str] = None
    type: Literal["banner", "overlay"] = "banner"
    priority: int = 0
    target_user_ids: Optional[List[str]] = None
    requires_marketing_consent: bool = False
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    is_active: bool = False
    action_url: Optional[str] = None
    action_label: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        """Column values written to storage, with blank optionals stored as NULL."""
        target_ids = _clean_ids(self.target_user_ids or [])
        return {
            "title": self.title,
            "content": self.content,
            "content_type": self.content_type,
            "image_url": _blank_to_none(self.image_url),
            "type": self.type,
            "priority": self.priority,
            "target_user_ids": target_ids or None,
            "requires_marketing_consent": bool(self.requires_marketing_consent),
            "start_date": _blank_to_none(self.start_date),
            "end_date": _blank_to_none(self.end_date),
            "is_active": bool(self.is_active),
            "action_url": _blank_to_none(self.action_url),
            "action_label": _blank_to_none(self.action_label),
        }

    @classmethod
    def from_form(
        cls,
        form: Mapping[str, Any],
        *,
        uploaded_ids: Optional[List[str]] = None,
    ) -> "MessageInput":
        """Build a message from the HTML editor; checkboxes count when present."""
        try:
            priority = int(str(form.get("priority") or "0").strip())
        except ValueError:
            priority = 0

        if uploaded_ids is not None:
            target_ids = uploaded_ids
        else:
            target_ids = _clean_ids(str(form.get("target_user_ids") or "").splitlines())

        return cls(
            title=str(form.get("title") or "").strip(),
            content=str(form.get("content") or ""),
            content_type=str(form.get("content_type") or "text"),
            image_url=str(form.get("image_url") or "").strip(),
            type=str(form.get("type") or "banner"),
            priority=priority,
            target_user_ids=target_ids,
            requires_marketing_consent="requires_marketing_consent" in form,
            start_date=str(form.get("start_date") or "").strip(),
            end_date=str(form.get("end_date") or "").strip(),
            is_active="is_active" in form,
            action_url=str(form.get("action_url") or "").strip(),
            action_label=str(form.get("action_label") or "").strip(),
        )


class MessageToggle(BaseModel):
    is_active: StrictBool


def parse_target_user_ids(filename: str, text: str) -> List[str]:
    """Read targeted user ids from an uploaded ``.json`` or ``.csv`` file.

    JSON files hold either an array of ids or ``{"userIds": [...]}``; CSV files
    hold one id per line.
    """
    name = (filename or "").lower()
    if name.endswith(".json"):
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise ValueError("The targeting file is not valid JSON.") from exc
        if isinstance(data, dict):
            data = data.get("userIds") or []
        if not isinstance(data, list):
            raise ValueError("The targeting file must contain a list of user ids.")
        return _clean_ids(data)
    if name.endswith(".csv"):
        return _clean_ids(text.splitlines())
    raise ValueError("Targeting files must be .csv or .json.")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp from storage; naive values are taken as UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    cleaned = value.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(cleaned)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class MessageStats:
    total: int
    active: int
    targeted: int
    upcoming: int
    last_message_title: Optional[str]
    last_message_updated_at: Optional[datetime]
    generated_at: datetime


def empty_message_stats(now: datetime) -> MessageStats:
    return MessageStats(
        total=0,
        active=0,
        targeted=0,
        upcoming=0,
        last_message_title=None,
        last_message_updated_at=None,
        generated_at=now,
    )


def compute_message_stats(messages: List[Record], now: datetime) -> MessageStats:
    """Summarise messages ordered by most recently updated first."""
    upcoming = 0
    for message in messages:
        start = parse_timestamp(message.get("start_date"))
        if start is not None and start > now:
            upcoming += 1

    latest = messages[0] if messages else None
    last_updated = None
    if latest is not None:
        last_updated = parse_timestamp(latest.get("updated_at")) or parse_timestamp(
            latest.get("created_at")
        )

    return MessageStats(
        total=len(messages),
        active=sum(1 for message in messages if message.get("is_active")),
        targeted=sum(
            1
            for message in messages
            if isinstance(message.get("target_user_ids"), list) and message["target_user_ids"]
        ),
        upcoming=upcoming,
        last_message_title=latest.get("title") if latest is not None else None,
        last_message_updated_at=last_updated,
        generated_at=now,
    )


__all__ = [
    "CONTENT_TYPES",
    "CONTENT_TYPE_LABELS",
    "DISPLAY_TYPES",
    "DISPLAY_TYPE_LABELS",
    "MessageInput",
    "MessageStats",
    "MessageToggle",
    "compute_message_stats",
    "empty_message_stats",
    "parse_target_user_ids",
    "parse_timestamp",
]

"""Primary navigation of the dashboard."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional


@dataclass(frozen=True)
class NavItem:
    label: str
    href: str
    match: Optional[Callable[[str], bool]] = None

    def is_active(self, path: str) -> bool:
        if self.match is not None:
            return self.match(path)
        return path == self.href


@dataclass(frozen=True)
class NavLink:
    label: str
    href: str
    active: bool


def _messages_match(path: str) -> bool:
    return path.startswith("/messages") and not path.startswith("/messages/new")


NAV_ITEMS: tuple[NavItem, ...] = (
    NavItem("Dashboard", "/"),
    NavItem("Messages", "/messages", _messages_match),
    NavItem("New message", "/messages/new", lambda path: path.startswith("/messages/new")),
    NavItem("Users", "/users", lambda path: path.startswith("/users")),
    NavItem("Data", "/data", lambda path: path.startswith("/data")),
)


def navigation_for(path: str) -> List[NavLink]:
    return [NavLink(item.label, item.href, item.is_active(path)) for item in NAV_ITEMS]


__all__ = ["NAV_ITEMS", "NavItem", "NavLink", "navigation_for"]

"""Administrative dashboard for the My Swing golf coaching app."""

from __future__ import annotations

from typing import Any

from .config import ConfigurationError, Settings, load_settings


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the combined web + API application."""

    from .application import create_application

    return create_application(*args, **kwargs)


__all__ = [
    "ConfigurationError",
    "Settings",
    "create_app",
    "load_settings",
]

"""Configuration management for the My Swing admin dashboard."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

CONFIG_PATH_ENV = "MYSWING_ADMIN_CONFIG"

_REQUIRED_KEYS = (
    "ADMIN_EMAIL",
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "SUPABASE_SERVICE_ROLE_KEY",
    "ADMIN_SESSION_SECRET",
)


class ConfigurationError(RuntimeError):
    """Raised when the process is started without its required settings."""


@dataclass(frozen=True)
class AdminIdentity:
    """The single email address allowed to use the dashboard."""

    email: str

    def __post_init__(self) -> None:
        cleaned = (self.email or "").strip().lower()
        if not cleaned:
            raise ConfigurationError("ADMIN_EMAIL must not be empty")
        object.__setattr__(self, "email", cleaned)

    def matches(self, candidate: Optional[str]) -> bool:
        if not candidate:
            return False
        return candidate.lower() == self.email


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, loaded once at startup."""

    admin: AdminIdentity
    supabase_url: str
    supabase_anon_key: str
    supabase_service_role_key: str
    session_secret: str
    secure_cookies: bool = True
    site_url: Optional[str] = None
    http_timeout: float = 10.0

    @staticmethod
    def from_mapping(data: Mapping[str, object]) -> "Settings":
        """Create :class:`Settings` from a flat mapping of configuration keys."""
        missing = [key for key in _REQUIRED_KEYS if not str(data.get(key) or "").strip()]
        if missing:
            raise ConfigurationError(
                f"Missing required configuration values: {', '.join(missing)}"
            )

        site_url = str(data.get("ADMIN_SITE_URL") or "").strip().rstrip("/") or None
        raw_timeout = data.get("ADMIN_HTTP_TIMEOUT")
        try:
            timeout = float(raw_timeout) if raw_timeout not in (None, "") else 10.0
        except (TypeError, ValueError) as exc:
            raise ConfigurationError("ADMIN_HTTP_TIMEOUT must be a number of seconds") from exc

        return Settings(
            admin=AdminIdentity(str(data["ADMIN_EMAIL"])),
            supabase_url=str(data["SUPABASE_URL"]).strip().rstrip("/"),
            supabase_anon_key=str(data["SUPABASE_ANON_KEY"]).strip(),
            supabase_service_role_key=str(data["SUPABASE_SERVICE_ROLE_KEY"]).strip(),
            session_secret=str(data["ADMIN_SESSION_SECRET"]),
            secure_cookies=_env_flag(data.get("ADMIN_SESSION_SECURE"), True),
            site_url=site_url,
            http_timeout=timeout,
        )


def _env_flag(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if not lowered:
        return default
    return lowered in {"1", "true", "yes", "on"}


def load_config_file(config_path: Path) -> Dict[str, object]:
    """Load settings from a YAML file whose top-level keys mirror the env names."""
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")
    return {str(key).upper(): value for key, value in raw.items()}


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    """Resolve the optional configuration file path."""
    if not env_value:
        return None
    return Path(env_value).expanduser().resolve(strict=False)


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    *,
    config_path: Optional[Path] = None,
) -> Settings:
    """Load settings from an optional YAML file overlaid with environment variables."""
    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get(CONFIG_PATH_ENV))

    data: Dict[str, object] = {}
    if path is not None:
        if not path.exists():
            raise ConfigurationError(f"Configuration file {path} does not exist")
        data.update(load_config_file(path))

    for key in (*_REQUIRED_KEYS, "ADMIN_SESSION_SECURE", "ADMIN_SITE_URL", "ADMIN_HTTP_TIMEOUT"):
        value = env.get(key)
        if value is not None and value.strip():
            data[key] = value

    return Settings.from_mapping(data)


__all__ = [
    "AdminIdentity",
    "ConfigurationError",
    "Settings",
    "load_config_file",
    "load_settings",
    "resolve_config_path",
]

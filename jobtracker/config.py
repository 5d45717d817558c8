"""Configuration management for the jobs tracker."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml

from .database import resolve_database_path
from .errors import ConfigurationError

ENVIRONMENTS = frozenset({"development", "production", "test"})

DEFAULT_SESSION_TTL = timedelta(hours=8)
DEFAULT_SESSION_COOKIE = "jobtracker_session"


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_trusted_proxies(raw: object) -> List[str] | str:
    if raw is None:
        return "*"
    if isinstance(raw, (list, tuple)):
        hosts = [str(item).strip() for item in raw if str(item).strip()]
    else:
        hosts = [item.strip() for item in str(raw).split(",") if item.strip()]
    return hosts or "*"


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, built once at startup and never mutated."""

    session_secret: str
    database_path: Path
    environment: str = "development"
    session_ttl: timedelta = DEFAULT_SESSION_TTL
    secure_cookies: bool = False
    session_cookie: str = DEFAULT_SESSION_COOKIE
    trusted_proxies: List[str] | str = "*"

    def __post_init__(self) -> None:
        if not self.session_secret:
            raise ConfigurationError(
                "JOBTRACKER_SESSION_SECRET must be configured to sign session cookies"
            )
        if self.environment not in ENVIRONMENTS:
            raise ConfigurationError(
                f"Unknown environment {self.environment!r}; expected one of "
                f"{', '.join(sorted(ENVIRONMENTS))}"
            )
        if self.session_ttl <= timedelta(0):
            raise ConfigurationError("Session lifetime must be positive")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def show_error_details(self) -> bool:
        return not self.is_production


def _load_yaml(config_path: Path) -> Dict[str, object]:
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")
    return raw


def _ttl_from(raw: object) -> timedelta:
    try:
        minutes = int(str(raw))
    except ValueError as exc:
        raise ConfigurationError(f"Invalid session lifetime {raw!r}; expected minutes") from exc
    return timedelta(minutes=minutes)


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build :class:`Settings` from an optional YAML file and the environment.

    Environment variables win over values from the file. When the resolved
    environment is ``test`` and ``JOBTRACKER_TEST_DB_PATH`` is set, that
    database is used instead of the regular one.
    """

    env = os.environ if environ is None else environ

    if config_path is None and env.get("JOBTRACKER_CONFIG"):
        config_path = Path(env["JOBTRACKER_CONFIG"]).expanduser()
    data: Dict[str, object] = _load_yaml(config_path) if config_path is not None else {}

    environment = str(env.get("JOBTRACKER_ENV") or data.get("environment") or "development")
    environment = environment.strip().lower()

    secret = env.get("JOBTRACKER_SESSION_SECRET") or data.get("session_secret") or ""

    db_value = env.get("JOBTRACKER_DB_PATH") or data.get("database_path")
    if environment == "test":
        db_value = env.get("JOBTRACKER_TEST_DB_PATH") or data.get("test_database_path") or db_value
    database_path = resolve_database_path(str(db_value) if db_value else None)

    ttl_raw = env.get("JOBTRACKER_SESSION_TTL_MINUTES") or data.get("session_ttl_minutes")
    session_ttl = _ttl_from(ttl_raw) if ttl_raw else DEFAULT_SESSION_TTL

    secure_raw = env.get("JOBTRACKER_SESSION_SECURE")
    if secure_raw is not None:
        secure_cookies = _env_flag(secure_raw)
    else:
        secure_cookies = bool(data.get("secure_cookies", False))

    proxies_raw = env.get("JOBTRACKER_TRUSTED_PROXIES") or data.get("trusted_proxies")

    return Settings(
        session_secret=str(secret),
        database_path=database_path,
        environment=environment,
        session_ttl=session_ttl,
        secure_cookies=secure_cookies,
        session_cookie=str(data.get("session_cookie") or DEFAULT_SESSION_COOKIE),
        trusted_proxies=_parse_trusted_proxies(proxies_raw),
    )


__all__ = ["Settings", "load_settings"]

"""Engine settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip()
    return normalized or default


@dataclass(frozen=True)
class RunSettings:
    """Limits applied to every run loop."""

    max_steps: int

    @classmethod
    def from_env(cls) -> "RunSettings":
        return cls(max_steps=max(0, _env_int("WIREBOARD_MAX_STEPS", 0)))


@dataclass(frozen=True)
class RemoteSettings:
    """Proxy protocol transport configuration."""

    http_timeout_seconds: float
    exchange_idle_seconds: float
    proxy_path: str

    @classmethod
    def from_env(cls) -> "RemoteSettings":
        path = _env_str("WIREBOARD_PROXY_PATH", "/proxy") or "/proxy"
        if not path.startswith("/"):
            path = f"/{path}"
        return cls(
            http_timeout_seconds=max(1.0, _env_float("WIREBOARD_HTTP_TIMEOUT_SECONDS", 30.0)),
            exchange_idle_seconds=max(1.0, _env_float("WIREBOARD_EXCHANGE_IDLE_SECONDS", 300.0)),
            proxy_path=path,
        )


@dataclass(frozen=True)
class LoggingSettings:
    level: str

    @classmethod
    def from_env(cls) -> "LoggingSettings":
        return cls(level=(_env_str("WIREBOARD_LOG_LEVEL", "INFO") or "INFO").upper())


class Settings:
    """Container for engine settings."""

    def __init__(
        self,
        *,
        run: RunSettings,
        remote: RemoteSettings,
        logging: LoggingSettings,
    ) -> None:
        self.run = run
        self.remote = remote
        self.logging = logging

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            run=RunSettings.from_env(),
            remote=RemoteSettings.from_env(),
            logging=LoggingSettings.from_env(),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Return a cached Settings instance built from the current environment."""

    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS


def reset_settings() -> None:
    """Drop the cached settings so the next lookup re-reads the environment."""

    global _SETTINGS
    _SETTINGS = None


__all__ = [
    "LoggingSettings",
    "RemoteSettings",
    "RunSettings",
    "Settings",
    "get_settings",
    "reset_settings",
]

"""Persisted credentials and preferences for ticktick-cli."""

from __future__ import annotations

from dataclasses import dataclass, field
import datetime as dt
import json
import logging
import os
from pathlib import Path
from typing import Any

from .models import ConfigError

logger = logging.getLogger(__name__)

CONFIG_VERSION = "1.0"
CONFIG_DIR_NAME = ".ticktick"
CONFIG_FILE_NAME = "config"
CONFIG_DIR_ENV = "TICKTICK_CONFIG_DIR"

VALID_TIME_FORMATS = ("12h", "24h")
PREFERENCE_KEYS = ("defaultProject", "dateFormat", "timeFormat", "defaultPriority", "colorOutput")


def default_config_dir() -> Path:
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / CONFIG_DIR_NAME


def default_config_path() -> Path:
    return default_config_dir() / CONFIG_FILE_NAME


@dataclass(slots=True)
class AuthConfig:
    client_id: str = ""
    client_secret: str = ""
    access_token: str = ""
    refresh_token: str = ""
    expiry: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "clientId": self.client_id,
            "clientSecret": self.client_secret,
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiry": self.expiry,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuthConfig":
        return cls(
            client_id=str(data.get("clientId") or ""),
            client_secret=str(data.get("clientSecret") or ""),
            access_token=str(data.get("accessToken") or ""),
            refresh_token=str(data.get("refreshToken") or ""),
            expiry=str(data.get("expiry") or ""),
        )


def _int_field(data: dict[str, Any], key: str, default: int, section: str) -> int:
    value = data.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid {section}: {key} must be an integer, got {value!r}") from exc


@dataclass(slots=True)
class Preferences:
    default_project: str | None = None
    date_format: str = "YYYY-MM-DD"
    time_format: str = "24h"
    default_priority: int = 0
    color_output: bool = True

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.default_project:
            payload["defaultProject"] = self.default_project
        payload.update(
            {
                "dateFormat": self.date_format,
                "timeFormat": self.time_format,
                "defaultPriority": self.default_priority,
                "colorOutput": self.color_output,
            }
        )
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Preferences":
        defaults = cls()
        return cls(
            default_project=data.get("defaultProject") or None,
            date_format=str(data.get("dateFormat", defaults.date_format)),
            time_format=str(data.get("timeFormat", defaults.time_format)),
            default_priority=_int_field(
                data, "defaultPriority", defaults.default_priority, "preferences"
            ),
            color_output=bool(data.get("colorOutput", defaults.color_output)),
        )


@dataclass(slots=True)
class CacheConfig:
    enabled: bool = True
    ttl: int = 300

    def to_dict(self) -> dict[str, Any]:
        return {"enabled": self.enabled, "ttl": self.ttl}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheConfig":
        defaults = cls()
        return cls(
            enabled=bool(data.get("enabled", defaults.enabled)),
            ttl=_int_field(data, "ttl", defaults.ttl, "cache config"),
        )


@dataclass(slots=True)
class Config:
    version: str = CONFIG_VERSION
    auth: AuthConfig = field(default_factory=AuthConfig)
    preferences: Preferences = field(default_factory=Preferences)
    cache: CacheConfig = field(default_factory=CacheConfig)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "auth": self.auth.to_dict(),
            "preferences": self.preferences.to_dict(),
            "cache": self.cache.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        def section(name: str) -> dict[str, Any]:
            value = data.get(name) or {}
            if not isinstance(value, dict):
                raise ConfigError(f"Invalid '{name}' section in config")
            return value

        return cls(
            version=str(data.get("version") or CONFIG_VERSION),
            auth=AuthConfig.from_dict(section("auth")),
            preferences=Preferences.from_dict(section("preferences")),
            cache=CacheConfig.from_dict(section("cache")),
        )

    @property
    def is_authenticated(self) -> bool:
        return bool(self.auth.access_token and self.auth.refresh_token)

    @property
    def expiry_time(self) -> dt.datetime | None:
        if not self.auth.expiry:
            return None
        try:
            parsed = dt.datetime.fromisoformat(self.auth.expiry.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=dt.timezone.utc)
        return parsed

    def is_token_expired(self, now: dt.datetime | None = None) -> bool:
        expiry = self.expiry_time
        if expiry is None:
            return True
        return (now or dt.datetime.now(dt.timezone.utc)) > expiry


def validate_config(config: Config) -> None:
    if not config.version:
        raise ConfigError("config version is required")
    prefs = config.preferences
    if not prefs.date_format:
        raise ConfigError("invalid preferences: date format cannot be empty")
    if prefs.time_format not in VALID_TIME_FORMATS:
        raise ConfigError(
            f"invalid preferences: time format must be one of: {', '.join(VALID_TIME_FORMATS)}"
        )
    if not 0 <= prefs.default_priority <= 5:
        raise ConfigError("invalid preferences: default priority must be between 0 and 5")
    if config.cache.enabled and config.cache.ttl <= 0:
        raise ConfigError("invalid cache config: cache TTL must be positive when cache is enabled")


def expiry_from_now(expires_in: int, now: dt.datetime | None = None) -> str:
    base = now or dt.datetime.now(dt.timezone.utc)
    return (base + dt.timedelta(seconds=expires_in)).isoformat()


class ConfigStore:
    """Load and rewrite the config file; each mutator is one load-mutate-save."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path if path is not None else default_config_path()

    def load(self) -> Config:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Config()
        except OSError as exc:
            raise ConfigError(f"Failed to load config: {exc}") from exc
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Failed to load config: {exc}") from exc
        if not isinstance(payload, dict):
            raise ConfigError(f"Failed to load config: invalid format at {self.path}")
        config = Config.from_dict(payload)
        validate_config(config)
        return config

    def save(self, config: Config) -> None:
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(json.dumps(config.to_dict(), indent=2))
            os.chmod(self.path, 0o600)
        except OSError as exc:
            raise ConfigError(f"Failed to save config: {exc}") from exc
        logger.debug("Saved config to %s", self.path)

    def update_auth(
        self,
        client_id: str,
        client_secret: str,
        access_token: str,
        refresh_token: str,
        expiry: str,
    ) -> Config:
        config = self.load()
        config.auth = AuthConfig(
            client_id=client_id,
            client_secret=client_secret,
            access_token=access_token,
            refresh_token=refresh_token,
            expiry=expiry,
        )
        self.save(config)
        return config

    def clear_auth(self) -> Config:
        config = self.load()
        config.auth = AuthConfig()
        self.save(config)
        return config

    def set_preference(self, key: str, value: str) -> Config:
        config = self.load()
        prefs = config.preferences
        if key == "defaultProject":
            prefs.default_project = value or None
        elif key == "dateFormat":
            if not value:
                raise ConfigError("dateFormat cannot be empty")
            prefs.date_format = value
        elif key == "timeFormat":
            if value not in VALID_TIME_FORMATS:
                raise ConfigError('timeFormat must be "12h" or "24h"')
            prefs.time_format = value
        elif key == "defaultPriority":
            try:
                priority = int(value)
            except ValueError as exc:
                raise ConfigError("defaultPriority must be an integer between 0 and 5") from exc
            if not 0 <= priority <= 5:
                raise ConfigError("defaultPriority must be an integer between 0 and 5")
            prefs.default_priority = priority
        elif key == "colorOutput":
            prefs.color_output = value == "true"
        else:
            raise ConfigError(f"Unknown preference key: {key}")
        self.save(config)
        return config

    def get_preference(self, key: str) -> str:
        prefs = self.load().preferences
        if key == "defaultProject":
            return prefs.default_project or ""
        if key == "dateFormat":
            return prefs.date_format
        if key == "timeFormat":
            return prefs.time_format
        if key == "defaultPriority":
            return str(prefs.default_priority)
        if key == "colorOutput":
            return "true" if prefs.color_output else "false"
        raise ConfigError(f"Unknown preference key: {key}")

    def clear_default_project(self) -> str | None:
        config = self.load()
        previous = config.preferences.default_project
        if previous is None:
            return None
        config.preferences.default_project = None
        self.save(config)
        return previous

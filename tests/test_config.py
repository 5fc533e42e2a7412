from __future__ import annotations

import datetime as dt
import json
from pathlib import Path
import stat

import pytest

from ticktick_cli.config import (
    AuthConfig,
    CacheConfig,
    Config,
    ConfigStore,
    Preferences,
    default_config_path,
    expiry_from_now,
    validate_config,
)
from ticktick_cli.models import ConfigError


def _mode(path: Path) -> int:
    return stat.S_IMODE(path.stat().st_mode)


def test_missing_config_loads_defaults(tmp_path: Path) -> None:
    config = ConfigStore(tmp_path / "nope" / "config").load()

    assert config == Config()
    assert config.version == "1.0"
    assert config.preferences.time_format == "24h"
    assert config.preferences.default_project is None
    assert config.cache.ttl == 300
    assert not config.is_authenticated


def test_save_load_round_trip(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / ".ticktick" / "config")
    config = Config(
        auth=AuthConfig(
            client_id="cid",
            client_secret="secret",
            access_token="at",
            refresh_token="rt",
            expiry="2030-01-01T00:00:00+00:00",
        ),
        preferences=Preferences(
            default_project="proj-1",
            date_format="DD/MM/YYYY",
            time_format="12h",
            default_priority=3,
            color_output=False,
        ),
        cache=CacheConfig(enabled=False, ttl=60),
    )

    store.save(config)

    assert store.load() == config


def test_save_uses_owner_only_permissions(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / ".ticktick" / "config")
    store.save(Config())

    assert _mode(store.path) == 0o600
    assert _mode(store.path.parent) == 0o700


def test_saved_file_uses_camel_case_keys(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / "config")
    store.update_auth("cid", "secret", "at", "rt", "2030-01-01T00:00:00+00:00")

    payload = json.loads(store.path.read_text(encoding="utf-8"))

    assert payload["auth"] == {
        "clientId": "cid",
        "clientSecret": "secret",
        "accessToken": "at",
        "refreshToken": "rt",
        "expiry": "2030-01-01T00:00:00+00:00",
    }
    assert "defaultProject" not in payload["preferences"]
    assert payload["cache"] == {"enabled": True, "ttl": 300}


def test_config_dir_env_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TICKTICK_CONFIG_DIR", str(tmp_path / "custom"))

    assert default_config_path() == tmp_path / "custom" / "config"
    assert ConfigStore().path == tmp_path / "custom" / "config"


def test_invalid_json_raises_config_error(tmp_path: Path) -> None:
    path = tmp_path / "config"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigError, match="Failed to load config"):
        ConfigStore(path).load()


def test_load_rejects_invalid_preferences(tmp_path: Path) -> None:
    path = tmp_path / "config"
    path.write_text(json.dumps({"version": "1.0", "preferences": {"timeFormat": "13h"}}), encoding="utf-8")

    with pytest.raises(ConfigError, match="time format"):
        ConfigStore(path).load()


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"preferences": {"defaultPriority": "high"}}, "invalid preferences: defaultPriority"),
        ({"cache": {"ttl": "soon"}}, "invalid cache config: ttl"),
        ({"cache": {"ttl": None}}, "invalid cache config: ttl"),
    ],
)
def test_load_rejects_non_integer_values(tmp_path: Path, payload: dict, message: str) -> None:
    path = tmp_path / "config"
    path.write_text(json.dumps({"version": "1.0", **payload}), encoding="utf-8")

    with pytest.raises(ConfigError, match=message):
        ConfigStore(path).load()


def test_update_and_clear_auth(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / "config")
    store.set_preference("defaultProject", "proj-1")

    config = store.update_auth("cid", "secret", "at", "rt", expiry_from_now(3600))
    assert config.is_authenticated
    assert not config.is_token_expired()

    cleared = store.clear_auth()
    assert not cleared.is_authenticated
    assert cleared.auth == AuthConfig()
    assert store.load().preferences.default_project == "proj-1"


def test_is_token_expired() -> None:
    now = dt.datetime(2024, 6, 1, 12, 0, tzinfo=dt.timezone.utc)
    config = Config(auth=AuthConfig(expiry=expiry_from_now(60, now=now)))

    assert not config.is_token_expired(now=now)
    assert config.is_token_expired(now=now + dt.timedelta(minutes=2))
    assert Config().is_token_expired(now=now)


def test_expiry_accepts_zulu_suffix() -> None:
    config = Config(auth=AuthConfig(expiry="2024-06-01T12:00:00Z"))

    assert config.expiry_time == dt.datetime(2024, 6, 1, 12, 0, tzinfo=dt.timezone.utc)


@pytest.mark.parametrize(
    ("key", "value", "expected"),
    [
        ("defaultProject", "proj-9", "proj-9"),
        ("dateFormat", "DD.MM.YYYY", "DD.MM.YYYY"),
        ("timeFormat", "12h", "12h"),
        ("defaultPriority", "5", "5"),
        ("colorOutput", "true", "true"),
        ("colorOutput", "yes", "false"),
    ],
)
def test_set_then_get_preference(tmp_path: Path, key: str, value: str, expected: str) -> None:
    store = ConfigStore(tmp_path / "config")
    store.set_preference(key, value)

    assert store.get_preference(key) == expected


@pytest.mark.parametrize(
    ("key", "value", "message"),
    [
        ("timeFormat", "13h", "timeFormat"),
        ("defaultPriority", "high", "defaultPriority"),
        ("defaultPriority", "6", "defaultPriority"),
        ("dateFormat", "", "dateFormat"),
        ("favoriteColor", "blue", "Unknown preference key"),
    ],
)
def test_set_preference_rejects_bad_values(tmp_path: Path, key: str, value: str, message: str) -> None:
    store = ConfigStore(tmp_path / "config")

    with pytest.raises(ConfigError, match=message):
        store.set_preference(key, value)
    assert not store.path.exists()


def test_get_unknown_preference(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Unknown preference key"):
        ConfigStore(tmp_path / "config").get_preference("nope")


def test_clear_default_project(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / "config")
    assert store.clear_default_project() is None

    store.set_preference("defaultProject", "proj-1")
    assert store.clear_default_project() == "proj-1"
    assert store.load().preferences.default_project is None


def test_validate_config_rules() -> None:
    validate_config(Config())

    with pytest.raises(ConfigError, match="version"):
        validate_config(Config(version=""))
    with pytest.raises(ConfigError, match="date format"):
        validate_config(Config(preferences=Preferences(date_format="")))
    with pytest.raises(ConfigError, match="default priority"):
        validate_config(Config(preferences=Preferences(default_priority=9)))
    with pytest.raises(ConfigError, match="TTL"):
        validate_config(Config(cache=CacheConfig(enabled=True, ttl=0)))

    validate_config(Config(cache=CacheConfig(enabled=False, ttl=0)))

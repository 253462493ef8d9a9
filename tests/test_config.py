# tests/test_config.py
import importlib

import pytest

from storefront import config, main
from storefront.config import DEFAULT_DATABASE_URL, load_settings


def test_defaults():
    settings = load_settings({})
    assert settings.database_url == DEFAULT_DATABASE_URL
    assert (settings.host, settings.port) == ("127.0.0.1", 8085)
    assert settings.request_timeout == 5.0
    assert settings.token_ttl_hours == 72
    assert settings.token_bytes == 16
    assert settings.max_body_bytes == 1048576
    assert settings.cors_origins == ("*",)


def test_overrides():
    settings = load_settings({
        "DSN": "postgresql+asyncpg://store:secret@db/store",
        "ADDRESS": "0.0.0.0:9000",
        "REQUEST_TIMEOUT": "2.5",
        "CORS_ORIGINS": "http://localhost:5173, https://shop.example.com",
        "LOG_LEVEL": "debug",
    })
    assert settings.database_url.startswith("postgresql+asyncpg://")
    assert (settings.host, settings.port) == ("0.0.0.0", 9000)
    assert settings.request_timeout == 2.5
    assert settings.cors_origins == ("http://localhost:5173", "https://shop.example.com")
    assert settings.log_level == "DEBUG"


def test_database_url_wins_over_dsn():
    settings = load_settings({"DATABASE_URL": "sqlite+aiosqlite:///a.db", "DSN": "sqlite+aiosqlite:///b.db"})
    assert settings.database_url.endswith("a.db")


@pytest.mark.parametrize("key,value", [
    ("REQUEST_TIMEOUT", "soon"),
    ("TOKEN_TTL_HOURS", "0"),
    ("MAX_BODY_BYTES", "-1"),
    ("ADDRESS", "localhost"),
])
def test_invalid_values(key, value):
    with pytest.raises(ValueError):
        load_settings({key: value})


def test_importing_the_app_module_reads_no_dotenv(monkeypatch):
    calls = []
    monkeypatch.setattr(config, "load_dotenv", lambda *args, **kwargs: calls.append(args))
    importlib.reload(main)
    assert calls == []
    assert not hasattr(main, "app")


def test_environment_is_read_only_without_explicit_mapping(monkeypatch):
    calls = []
    monkeypatch.setattr(config, "load_dotenv", lambda *args, **kwargs: calls.append(args))
    monkeypatch.setenv("MAX_BODY_BYTES", "2048")
    load_settings({})
    assert calls == []
    assert load_settings().max_body_bytes == 2048
    assert len(calls) == 1

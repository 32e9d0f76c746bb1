"""Tests for settings loading and the database check script."""

import pytest
from pydantic import ValidationError

from atlas import check_db
from atlas.config import AppConfig, get_app_config, get_config_summary, reload_config
from atlas.main import build_storage
from atlas.memory_store import InMemoryStorage


@pytest.fixture
def fresh_config():
    reload_config()
    yield
    reload_config()


def test_defaults():
    config = AppConfig()
    assert config.streak_lookback_days == 400
    assert config.default_window_days == 28


def test_env_overrides(monkeypatch, fresh_config):
    monkeypatch.setenv("ATLAS_TIMEZONE", "Europe/Berlin")
    monkeypatch.setenv("ATLAS_STREAK_LOOKBACK_DAYS", "90")
    reload_config()
    config = get_app_config()
    assert config.timezone == "Europe/Berlin"
    assert config.streak_lookback_days == 90
    assert get_config_summary()["timezone"] == "Europe/Berlin"


def test_unknown_timezone_is_rejected(monkeypatch):
    monkeypatch.setenv("ATLAS_TIMEZONE", "Mars/Olympus_Mons")
    with pytest.raises(ValidationError):
        AppConfig()


def test_unknown_storage_is_rejected(monkeypatch):
    monkeypatch.setenv("ATLAS_STORAGE", "sqlite")
    with pytest.raises(ValidationError):
        AppConfig()


def test_memory_storage_selected(monkeypatch, fresh_config):
    monkeypatch.setenv("ATLAS_STORAGE", "memory")
    reload_config()
    assert isinstance(build_storage(), InMemoryStorage)


async def test_check_db_reports_unreachable_server(monkeypatch, capsys):
    async def refuse(url):
        raise OSError("connection refused")

    monkeypatch.setattr(check_db.asyncpg, "connect", refuse)
    assert await check_db.check("postgresql://nowhere/atlas") is False
    assert "Connection failed" in capsys.readouterr().out


async def test_check_db_init_runs_schema(monkeypatch):
    executed = []

    class FakeConnection:
        async def execute(self, statement):
            executed.append(statement)

        async def close(self):
            executed.append("closed")

    async def connect(url):
        return FakeConnection()

    monkeypatch.setattr(check_db.asyncpg, "connect", connect)
    assert await check_db.check("postgresql://db/atlas", init=True) is True
    assert len(executed) == len(check_db.SCHEMA) + 1
    assert executed[-1] == "closed"

from __future__ import annotations

import types

import pytest
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from scripts import run_migrations as runner


def test_resolve_database_url_prefers_config(monkeypatch) -> None:
    config = Config()
    config.set_main_option("sqlalchemy.url", "sqlite:///explicit.sqlite")
    monkeypatch.setenv("HUB_DATABASE_URL", "sqlite://")
    assert runner.resolve_database_url(config) == "sqlite:///explicit.sqlite"


def test_resolve_database_url_falls_back_to_env(monkeypatch) -> None:
    config = Config()
    monkeypatch.setenv("HUB_DATABASE_URL", "sqlite://")
    assert runner.resolve_database_url(config) == "sqlite://"
    assert config.get_main_option("sqlalchemy.url") == "sqlite://"


def test_resolve_database_url_requires_env(monkeypatch) -> None:
    monkeypatch.delenv("HUB_DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError):
        runner.resolve_database_url(Config())


def test_wait_for_database_succeeds_with_sqlite(tmp_path) -> None:
    runner.wait_for_database(f"sqlite:///{tmp_path / 'ready.sqlite'}", timeout=2, poll_interval=0.1)


def test_wait_for_database_times_out(monkeypatch) -> None:
    class DummyEngine:
        def connect(self) -> types.SimpleNamespace:
            raise runner.OperationalError("SELECT 1", {}, Exception("boom"))

        def dispose(self) -> None:
            pass

    monkeypatch.setattr(runner, "create_engine", lambda *_, **__: DummyEngine())
    with pytest.raises(RuntimeError):
        runner.wait_for_database("postgresql://example", timeout=0, poll_interval=0)


def test_run_migrations_invokes_upgrade(monkeypatch) -> None:
    monkeypatch.setenv("HUB_DATABASE_URL", "sqlite://")
    config = runner.get_alembic_config(str(runner.BACKEND_ROOT / "alembic.ini"))
    recorded: dict[str, object] = {}

    def fake_wait(url: str, *, timeout: int, poll_interval: float) -> None:
        recorded["wait"] = (url, timeout, poll_interval)

    def fake_upgrade(cfg, revision: str) -> None:
        recorded["revision"] = revision
        recorded["script_location"] = cfg.get_main_option("script_location")

    monkeypatch.setattr(runner, "wait_for_database", fake_wait)
    monkeypatch.setattr(runner.command, "upgrade", fake_upgrade)

    runner.run_migrations("head", timeout=5, poll_interval=0.1, config=config)

    assert recorded["revision"] == "head"
    assert recorded["wait"][0] == "sqlite://"
    assert str(recorded["script_location"]).endswith("alembic")


def test_migrations_create_hub_tables(tmp_path, monkeypatch) -> None:
    url = f"sqlite:///{tmp_path / 'migrated.sqlite'}"
    monkeypatch.setenv("HUB_DATABASE_URL", url)
    config = runner.get_alembic_config(str(runner.BACKEND_ROOT / "alembic.ini"))
    runner.run_migrations("head", timeout=2, poll_interval=0.1, config=config)

    engine = create_engine(url, future=True)
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert {"hub_sessions", "hub_audit_events"} <= tables

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterator

import pytest

from worldhub.config import get_settings
from worldhub.db.base import Base
from worldhub.db import models  # noqa: F401
from worldhub.db.session import dispose_engine, get_engine
from worldhub.hub_state import HubSession
from worldhub.hub_store import HubSessionStore, get_hub_store
from worldhub.progression import initial_world_statuses
from worldhub import telemetry
from worldhub.world_catalog import world_catalog


@pytest.fixture(autouse=True)
def hub_database(tmp_path, monkeypatch) -> Iterator[str]:
    url = f"sqlite:///{tmp_path / 'hub.sqlite'}"
    monkeypatch.setenv("HUB_DATABASE_URL", url)
    monkeypatch.setenv("HUB_STORE_BACKEND", "database")
    monkeypatch.setenv("HUB_SUBMIT_RETRY_BACKOFF_SECONDS", "0")
    get_settings.cache_clear()
    get_hub_store.cache_clear()
    dispose_engine()
    Base.metadata.create_all(get_engine())
    yield url
    telemetry.flush()
    dispose_engine()
    get_hub_store.cache_clear()
    get_settings.cache_clear()


@pytest.fixture
def db_store() -> HubSessionStore:
    return HubSessionStore(backend="database")


@pytest.fixture
def memory_store() -> HubSessionStore:
    return HubSessionStore(backend="memory")


@pytest.fixture(params=["memory", "database"])
def store(request) -> HubSessionStore:
    return HubSessionStore(backend=request.param)


@pytest.fixture
def fresh_session() -> HubSession:
    now = datetime.now(timezone.utc)
    return HubSession(
        session_id="hub_test",
        access_code="ABCD2345",
        tenant_id="malmo",
        cultural_context="swedish_municipal",
        created_at=now,
        last_activity_at=now,
        expires_at=now + timedelta(days=7),
        worlds=initial_world_statuses(world_catalog),
    )

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from worldhub.errors import (
    ConcurrentUpdateError,
    DuplicateAccessCodeError,
    SessionNotFoundError,
    StoreUnavailableError,
    WorldLockedError,
)
from worldhub.hub_store import HubSessionStore
from worldhub.progression import start_world
from worldhub.world_catalog import world_catalog


def test_create_initialises_worlds_and_expiry(store) -> None:
    now = datetime.now(timezone.utc)
    hub = store.create("CODE2345", "malmo", "swedish_municipal", user_id="learner-1", now=now)
    assert hub.session_id.startswith("hub_")
    assert hub.version == 0
    assert hub.user_id == "learner-1"
    assert [entry.status for entry in hub.worlds] == ["available", "locked", "locked", "locked", "locked"]
    assert hub.expires_at == now + timedelta(days=7)

    fetched = store.get(hub.session_id)
    assert fetched.model_dump() == hub.model_dump()
    assert store.get_by_access_code("CODE2345").session_id == hub.session_id
    assert store.get_by_access_code("MISSING1") is None


def test_get_unknown_session_raises(store) -> None:
    with pytest.raises(SessionNotFoundError):
        store.get("hub_missing")
    assert store.find("hub_missing") is None


def test_duplicate_access_code_rejected(store) -> None:
    store.create("SAME2345", "malmo", "swedish_municipal")
    with pytest.raises(DuplicateAccessCodeError):
        store.create("SAME2345", "lund", "swedish_municipal")


def test_mutate_bumps_version_and_persists(store) -> None:
    hub = store.create("MUTA2345", "malmo", "swedish_municipal")

    def _start(working) -> None:
        start_world(working, 1, catalog=world_catalog)

    updated = store.mutate(hub.session_id, _start)
    assert updated.version == 1
    assert updated.world(1).status == "in_progress"

    stored = store.get(hub.session_id)
    assert stored.version == 1
    assert stored.world(1).status == "in_progress"
    assert stored.current_world_index == 1


def test_mutate_failure_leaves_record_untouched(store) -> None:
    hub = store.create("LOCK2345", "malmo", "swedish_municipal")

    def _start_locked(working) -> None:
        working.last_activity_at = datetime.now(timezone.utc) + timedelta(hours=1)
        start_world(working, 5, catalog=world_catalog)

    with pytest.raises(WorldLockedError):
        store.mutate(hub.session_id, _start_locked)

    stored = store.get(hub.session_id)
    assert stored.version == 0
    assert stored.model_dump() == hub.model_dump()


def test_reads_return_independent_copies(store) -> None:
    hub = store.create("COPY2345", "malmo", "swedish_municipal")
    copy = store.get(hub.session_id)
    copy.worlds[0].status = "completed"
    assert store.get(hub.session_id).worlds[0].status == "available"


def test_mutate_retries_after_concurrent_write(store) -> None:
    hub = store.create("RACE2345", "malmo", "swedish_municipal")
    calls = {"outer": 0}

    def _other_device(working) -> None:
        working.worlds[0].time_spent_ms += 100

    def _this_device(working) -> None:
        calls["outer"] += 1
        if calls["outer"] == 1:
            store.mutate(hub.session_id, _other_device)
        working.worlds[0].time_spent_ms += 1

    result = store.mutate(hub.session_id, _this_device)
    assert calls["outer"] == 2
    assert result.version == 2
    assert result.worlds[0].time_spent_ms == 101
    assert store.get(hub.session_id).worlds[0].time_spent_ms == 101


def test_mutate_gives_up_after_bounded_conflicts() -> None:
    store = HubSessionStore(backend="memory", max_conflicts=3)
    hub = store.create("GIVE2345", "malmo", "swedish_municipal")
    calls = {"outer": 0}

    def _interfere(working) -> None:
        calls["outer"] += 1
        store.mutate(hub.session_id, lambda other: None)

    with pytest.raises(ConcurrentUpdateError) as excinfo:
        store.mutate(hub.session_id, _interfere)
    assert excinfo.value.attempts == 3
    assert calls["outer"] == 3
    assert store.get(hub.session_id).version == 3


def test_concurrent_mutations_are_not_lost() -> None:
    store = HubSessionStore(backend="memory", max_conflicts=1000)
    hub = store.create("THRD2345", "malmo", "swedish_municipal")
    workers = 16

    def _bump(working) -> None:
        working.worlds[0].time_spent_ms += 1

    threads = [threading.Thread(target=store.mutate, args=(hub.session_id, _bump)) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    stored = store.get(hub.session_id)
    assert stored.worlds[0].time_spent_ms == workers
    assert stored.version == workers


def test_sqlalchemy_errors_become_store_unavailable(db_store, monkeypatch) -> None:
    class _BrokenRepo:
        def get(self, *_args, **_kwargs):
            raise OperationalError("SELECT 1", {}, Exception("database is down"))

    monkeypatch.setattr("worldhub.hub_store._repo", lambda: _BrokenRepo())
    with pytest.raises(StoreUnavailableError):
        db_store.find("hub_any")
    with pytest.raises(StoreUnavailableError):
        db_store.mutate("hub_any", lambda working: None)


def test_is_expired_uses_lifetime_policy(store) -> None:
    past = datetime.now(timezone.utc) - timedelta(days=8)
    hub = store.create("OLD23456", "malmo", "swedish_municipal", now=past)
    assert store.is_expired(hub)
    fresh = store.create("NEW23456", "malmo", "swedish_municipal")
    assert not store.is_expired(fresh)


def test_export_includes_audit_trail(store) -> None:
    hub = store.create("EXPO2345", "malmo", "swedish_municipal")
    store.record_audit_event(hub.session_id, "world_started", {"world_index": 1})
    bundle = store.export(hub.session_id)
    assert bundle["session"]["session_id"] == hub.session_id
    event_types = {event["event_type"] for event in bundle["audit_events"]}
    assert event_types == {"hub_session_create", "world_started"}
    assert all(isinstance(event["created_at"], str) for event in bundle["audit_events"])


def test_export_user_collects_every_session_for_learner(store) -> None:
    first = store.create("USRA2345", "malmo", "swedish_municipal", user_id="learner-7")
    second = store.create("USRB2345", "utrecht", "dutch_municipal", user_id="learner-7")
    store.create("USRC2345", "malmo", "swedish_municipal", user_id="learner-8")
    store.create("USRD2345", "malmo", "swedish_municipal")
    store.record_audit_event(second.session_id, "world_started", {"world_index": 1})

    exported = store.export_user(" learner-7 ")

    assert exported["user_id"] == "learner-7"
    assert exported["exported_at"]
    bundles = exported["hub_sessions"]
    assert {bundle["session"]["session_id"] for bundle in bundles} == {first.session_id, second.session_id}
    by_id = {bundle["session"]["session_id"]: bundle for bundle in bundles}
    assert {event["event_type"] for event in by_id[second.session_id]["audit_events"]} == {
        "hub_session_create",
        "world_started",
    }
    assert store.export_user("nobody")["hub_sessions"] == []


def test_export_user_requires_user_id(store) -> None:
    with pytest.raises(ValueError):
        store.export_user("   ")

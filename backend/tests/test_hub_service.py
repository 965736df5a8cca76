from __future__ import annotations

import threading
import time

import pytest

from worldhub.authenticator import HubSessionAuthenticator
from worldhub.errors import (
    ConcurrentUpdateError,
    StoreUnavailableError,
    WorldLockedError,
    WorldTransitionError,
)
from worldhub.hub_service import HubService
from worldhub.hub_store import HubSessionStore
from worldhub.telemetry import TelemetryEvent, flush, register_listener, unregister_listener
from worldhub.world_result import WorldResult


@pytest.fixture
def events():
    captured: list[TelemetryEvent] = []
    register_listener(captured.append)
    yield captured
    unregister_listener(captured.append)


def _issue(store: HubSessionStore):
    return HubSessionAuthenticator(store).issue("malmo", "swedish_municipal")


def test_fresh_completion_unlocks_worlds_and_first_achievement(store, events) -> None:
    hub = _issue(store)
    service = HubService(store)

    start = service.start_world(hub.session_id, 1)
    assert start.outcome.status == "in_progress"

    receipt = service.complete_world(
        hub.session_id, 1, WorldResult(score=85, time_spent_ms=60_000, competency_tags=["emergency_management"])
    )
    session = receipt.session
    assert session.world(1).status == "completed"
    assert session.status_map()[2] == "available"
    assert session.status_map()[3] == "available"
    assert receipt.unlocked_worlds == (2, 3)
    assert receipt.progress.total_score == 85
    assert receipt.newly_unlocked_achievements == ("first_world_complete",)
    assert store.get(hub.session_id).progress.unlocked_achievements == ["first_world_complete"]

    flush()
    names = [event.name for event in events]
    assert "world_started" in names
    assert "world_completed" in names
    unlocked = [event for event in events if event.name == "achievement_unlocked"]
    assert [event.payload["achievement_id"] for event in unlocked] == ["first_world_complete"]


def test_weaker_replay_keeps_retained_score(store, events) -> None:
    hub = _issue(store)
    service = HubService(store)
    service.complete_world(hub.session_id, 1, WorldResult(score=90))

    replay = service.start_world(hub.session_id, 1, replay=True)
    assert replay.outcome.replayed
    second = service.complete_world(hub.session_id, 1, WorldResult(score=60))

    assert second.session.world(1).score == 90
    assert second.session.world(1).replay_count == 1
    assert second.progress.total_score == 90
    assert second.newly_unlocked_achievements == ()
    flush()
    assert any(event.name == "world_replayed" for event in events)


def test_start_completed_world_without_replay_is_rejected(store) -> None:
    hub = _issue(store)
    service = HubService(store)
    service.complete_world(hub.session_id, 1, WorldResult(score=10))
    with pytest.raises(WorldTransitionError):
        service.start_world(hub.session_id, 1)


@pytest.mark.parametrize("scores", [(50, 70), (70, 50)])
def test_completions_from_two_devices_keep_maximum(store, scores) -> None:
    hub = _issue(store)
    tablet = HubService(store)
    laptop = HubService(store)
    tablet.complete_world(hub.session_id, 1, WorldResult(score=scores[0]))
    laptop.complete_world(hub.session_id, 1, WorldResult(score=scores[1]))

    stored = store.get(hub.session_id)
    assert stored.world(1).score == 70
    assert stored.world(1).attempts == 2
    assert stored.progress.total_score == 70
    assert stored.progress.unlocked_achievements == ["first_world_complete"]


def test_racing_completions_on_threads_keep_maximum() -> None:
    store = HubSessionStore(backend="memory", max_conflicts=100)
    hub = _issue(store)
    service = HubService(store)
    barrier = threading.Barrier(2)

    def _submit(score: int) -> None:
        barrier.wait()
        service.complete_world(hub.session_id, 1, WorldResult(score=score))

    threads = [threading.Thread(target=_submit, args=(score,)) for score in (50, 70)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    stored = store.get(hub.session_id)
    assert stored.world(1).score == 70
    assert stored.world(1).attempts == 2
    assert stored.progress.unlocked_achievements == ["first_world_complete"]


def test_starting_locked_world_changes_nothing(store, events) -> None:
    hub = _issue(store)
    service = HubService(store)
    with pytest.raises(WorldLockedError):
        service.start_world(hub.session_id, 3)
    stored = store.get(hub.session_id)
    assert stored.version == hub.version
    assert stored.world(3).status == "locked"
    flush()
    assert not [event for event in events if event.name.startswith("world_")]


def test_completion_retries_transient_store_failures(memory_store, monkeypatch) -> None:
    hub = _issue(memory_store)
    sleeps: list[float] = []
    service = HubService(memory_store, retry_attempts=3, retry_backoff_seconds=0.1, sleep=sleeps.append)

    real_mutate = memory_store.mutate
    failures = iter([StoreUnavailableError(), ConcurrentUpdateError(hub.session_id, 8)])

    def flaky_mutate(session_id, update_fn):
        error = next(failures, None)
        if error is not None:
            raise error
        return real_mutate(session_id, update_fn)

    monkeypatch.setattr(memory_store, "mutate", flaky_mutate)
    receipt = service.complete_world(hub.session_id, 1, WorldResult(score=40))

    assert receipt.session.world(1).score == 40
    assert sleeps == [pytest.approx(0.1), pytest.approx(0.2)]


def test_completion_surfaces_store_unavailable_after_retries(memory_store, monkeypatch, events) -> None:
    hub = _issue(memory_store)
    service = HubService(memory_store, retry_attempts=3, retry_backoff_seconds=0, sleep=lambda _s: None)

    def broken_mutate(session_id, update_fn):
        raise StoreUnavailableError()

    monkeypatch.setattr(memory_store, "mutate", broken_mutate)
    with pytest.raises(StoreUnavailableError) as excinfo:
        service.complete_world(hub.session_id, 1, WorldResult(score=40))
    assert excinfo.value.attempts == 3
    flush()
    assert not [event for event in events if event.name == "world_completed"]
    assert memory_store.get(hub.session_id).world(1).score == 0


def test_slow_analytics_listener_does_not_delay_completion(memory_store) -> None:
    hub = _issue(memory_store)
    service = HubService(memory_store)
    release = threading.Event()
    delivered: list[str] = []

    def slow_sink(event: TelemetryEvent) -> None:
        release.wait(timeout=2.0)
        delivered.append(event.name)

    register_listener(slow_sink)
    try:
        started = time.monotonic()
        receipt = service.complete_world(hub.session_id, 1, WorldResult(score=80))
        elapsed = time.monotonic() - started
        assert receipt.session.world(1).status == "completed"
        assert elapsed < 1.0
        assert "world_completed" not in delivered
    finally:
        release.set()
        assert flush()
        unregister_listener(slow_sink)
    assert "world_completed" in delivered
    assert "achievement_unlocked" in delivered

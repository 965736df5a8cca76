from __future__ import annotations

from worldhub.hub_store import get_hub_store
from worldhub.telemetry import emit_event, flush, register_listener, unregister_listener
from worldhub.telemetry_pipeline import _MONITORED_EVENTS


def test_monitored_events_persist_to_audit_trail() -> None:
    assert "world_completed" in _MONITORED_EVENTS
    store = get_hub_store()
    hub = store.create("TELE2345", "malmo", "swedish_municipal")

    emit_event("world_completed", session_id=hub.session_id, world_index=1, score=80)
    emit_event("db_pool_status", session_id=hub.session_id)
    assert flush()

    events = store.recent_audit_events(hub.session_id)
    types = [event["event_type"] for event in events]
    assert "world_completed" in types
    assert "db_pool_status" not in types
    completed = next(event for event in events if event["event_type"] == "world_completed")
    assert completed["payload"]["score"] == 80


def test_events_without_session_are_ignored(monkeypatch) -> None:
    recorded: list[tuple] = []

    class _Store:
        def record_audit_event(self, *args, **kwargs) -> None:
            recorded.append(args)

    monkeypatch.setattr("worldhub.telemetry_pipeline.get_hub_store", lambda: _Store())
    emit_event("world_started", world_index=1)
    emit_event("world_started", session_id="  ", world_index=1)
    flush()
    assert recorded == []


def test_persistence_failure_does_not_reach_caller(monkeypatch) -> None:
    class _BrokenStore:
        def record_audit_event(self, *args, **kwargs) -> None:
            raise RuntimeError("audit table missing")

    monkeypatch.setattr("worldhub.telemetry_pipeline.get_hub_store", lambda: _BrokenStore())
    emit_event("world_started", session_id="hub_x", world_index=1)
    assert flush()


def test_failing_listener_is_isolated() -> None:
    seen: list[str] = []

    def explode(_event) -> None:
        raise RuntimeError("listener bug")

    def remember(event) -> None:
        seen.append(event.name)

    register_listener(explode)
    register_listener(remember)
    try:
        emit_event("world_started", session_id="hub_y", world_index=1)
        flush()
    finally:
        unregister_listener(explode)
        unregister_listener(remember)
    assert seen == ["world_started"]

"""Telemetry listener that persists hub events to the audit trail."""

from __future__ import annotations

import logging
from typing import Set

from .hub_store import get_hub_store
from .telemetry import TelemetryEvent, register_listener

logger = logging.getLogger(__name__)

_MONITORED_EVENTS: Set[str] = {
    "hub_session_authenticated",
    "world_started",
    "world_replayed",
    "world_completed",
    "achievement_unlocked",
}


def _persist_event(event: TelemetryEvent) -> None:
    if event.name not in _MONITORED_EVENTS:
        return
    session_id = event.payload.get("session_id")
    if not isinstance(session_id, str) or not session_id.strip():
        return
    try:
        get_hub_store().record_audit_event(session_id, event.name, dict(event.payload))
    except Exception:  # noqa: BLE001
        logger.exception("Failed to persist telemetry event %s for session=%s", event.name, session_id)


register_listener(_persist_event)

__all__ = ["_MONITORED_EVENTS"]

"""Connection pool and store contention observability."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict
from weakref import WeakKeyDictionary

from sqlalchemy import event
from sqlalchemy.engine import Engine

from ..telemetry import emit_event

_TELEMETRY_INTERVAL = float(os.getenv("HUB_DB_TELEMETRY_INTERVAL", "30"))


@dataclass
class PoolMonitor:
    connects: int = 0
    checkouts: int = 0
    checkins: int = 0
    version_conflicts: int = 0
    store_errors: int = 0
    last_emit: float = 0.0
    _lock: Lock = field(default_factory=Lock, repr=False)

    def bump(self, counter: str) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + 1)

    def counters(self) -> Dict[str, int]:
        with self._lock:
            return {
                "connects": self.connects,
                "checkouts": self.checkouts,
                "checkins": self.checkins,
                "version_conflicts": self.version_conflicts,
                "store_errors": self.store_errors,
            }

    def due(self, now: float) -> bool:
        if _TELEMETRY_INTERVAL > 0 and (now - self.last_emit) < _TELEMETRY_INTERVAL:
            return False
        self.last_emit = now
        return True


_MONITORS: "WeakKeyDictionary[Engine, PoolMonitor]" = WeakKeyDictionary()


def instrument_engine(engine: Engine) -> PoolMonitor:
    """Attach pool listeners that periodically emit ``db_pool_status`` events."""
    existing = _MONITORS.get(engine)
    if existing is not None:
        return existing

    monitor = PoolMonitor()
    _MONITORS[engine] = monitor

    def _observe(counter: str, trigger: str) -> None:
        monitor.bump(counter)
        if not monitor.due(time.time()):
            return
        emit_event("db_pool_status", trigger=trigger, status=_safe_pool_status(engine), **monitor.counters())

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        _observe("connects", "connect")

    @event.listens_for(engine, "checkout")
    def _on_checkout(dbapi_connection, connection_record, connection_proxy) -> None:  # type: ignore[no-untyped-def]
        _observe("checkouts", "checkout")

    @event.listens_for(engine, "checkin")
    def _on_checkin(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        _observe("checkins", "checkin")

    return monitor


def record_store_event(engine: Engine, counter: str) -> None:
    """Count a ``version_conflicts`` or ``store_errors`` occurrence against ``engine``."""
    monitor = _MONITORS.get(engine)
    if monitor is not None:
        monitor.bump(counter)


def get_pool_snapshot(engine: Engine) -> Dict[str, object]:
    monitor = _MONITORS.get(engine)
    snapshot: Dict[str, object] = {"status": _safe_pool_status(engine)}
    snapshot.update(monitor.counters() if monitor else PoolMonitor().counters())
    return snapshot


def _safe_pool_status(engine: Engine) -> str:
    try:
        return engine.pool.status()  # type: ignore[no-untyped-call]
    except Exception as exc:  # pragma: no cover - pool implementations without status()
        return f"unavailable: {exc}"


__all__ = [
    "PoolMonitor",
    "get_pool_snapshot",
    "instrument_engine",
    "record_store_event",
]

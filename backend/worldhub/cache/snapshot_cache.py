"""Process-local cache of the last hub session snapshot seen by each device."""

from __future__ import annotations

from threading import Lock
from typing import Dict, Optional

from ..hub_state import HubSession


def _normalize_session_id(session_id: str) -> str:
    normalized = session_id.strip()
    if not normalized:
        raise ValueError("Session id cannot be empty when caching hub snapshots.")
    return normalized


class SessionSnapshotCache:
    """Holds deep copies so callers can never mutate a cached snapshot."""

    def __init__(self) -> None:
        self._snapshots: Dict[str, HubSession] = {}
        self._lock = Lock()

    def get(self, session_id: str) -> Optional[HubSession]:
        key = _normalize_session_id(session_id)
        with self._lock:
            snapshot = self._snapshots.get(key)
        return snapshot.model_copy(deep=True) if snapshot is not None else None

    def set(self, session_id: str, snapshot: HubSession) -> None:
        key = _normalize_session_id(session_id)
        with self._lock:
            self._snapshots[key] = snapshot.model_copy(deep=True)


snapshot_cache = SessionSnapshotCache()

__all__ = ["SessionSnapshotCache", "snapshot_cache"]

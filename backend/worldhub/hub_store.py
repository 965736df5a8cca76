"""Hub session store: durable record plus the atomic ``mutate`` primitive."""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .config import get_settings
from .db.monitoring import record_store_event
from .db.session import get_engine, session_scope
from .errors import (
    ConcurrentUpdateError,
    DuplicateAccessCodeError,
    SessionNotFoundError,
    StoreUnavailableError,
)
from .hub_state import CulturalContext, HubSession
from .progression import ensure_world_entries, initial_world_statuses
from .world_catalog import WorldCatalog, world_catalog

logger = logging.getLogger(__name__)

UpdateFn = Callable[[HubSession], Optional[HubSession]]

MAX_MEMORY_AUDIT_EVENTS = 200


if TYPE_CHECKING:
    from .repositories.hub_sessions import HubSessionRepository


def _repo() -> "HubSessionRepository":
    from .repositories.hub_sessions import hub_sessions as repository

    return repository


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _apply(update_fn: UpdateFn, working: HubSession) -> HubSession:
    result = update_fn(working)
    return result if result is not None else working


class _DatabaseHubSessionStore:
    """SQL persistence using a version column for compare-and-swap commits."""

    def __init__(self, max_conflicts: int) -> None:
        self._max_conflicts = max_conflicts

    @staticmethod
    def _clone(hub: HubSession) -> HubSession:
        return hub.model_copy(deep=True)

    def get(self, session_id: str) -> Optional[HubSession]:
        with session_scope(commit=False) as session:
            hub = _repo().get(session, session_id)
            return self._clone(hub) if hub else None

    def get_by_access_code(self, access_code: str) -> Optional[HubSession]:
        with session_scope(commit=False) as session:
            hub = _repo().get_by_access_code(session, access_code)
            return self._clone(hub) if hub else None

    def create(self, hub: HubSession) -> HubSession:
        try:
            with session_scope() as session:
                stored = _repo().create(session, hub)
                return self._clone(stored)
        except IntegrityError as exc:
            raise DuplicateAccessCodeError() from exc

    def mutate(self, session_id: str, update_fn: UpdateFn) -> HubSession:
        for attempt in range(1, self._max_conflicts + 1):
            with session_scope() as session:
                current = _repo().get(session, session_id)
                if current is None:
                    raise SessionNotFoundError(session_id)
                seen = current.version
                updated = _apply(update_fn, self._clone(current))
                updated.version = seen
                if _repo().compare_and_swap(session, seen, updated):
                    updated.version = seen + 1
                    return self._clone(updated)
            record_store_event(get_engine(), "version_conflicts")
            logger.info(
                "Version conflict on hub session %s (attempt %s/%s)",
                session_id,
                attempt,
                self._max_conflicts,
            )
        raise ConcurrentUpdateError(session_id, self._max_conflicts)

    def list_for_user(self, user_id: str) -> List[HubSession]:
        with session_scope(commit=False) as session:
            return [self._clone(hub) for hub in _repo().list_for_user(session, user_id)]

    def record_audit_event(
        self,
        session_id: Optional[str],
        event_type: str,
        payload: Dict[str, Any],
        actor: str,
    ) -> None:
        with session_scope() as session:
            _repo().record_audit(session, session_id, event_type, payload, actor=actor)

    def recent_audit_events(self, session_id: str, limit: int) -> List[Dict[str, Any]]:
        with session_scope(commit=False) as session:
            return _repo().recent_audit_events(session, session_id, limit=limit)


class _MemoryHubSessionStore:
    """Process-local store; commits are serialised by a lock but reads are optimistic."""

    def __init__(self, max_conflicts: int) -> None:
        self._max_conflicts = max_conflicts
        self._lock = threading.RLock()
        self._sessions: Dict[str, HubSession] = {}
        self._codes: Dict[str, str] = {}
        self._audit: Dict[str, List[Dict[str, Any]]] = {}

    def get(self, session_id: str) -> Optional[HubSession]:
        with self._lock:
            hub = self._sessions.get(session_id)
            return hub.model_copy(deep=True) if hub else None

    def get_by_access_code(self, access_code: str) -> Optional[HubSession]:
        with self._lock:
            session_id = self._codes.get(access_code)
            if session_id is None:
                return None
            return self._sessions[session_id].model_copy(deep=True)

    def create(self, hub: HubSession) -> HubSession:
        with self._lock:
            if hub.access_code in self._codes or hub.session_id in self._sessions:
                raise DuplicateAccessCodeError()
            self._sessions[hub.session_id] = hub.model_copy(deep=True)
            self._codes[hub.access_code] = hub.session_id
            self._append_audit(hub.session_id, "hub_session_create", {"tenant_id": hub.tenant_id}, "system")
            return hub.model_copy(deep=True)

    def mutate(self, session_id: str, update_fn: UpdateFn) -> HubSession:
        for attempt in range(1, self._max_conflicts + 1):
            current = self.get(session_id)
            if current is None:
                raise SessionNotFoundError(session_id)
            seen = current.version
            updated = _apply(update_fn, current)
            with self._lock:
                stored = self._sessions.get(session_id)
                if stored is not None and stored.version == seen:
                    updated.version = seen + 1
                    self._sessions[session_id] = updated.model_copy(deep=True)
                    return updated
            logger.info(
                "Version conflict on hub session %s (attempt %s/%s)",
                session_id,
                attempt,
                self._max_conflicts,
            )
        raise ConcurrentUpdateError(session_id, self._max_conflicts)

    def list_for_user(self, user_id: str) -> List[HubSession]:
        with self._lock:
            matches = [hub for hub in self._sessions.values() if hub.user_id == user_id]
            matches.sort(key=lambda hub: hub.created_at)
            return [hub.model_copy(deep=True) for hub in matches]

    def record_audit_event(
        self,
        session_id: Optional[str],
        event_type: str,
        payload: Dict[str, Any],
        actor: str,
    ) -> None:
        with self._lock:
            self._append_audit(session_id, event_type, payload, actor)

    def recent_audit_events(self, session_id: str, limit: int) -> List[Dict[str, Any]]:
        with self._lock:
            events = list(self._audit.get(session_id, []))
        events.reverse()
        return [dict(event) for event in events[: max(1, limit)]]

    def _append_audit(
        self,
        session_id: Optional[str],
        event_type: str,
        payload: Dict[str, Any],
        actor: str,
    ) -> None:
        if session_id is None:
            return
        events = self._audit.setdefault(session_id, [])
        events.append(
            {
                "event_type": event_type,
                "payload": dict(payload),
                "actor": actor,
                "created_at": _now(),
            }
        )
        del events[:-MAX_MEMORY_AUDIT_EVENTS]


class HubSessionStore:
    """Facade that delegates to database or memory persistence based on configuration.

    Every read returns a deep copy. ``mutate`` hands ``update_fn`` a working
    copy, commits it only if no other writer got there first and re-runs
    ``update_fn`` on the fresh record otherwise. Exceptions raised by
    ``update_fn`` abort the mutation without committing anything.
    """

    def __init__(
        self,
        *,
        backend: Optional[str] = None,
        catalog: WorldCatalog = world_catalog,
        session_lifetime: Optional[timedelta] = None,
        max_conflicts: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self._mode = backend or settings.hub_store_backend
        self._catalog = catalog
        self._lifetime = session_lifetime or timedelta(days=settings.session_lifetime_days)
        conflicts = max_conflicts or settings.mutate_max_conflicts
        if self._mode == "memory":
            self._store: Any = _MemoryHubSessionStore(conflicts)
        elif self._mode == "database":
            self._store = _DatabaseHubSessionStore(conflicts)
        else:
            raise ValueError(f"Unsupported hub store backend '{self._mode}'.")

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def catalog(self) -> WorldCatalog:
        return self._catalog

    @property
    def session_lifetime(self) -> timedelta:
        return self._lifetime

    def _call(self, method: str, *args, **kwargs):
        try:
            return getattr(self._store, method)(*args, **kwargs)
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            if self._mode == "database":
                record_store_event(get_engine(), "store_errors")
            logger.warning("Session store error during %s: %s", method, exc)
            raise StoreUnavailableError(f"Session store failed during {method}.") from exc

    def find(self, session_id: str) -> Optional[HubSession]:
        return self._call("get", session_id)

    def get(self, session_id: str) -> HubSession:
        hub = self.find(session_id)
        if hub is None:
            raise SessionNotFoundError(session_id)
        return hub

    def get_by_access_code(self, access_code: str) -> Optional[HubSession]:
        return self._call("get_by_access_code", access_code)

    def create(
        self,
        access_code: str,
        tenant_id: str,
        cultural_context: CulturalContext,
        *,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> HubSession:
        moment = now or _now()
        hub = HubSession(
            session_id=f"hub_{uuid.uuid4().hex}",
            access_code=access_code,
            tenant_id=tenant_id,
            cultural_context=cultural_context,
            user_id=user_id,
            created_at=moment,
            last_activity_at=moment,
            expires_at=moment + self._lifetime,
            worlds=initial_world_statuses(self._catalog),
        )
        stored = self._call("create", hub)
        logger.info("Created hub session %s for tenant %s", stored.session_id, tenant_id)
        return stored

    def mutate(self, session_id: str, update_fn: UpdateFn) -> HubSession:
        """Atomically apply ``update_fn`` and return the committed record."""

        def _with_catalog(working: HubSession) -> Optional[HubSession]:
            ensure_world_entries(working, self._catalog)
            return update_fn(working)

        return self._call("mutate", session_id, _with_catalog)

    def is_expired(self, hub: HubSession, now: Optional[datetime] = None) -> bool:
        return hub.is_expired(now)

    def list_for_user(self, user_id: str) -> List[HubSession]:
        return self._call("list_for_user", user_id)

    def record_audit_event(
        self,
        session_id: Optional[str],
        event_type: str,
        payload: Dict[str, Any],
        *,
        actor: str = "system",
    ) -> None:
        self._call("record_audit_event", session_id, event_type, payload, actor)

    def recent_audit_events(self, session_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        return self._call("recent_audit_events", session_id, limit)

    def export(self, session_id: str) -> Dict[str, Any]:
        """Data-portability bundle: the session record and its audit trail."""
        return self._bundle(self.get(session_id))

    def export_user(self, user_id: str, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Every hub session recorded for ``user_id``, oldest first, with audit trails."""
        normalized = (user_id or "").strip()
        if not normalized:
            raise ValueError("user_id is required to export learner data.")
        sessions = self.list_for_user(normalized)
        logger.info("Exporting %s hub sessions for user %s", len(sessions), normalized)
        return {
            "user_id": normalized,
            "exported_at": (now or _now()).isoformat(),
            "hub_sessions": [self._bundle(hub) for hub in sessions],
        }

    def _bundle(self, hub: HubSession) -> Dict[str, Any]:
        events = self.recent_audit_events(hub.session_id, limit=MAX_MEMORY_AUDIT_EVENTS)
        return {
            "session": hub.model_dump(mode="json"),
            "audit_events": [_serialize_audit(event) for event in events],
        }


def _serialize_audit(event: Dict[str, Any]) -> Dict[str, Any]:
    created_at = event.get("created_at")
    return {
        **event,
        "created_at": created_at.isoformat() if isinstance(created_at, datetime) else created_at,
    }


@lru_cache
def get_hub_store() -> HubSessionStore:
    return HubSessionStore()


__all__ = [
    "HubSessionStore",
    "UpdateFn",
    "get_hub_store",
]

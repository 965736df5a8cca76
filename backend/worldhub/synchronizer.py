"""Cross-device synchronisation of hub session snapshots.

A device keeps a cached copy of its hub session and periodically replaces it
with the authoritative record. The cached copy is always treated as possibly
stale; all merging happens inside ``HubSessionStore.mutate`` on the server.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timezone
from typing import Optional, Protocol

import httpx
from pydantic import ValidationError

from .cache import SessionSnapshotCache, snapshot_cache
from .config import get_settings
from .errors import StaleReadError
from .hub_state import HubSession
from .hub_store import HubSessionStore

logger = logging.getLogger(__name__)


class SessionSource(Protocol):
    async def fetch(self, session_id: str) -> HubSession:  # pragma: no cover - protocol definition
        ...


class StoreSessionSource:
    """Reads straight from an in-process store without blocking the event loop."""

    def __init__(self, store: HubSessionStore) -> None:
        self._store = store

    async def fetch(self, session_id: str) -> HubSession:
        return await asyncio.to_thread(self._store.get, session_id)


class HttpSessionSource:
    """Reads the authoritative snapshot from the hub REST API."""

    def __init__(
        self,
        base_url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout_seconds)
        self._owns_client = client is None

    async def fetch(self, session_id: str) -> HubSession:
        response = await self._client.get(f"/api/hub/sessions/{session_id}")
        response.raise_for_status()
        try:
            return HubSession.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise RuntimeError(f"Hub API returned an invalid session payload: {exc}") from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class HubSynchronizer:
    def __init__(
        self,
        source: SessionSource,
        *,
        interval_seconds: Optional[float] = None,
        cache: Optional[SessionSnapshotCache] = None,
    ) -> None:
        self._source = source
        self._interval = interval_seconds or get_settings().sync_interval_seconds
        self._cache = cache if cache is not None else snapshot_cache

    @property
    def interval_seconds(self) -> float:
        return self._interval

    def cached(self, session_id: str) -> Optional[HubSession]:
        return self._cache.get(session_id)

    async def refresh(self, session_id: str) -> HubSession:
        """Fetch the authoritative record and replace the cached copy.

        A fetched record older than the cached one is ignored. Fetch failures
        raise ``StaleReadError`` and leave the cache untouched.
        """
        try:
            fetched = await self._source.fetch(session_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise StaleReadError(session_id, exc) from exc

        cached = self._cache.get(session_id)
        if cached is not None and fetched.version < cached.version:
            logger.debug(
                "Ignoring hub session %s at version %s; cache already holds %s",
                session_id,
                fetched.version,
                cached.version,
            )
            return cached
        self._cache.set(session_id, fetched)
        return fetched

    def track(self, session_id: str) -> "SyncHandle":
        return SyncHandle(self, session_id, self._interval)


class SyncHandle:
    """Owns the periodic refresh task for one session.

    Use as ``async with synchronizer.track(session_id) as handle`` or call
    ``start()`` and ``await close()`` explicitly. Closing cancels the task and
    waits for it to finish.
    """

    def __init__(self, synchronizer: HubSynchronizer, session_id: str, interval_seconds: float) -> None:
        self._synchronizer = synchronizer
        self._session_id = session_id
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task[None]] = None
        self.last_synced_at: Optional[datetime] = None
        self.last_error: Optional[BaseException] = None
        self.consecutive_failures = 0
        self.total_failures = 0

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def snapshot(self) -> Optional[HubSession]:
        return self._synchronizer.cached(self._session_id)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> Optional[HubSession]:
        try:
            snapshot = await self._synchronizer.refresh(self._session_id)
        except StaleReadError as exc:
            self.consecutive_failures += 1
            self.total_failures += 1
            self.last_error = exc.cause
            logger.warning(
                "Hub sync for %s failed (%s consecutive): %s",
                self._session_id,
                self.consecutive_failures,
                exc.cause,
            )
            return None
        self.consecutive_failures = 0
        self.last_error = None
        self.last_synced_at = datetime.now(timezone.utc)
        return snapshot

    async def _run(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self._interval)

    def start(self) -> "SyncHandle":
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(
                self._run(), name=f"hub-sync-{self._session_id}"
            )
        return self

    async def close(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def __aenter__(self) -> "SyncHandle":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()


__all__ = [
    "HttpSessionSource",
    "HubSynchronizer",
    "SessionSource",
    "StoreSessionSource",
    "SyncHandle",
]

"""Orchestrates world start/completion through a single store mutation."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from . import progression
from .achievements import AchievementEngine, default_achievement_content
from .aggregator import apply_world_result
from .config import get_settings
from .errors import ConcurrentUpdateError, StoreUnavailableError
from .hub_state import HubProgressData, HubSession
from .hub_store import HubSessionStore
from .progression import TransitionOutcome
from .telemetry import emit_event
from .world_catalog import WorldCatalog, world_catalog
from .world_result import WorldResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorldStartReceipt:
    session: HubSession
    outcome: TransitionOutcome


@dataclass(frozen=True)
class WorldCompletionReceipt:
    session: HubSession
    outcome: TransitionOutcome
    progress: HubProgressData
    newly_unlocked_achievements: Tuple[str, ...] = ()
    unlocked_worlds: Tuple[int, ...] = ()


@dataclass
class _Captured:
    outcome: Optional[TransitionOutcome] = None
    achievements: List[str] = field(default_factory=list)


class HubService:
    def __init__(
        self,
        store: HubSessionStore,
        *,
        catalog: WorldCatalog = world_catalog,
        engine: Optional[AchievementEngine] = None,
        retry_attempts: Optional[int] = None,
        retry_backoff_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._catalog = catalog
        self._engine = engine or AchievementEngine(default_achievement_content)
        self._retry_attempts = retry_attempts or settings.submit_retry_attempts
        self._backoff = (
            settings.submit_retry_backoff_seconds if retry_backoff_seconds is None else retry_backoff_seconds
        )
        self._sleep = sleep

    @property
    def store(self) -> HubSessionStore:
        return self._store

    @property
    def engine(self) -> AchievementEngine:
        return self._engine

    def get_session(self, session_id: str) -> HubSession:
        return self._store.get(session_id)

    def start_world(self, session_id: str, world_index: int, *, replay: bool = False) -> WorldStartReceipt:
        """Enter a world; a locked world raises before anything is written."""
        captured = _Captured()

        def _update(working: HubSession) -> None:
            captured.outcome = progression.start_world(
                working, world_index, catalog=self._catalog, replay=replay
            )

        hub = self._store.mutate(session_id, _update)
        outcome = captured.outcome
        assert outcome is not None

        if outcome.replayed:
            entry = hub.world(world_index)
            emit_event(
                "world_replayed",
                session_id=session_id,
                world_index=world_index,
                replay_count=entry.replay_count,
                retained_score=entry.score,
            )
        elif outcome.changed:
            emit_event("world_started", session_id=session_id, world_index=world_index)
        return WorldStartReceipt(session=hub, outcome=outcome)

    def complete_world(self, session_id: str, world_index: int, result: WorldResult) -> WorldCompletionReceipt:
        """Record a completion, update aggregates and evaluate achievements atomically.

        Store outages and exhausted version conflicts are retried with linear
        backoff; after the last attempt ``StoreUnavailableError`` surfaces so
        the caller can tell the learner the result was not saved.
        """
        last_error: Optional[Exception] = None
        for attempt in range(1, self._retry_attempts + 1):
            try:
                return self._complete_once(session_id, world_index, result)
            except (StoreUnavailableError, ConcurrentUpdateError) as exc:
                last_error = exc
                logger.warning(
                    "Completion of world %s for session %s failed (attempt %s/%s): %s",
                    world_index,
                    session_id,
                    attempt,
                    self._retry_attempts,
                    exc,
                )
                if attempt < self._retry_attempts and self._backoff > 0:
                    self._sleep(self._backoff * attempt)
        raise StoreUnavailableError(
            f"Completion of world {world_index} could not be saved.",
            attempts=self._retry_attempts,
        ) from last_error

    def _complete_once(self, session_id: str, world_index: int, result: WorldResult) -> WorldCompletionReceipt:
        captured = _Captured()

        def _update(working: HubSession) -> None:
            captured.outcome = progression.complete_world(working, world_index, catalog=self._catalog)
            apply_world_result(working, world_index, result)
            captured.achievements = self._engine.unlock(working)

        hub = self._store.mutate(session_id, _update)
        outcome = captured.outcome
        assert outcome is not None
        entry = hub.world(world_index)

        emit_event(
            "world_completed",
            session_id=session_id,
            world_index=world_index,
            score=result.score,
            retained_score=entry.score,
            time_spent_ms=result.time_spent_ms,
            total_score=hub.progress.total_score,
            unlocked_worlds=list(outcome.unlocked_worlds),
        )
        definitions = {definition.achievement_id: definition for definition in self._engine.content.list_definitions()}
        for achievement_id in captured.achievements:
            definition = definitions.get(achievement_id)
            emit_event(
                "achievement_unlocked",
                session_id=session_id,
                achievement_id=achievement_id,
                title=definition.localized_title(hub.locale) if definition else achievement_id,
            )

        return WorldCompletionReceipt(
            session=hub,
            outcome=outcome,
            progress=hub.progress,
            newly_unlocked_achievements=tuple(captured.achievements),
            unlocked_worlds=outcome.unlocked_worlds,
        )


__all__ = ["HubService", "WorldCompletionReceipt", "WorldStartReceipt"]

"""Hub-scoped achievement definitions and the milestone engine that evaluates them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from .aggregator import merge_unlocked
from .hub_state import HubSession
from .world_catalog import resolve_text

logger = logging.getLogger(__name__)

AchievementPredicate = Callable[[HubSession], bool]

HIGH_ACHIEVER_SCORE = 400
DEDICATED_LEARNER_MS = 3 * 60 * 60 * 1000


@dataclass(frozen=True)
class AchievementDefinition:
    achievement_id: str
    predicate: AchievementPredicate = field(compare=False)
    title: Mapping[str, str] = field(default_factory=dict, compare=False)
    description: Mapping[str, str] = field(default_factory=dict, compare=False)

    def localized_title(self, locale: Optional[str]) -> str:
        return resolve_text(self.title, locale) or self.achievement_id

    def localized_description(self, locale: Optional[str]) -> str:
        return resolve_text(self.description, locale)


class AchievementContent(Protocol):
    def list_definitions(self) -> Sequence[AchievementDefinition]:  # pragma: no cover - protocol definition
        ...


class StaticAchievementContent:
    """In-process achievement content keyed by id."""

    def __init__(self, definitions: Iterable[AchievementDefinition]) -> None:
        self._definitions: Dict[str, AchievementDefinition] = {}
        for definition in definitions:
            if definition.achievement_id in self._definitions:
                raise ValueError(f"Duplicate achievement id '{definition.achievement_id}'.")
            self._definitions[definition.achievement_id] = definition

    def list_definitions(self) -> Sequence[AchievementDefinition]:
        return list(self._definitions.values())

    def get(self, achievement_id: str) -> Optional[AchievementDefinition]:
        return self._definitions.get(achievement_id)


class AchievementEngine:
    """Evaluates unlock predicates and reports only ids not yet unlocked.

    ``evaluate`` is pure. Persisting the returned delta into
    ``HubProgressData.unlocked_achievements`` is the caller's job; ``unlock``
    does exactly that on a store working copy.
    """

    def __init__(self, content: AchievementContent) -> None:
        self._content = content

    @property
    def content(self) -> AchievementContent:
        return self._content

    def evaluate(self, snapshot: HubSession) -> List[str]:
        already = set(snapshot.progress.unlocked_achievements)
        newly: List[str] = []
        for definition in self._content.list_definitions():
            if definition.achievement_id in already or definition.achievement_id in newly:
                continue
            try:
                satisfied = bool(definition.predicate(snapshot))
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Achievement predicate %s failed for session %s",
                    definition.achievement_id,
                    snapshot.session_id,
                )
                continue
            if satisfied:
                newly.append(definition.achievement_id)
        return newly

    def unlock(self, session: HubSession) -> List[str]:
        newly = self.evaluate(session)
        if newly:
            session.progress.unlocked_achievements = merge_unlocked(
                session.progress.unlocked_achievements, newly
            )
        return newly


def _completed_worlds(snapshot: HubSession) -> int:
    return sum(1 for entry in snapshot.worlds if entry.ever_completed)


DEFAULT_ACHIEVEMENTS = (
    AchievementDefinition(
        achievement_id="first_world_complete",
        predicate=lambda snapshot: _completed_worlds(snapshot) >= 1,
        title={
            "en": "First world complete",
            "sv": "Första världen klar",
            "de": "Erste Welt abgeschlossen",
            "fr": "Premier monde terminé",
            "nl": "Eerste wereld voltooid",
        },
        description={"en": "Complete any world in the hub."},
    ),
    AchievementDefinition(
        achievement_id="halfway_champion",
        predicate=lambda snapshot: _completed_worlds(snapshot) >= 3,
        title={
            "en": "Halfway champion",
            "sv": "Halvvägsmästare",
            "de": "Halbzeit-Champion",
            "fr": "Champion à mi-parcours",
            "nl": "Halverwege kampioen",
        },
        description={"en": "Complete three worlds."},
    ),
    AchievementDefinition(
        achievement_id="world_master",
        predicate=lambda snapshot: bool(snapshot.worlds)
        and _completed_worlds(snapshot) == len(snapshot.worlds),
        title={
            "en": "World master",
            "sv": "Världsmästare",
            "de": "Weltenmeister",
            "fr": "Maître des mondes",
            "nl": "Wereldmeester",
        },
        description={"en": "Complete every world in the hub."},
    ),
    AchievementDefinition(
        achievement_id="high_achiever",
        predicate=lambda snapshot: snapshot.progress.total_score >= HIGH_ACHIEVER_SCORE,
        title={"en": "High achiever", "sv": "Toppresterare"},
        description={"en": f"Reach a total hub score of {HIGH_ACHIEVER_SCORE}."},
    ),
    AchievementDefinition(
        achievement_id="dedicated_learner",
        predicate=lambda snapshot: snapshot.progress.total_time_spent_ms >= DEDICATED_LEARNER_MS,
        title={"en": "Dedicated learner", "sv": "Hängiven elev"},
        description={"en": "Spend three hours learning across the hub."},
    ),
)

default_achievement_content = StaticAchievementContent(DEFAULT_ACHIEVEMENTS)


__all__ = [
    "AchievementContent",
    "AchievementDefinition",
    "AchievementEngine",
    "AchievementPredicate",
    "DEFAULT_ACHIEVEMENTS",
    "StaticAchievementContent",
    "default_achievement_content",
]

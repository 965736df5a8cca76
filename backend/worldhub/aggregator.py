"""Score and progress aggregation across worlds."""

from __future__ import annotations

from collections import Counter
from typing import Iterable, List, Sequence

from .errors import WorldLockedError
from .hub_state import HubProgressData, HubSession, WorldCompletionStatus
from .world_result import WorldResult


def merge_unlocked(existing: Sequence[str], incoming: Iterable[str]) -> List[str]:
    """Union preserving unlock order; nothing already present is dropped."""
    merged = list(dict.fromkeys(existing))
    for achievement_id in incoming:
        if achievement_id and achievement_id not in merged:
            merged.append(achievement_id)
    return merged


def merge_result(entry: WorldCompletionStatus, result: WorldResult) -> WorldCompletionStatus:
    """Fold one attempt into a world's retained fields.

    Score and completion percentage keep the best attempt, time spent is a
    usage metric and accumulates, achievements and competencies only grow.
    """
    entry.score = max(entry.score, result.score)
    entry.completion_percentage = max(entry.completion_percentage, result.completion_percentage)
    entry.time_spent_ms += result.time_spent_ms
    entry.attempts += 1
    entry.achievements_unlocked = sorted(set(entry.achievements_unlocked) | set(result.achievements))
    entry.competency_gains = sorted(set(entry.competency_gains) | set(result.competency_tags))
    return entry


def summarize(
    worlds: Sequence[WorldCompletionStatus],
    unlocked_achievements: Sequence[str] = (),
) -> HubProgressData:
    world_count = len(worlds)
    completed = sum(1 for entry in worlds if entry.status == "completed")
    competency_levels: Counter[str] = Counter()
    for entry in worlds:
        competency_levels.update(set(entry.competency_gains))
    percentage = (completed / world_count) * 100 if world_count else 0.0
    return HubProgressData(
        total_score=sum(entry.score for entry in worlds),
        unlocked_achievements=merge_unlocked(unlocked_achievements, ()),
        total_time_spent_ms=sum(entry.time_spent_ms for entry in worlds),
        completion_percentage=round(percentage, 2),
        worlds_completed=completed,
        competency_levels=dict(sorted(competency_levels.items())),
    )


def refresh_progress(session: HubSession) -> HubProgressData:
    session.progress = summarize(session.worlds, session.progress.unlocked_achievements)
    return session.progress


def apply_world_result(session: HubSession, world_index: int, result: WorldResult) -> HubProgressData:
    """Record ``result`` against ``world_index`` and return the refreshed hub totals."""
    entry = session.world(world_index)
    if entry.status == "locked":
        raise WorldLockedError(world_index)
    merge_result(entry, result)
    return refresh_progress(session)


__all__ = [
    "apply_world_result",
    "merge_result",
    "merge_unlocked",
    "refresh_progress",
    "summarize",
]

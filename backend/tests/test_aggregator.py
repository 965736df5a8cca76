from __future__ import annotations

import pytest

from worldhub.aggregator import apply_world_result, merge_unlocked, summarize
from worldhub.errors import WorldLockedError
from worldhub.progression import complete_world
from worldhub.world_catalog import world_catalog
from worldhub.world_result import WorldResult


def _complete(session, index: int, **result) -> None:
    complete_world(session, index, catalog=world_catalog)
    apply_world_result(session, index, WorldResult(**result))


def test_first_completion_updates_totals(fresh_session) -> None:
    _complete(fresh_session, 1, score=85, time_spent_ms=1_200_000, competency_tags=["emergency_management"])
    progress = fresh_session.progress
    assert progress.total_score == 85
    assert progress.worlds_completed == 1
    assert progress.completion_percentage == 20.0
    assert progress.total_time_spent_ms == 1_200_000
    assert progress.competency_levels == {"emergency_management": 1}
    assert fresh_session.world(1).attempts == 1


def test_weaker_replay_keeps_best_score_and_adds_time(fresh_session) -> None:
    _complete(fresh_session, 1, score=90, completion_percentage=95.0, time_spent_ms=1000)
    _complete(fresh_session, 1, score=60, completion_percentage=80.0, time_spent_ms=500)
    entry = fresh_session.world(1)
    assert entry.score == 90
    assert entry.completion_percentage == 95.0
    assert entry.time_spent_ms == 1500
    assert entry.attempts == 2
    assert fresh_session.progress.total_score == 90


def test_better_replay_raises_retained_score(fresh_session) -> None:
    _complete(fresh_session, 1, score=40)
    _complete(fresh_session, 1, score=70)
    assert fresh_session.world(1).score == 70
    assert fresh_session.progress.total_score == 70


def test_total_score_is_sum_of_retained_scores(fresh_session) -> None:
    _complete(fresh_session, 1, score=50)
    _complete(fresh_session, 2, score=30)
    _complete(fresh_session, 3, score=20)
    _complete(fresh_session, 2, score=10)
    assert fresh_session.progress.total_score == sum(entry.score for entry in fresh_session.worlds) == 100
    assert fresh_session.progress.completion_percentage == 60.0


def test_world_achievements_and_competencies_only_grow(fresh_session) -> None:
    _complete(fresh_session, 1, score=10, achievements=["fast"], competency_tags=["a"])
    _complete(fresh_session, 1, score=10, achievements=["calm"], competency_tags=[])
    entry = fresh_session.world(1)
    assert entry.achievements_unlocked == ["calm", "fast"]
    assert entry.competency_gains == ["a"]


def test_locked_world_result_is_rejected(fresh_session) -> None:
    with pytest.raises(WorldLockedError):
        apply_world_result(fresh_session, 4, WorldResult(score=10))
    assert fresh_session.world(4).score == 0


def test_summarize_preserves_hub_achievement_order(fresh_session) -> None:
    progress = summarize(fresh_session.worlds, ["b", "a", "b"])
    assert progress.unlocked_achievements == ["b", "a"]
    assert progress.total_score == 0
    assert progress.completion_percentage == 0.0


def test_merge_unlocked_is_monotonic() -> None:
    assert merge_unlocked(["x", "y"], ["y", "z", ""]) == ["x", "y", "z"]
    assert merge_unlocked(["x"], []) == ["x"]


def test_world_result_normalises_tags() -> None:
    result = WorldResult(score=5, achievements=[" b ", "a", "b"], competency_tags=["", "x"])
    assert result.achievements == ["a", "b"]
    assert result.competency_tags == ["x"]
    with pytest.raises(ValueError):
        WorldResult(score=-1)

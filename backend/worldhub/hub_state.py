"""Hub session domain models shared by the store, services and routes."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .errors import UnknownWorldError

WorldStatus = Literal["locked", "available", "in_progress", "completed"]
CulturalContext = Literal[
    "swedish_municipal",
    "german_municipal",
    "french_municipal",
    "dutch_municipal",
]

CULTURAL_CONTEXT_LOCALES: Dict[str, str] = {
    "swedish_municipal": "sv",
    "german_municipal": "de",
    "french_municipal": "fr",
    "dutch_municipal": "nl",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _sorted_unique(values: Iterable[str]) -> List[str]:
    return sorted({value for value in values if isinstance(value, str) and value})


class WorldCompletionStatus(BaseModel):
    """Per-world progress for one session."""

    world_index: int = Field(ge=1)
    world_id: str
    status: WorldStatus = "locked"
    score: int = Field(default=0, ge=0)
    completion_percentage: float = Field(default=0.0, ge=0.0, le=100.0)
    time_spent_ms: int = Field(default=0, ge=0)
    attempts: int = Field(default=0, ge=0)
    replay_count: int = Field(default=0, ge=0)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    achievements_unlocked: List[str] = Field(default_factory=list)
    competency_gains: List[str] = Field(default_factory=list)

    @field_validator("achievements_unlocked", "competency_gains")
    @classmethod
    def _normalise_sets(cls, values: List[str]) -> List[str]:
        return _sorted_unique(values)

    @model_validator(mode="after")
    def _locked_worlds_carry_no_progress(self) -> "WorldCompletionStatus":
        if self.status != "locked":
            return self
        if (
            self.score
            or self.completion_percentage
            or self.time_spent_ms
            or self.attempts
            or self.replay_count
            or self.achievements_unlocked
            or self.competency_gains
        ):
            raise ValueError(f"Locked world {self.world_index} cannot carry progress.")
        return self

    @property
    def ever_completed(self) -> bool:
        return self.completed_at is not None or self.status == "completed"


class HubProgressData(BaseModel):
    """Hub-level aggregates derived from the world statuses."""

    total_score: int = Field(default=0, ge=0)
    unlocked_achievements: List[str] = Field(default_factory=list)
    total_time_spent_ms: int = Field(default=0, ge=0)
    completion_percentage: float = Field(default=0.0, ge=0.0, le=100.0)
    worlds_completed: int = Field(default=0, ge=0)
    competency_levels: Dict[str, int] = Field(default_factory=dict)


class HubSession(BaseModel):
    """Authoritative hub record as persisted by the session store."""

    session_id: str
    access_code: str
    tenant_id: str
    cultural_context: CulturalContext = "swedish_municipal"
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    last_activity_at: datetime = Field(default_factory=_now)
    expires_at: datetime
    current_world_index: Optional[int] = None
    version: int = Field(default=0, ge=0)
    worlds: List[WorldCompletionStatus] = Field(default_factory=list)
    progress: HubProgressData = Field(default_factory=HubProgressData)

    @property
    def locale(self) -> str:
        return CULTURAL_CONTEXT_LOCALES.get(self.cultural_context, "en")

    def world(self, world_index: int) -> WorldCompletionStatus:
        for entry in self.worlds:
            if entry.world_index == world_index:
                return entry
        raise UnknownWorldError(world_index)

    def status_map(self) -> Dict[int, WorldStatus]:
        return {entry.world_index: entry.status for entry in self.worlds}

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        moment = now or _now()
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= moment


__all__ = [
    "CULTURAL_CONTEXT_LOCALES",
    "CulturalContext",
    "HubProgressData",
    "HubSession",
    "WorldCompletionStatus",
    "WorldStatus",
]

"""Result payload submitted when a learner finishes a world."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, field_validator


class WorldResult(BaseModel):
    """Outcome of one attempt at a world, as reported by the world's own grading."""

    score: int = Field(ge=0)
    completion_percentage: float = Field(default=100.0, ge=0.0, le=100.0)
    time_spent_ms: int = Field(default=0, ge=0)
    achievements: List[str] = Field(default_factory=list)
    competency_tags: List[str] = Field(default_factory=list)

    @field_validator("achievements", "competency_tags")
    @classmethod
    def _unique_tags(cls, values: List[str]) -> List[str]:
        return sorted({value.strip() for value in values if isinstance(value, str) and value.strip()})


__all__ = ["WorldResult"]

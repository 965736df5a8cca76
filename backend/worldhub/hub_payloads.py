"""Request and response payloads for the hub REST API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .achievements import AchievementDefinition
from .hub_service import WorldCompletionReceipt, WorldStartReceipt
from .hub_state import CulturalContext, HubProgressData, HubSession, WorldStatus
from .world_catalog import WorldDefinition, resolve_text


class IssueSessionRequest(BaseModel):
    tenant_id: str = Field(..., min_length=1, max_length=64)
    cultural_context: CulturalContext = "swedish_municipal"
    user_id: Optional[str] = Field(default=None, max_length=128)


class AuthenticateRequest(BaseModel):
    access_code: str = Field(default="", max_length=64)


class StartWorldRequest(BaseModel):
    replay: bool = False


class WorldDefinitionPayload(BaseModel):
    index: int
    world_id: str
    theme: str
    title: str
    description: str
    difficulty: int
    estimated_duration_minutes: int
    prerequisite_world_indices: List[int]
    competency_focus: List[str]

    @classmethod
    def from_definition(cls, definition: WorldDefinition, locale: Optional[str]) -> "WorldDefinitionPayload":
        return cls(
            index=definition.index,
            world_id=definition.world_id,
            theme=definition.theme,
            title=resolve_text(definition.title, locale),
            description=resolve_text(definition.description, locale),
            difficulty=definition.difficulty,
            estimated_duration_minutes=definition.estimated_duration_minutes,
            prerequisite_world_indices=sorted(definition.prerequisite_world_indices),
            competency_focus=sorted(definition.competency_focus),
        )


class WorldCatalogPayload(BaseModel):
    locale: str
    worlds: List[WorldDefinitionPayload] = Field(default_factory=list)


class AchievementDefinitionPayload(BaseModel):
    achievement_id: str
    title: str
    description: str

    @classmethod
    def from_definition(
        cls, definition: AchievementDefinition, locale: Optional[str]
    ) -> "AchievementDefinitionPayload":
        return cls(
            achievement_id=definition.achievement_id,
            title=definition.localized_title(locale),
            description=definition.localized_description(locale),
        )


class AchievementCatalogPayload(BaseModel):
    locale: str
    achievements: List[AchievementDefinitionPayload] = Field(default_factory=list)


class WorldStartPayload(BaseModel):
    session: HubSession
    world_index: int
    previous_status: WorldStatus
    status: WorldStatus
    replayed: bool
    changed: bool

    @classmethod
    def from_receipt(cls, receipt: WorldStartReceipt) -> "WorldStartPayload":
        outcome = receipt.outcome
        return cls(
            session=receipt.session,
            world_index=outcome.world_index,
            previous_status=outcome.previous_status,
            status=outcome.status,
            replayed=outcome.replayed,
            changed=outcome.changed,
        )


class WorldCompletionPayload(BaseModel):
    saved: bool = True
    session: HubSession
    world_index: int
    previous_status: WorldStatus
    status: WorldStatus
    progress: HubProgressData
    newly_unlocked_achievements: List[str] = Field(default_factory=list)
    unlocked_worlds: List[int] = Field(default_factory=list)

    @classmethod
    def from_receipt(cls, receipt: WorldCompletionReceipt) -> "WorldCompletionPayload":
        outcome = receipt.outcome
        return cls(
            session=receipt.session,
            world_index=outcome.world_index,
            previous_status=outcome.previous_status,
            status=outcome.status,
            progress=receipt.progress,
            newly_unlocked_achievements=list(receipt.newly_unlocked_achievements),
            unlocked_worlds=list(receipt.unlocked_worlds),
        )


class HubExportPayload(BaseModel):
    session: Dict[str, Any]
    audit_events: List[Dict[str, Any]] = Field(default_factory=list)


class UserExportPayload(BaseModel):
    user_id: str
    exported_at: str
    hub_sessions: List[HubExportPayload] = Field(default_factory=list)


__all__ = [
    "AchievementCatalogPayload",
    "AchievementDefinitionPayload",
    "AuthenticateRequest",
    "HubExportPayload",
    "IssueSessionRequest",
    "StartWorldRequest",
    "UserExportPayload",
    "WorldCatalogPayload",
    "WorldCompletionPayload",
    "WorldDefinitionPayload",
    "WorldStartPayload",
]

"""ORM models backing the hub session store."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


class HubSessionModel(TimestampMixin, Base):
    __tablename__ = "hub_sessions"
    __table_args__ = (
        Index("ix_hub_sessions_access_code", "access_code", unique=True),
        Index("ix_hub_sessions_tenant", "tenant_id"),
        Index("ix_hub_sessions_user", "user_id"),
    )

    session_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    access_code: Mapped[str] = mapped_column(String(32), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    cultural_context: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    current_world_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    worlds: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)
    progress: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    audit_events: Mapped[list["HubAuditEventModel"]] = relationship(
        back_populates="hub_session", cascade="all, delete-orphan"
    )


class HubAuditEventModel(Base):
    __tablename__ = "hub_audit_events"
    __table_args__ = (Index("ix_hub_audit_events_session", "session_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id: Mapped[Optional[str]] = mapped_column(
        String(64), ForeignKey("hub_sessions.session_id", ondelete="CASCADE"), nullable=True
    )
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    actor: Mapped[str | None] = mapped_column(String(128))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    hub_session: Mapped[HubSessionModel | None] = relationship(back_populates="audit_events")


__all__ = [
    "HubAuditEventModel",
    "HubSessionModel",
]

"""Database-backed hub session repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..db.models import HubAuditEventModel, HubSessionModel
from ..hub_state import HubProgressData, HubSession, WorldCompletionStatus

MAX_AUDIT_EVENTS = 200


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on round-trip.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class HubSessionRepository:
    """Row-level persistence for hub sessions plus their audit trail."""

    def get(self, session: Session, session_id: str) -> HubSession | None:
        model = session.get(HubSessionModel, session_id)
        if model is None:
            return None
        return self._to_domain(model)

    def get_by_access_code(self, session: Session, access_code: str) -> HubSession | None:
        stmt = select(HubSessionModel).where(HubSessionModel.access_code == access_code)
        model = session.execute(stmt).scalar_one_or_none()
        if model is None:
            return None
        return self._to_domain(model)

    def create(self, session: Session, hub: HubSession) -> HubSession:
        model = HubSessionModel(
            session_id=hub.session_id,
            access_code=hub.access_code,
            tenant_id=hub.tenant_id,
            cultural_context=hub.cultural_context,
            user_id=hub.user_id,
            created_at=hub.created_at,
            last_activity_at=hub.last_activity_at,
            expires_at=hub.expires_at,
            current_world_index=hub.current_world_index,
            version=hub.version,
            worlds=[entry.model_dump(mode="json") for entry in hub.worlds],
            progress=hub.progress.model_dump(mode="json"),
        )
        session.add(model)
        session.flush()
        self.record_audit(session, hub.session_id, "hub_session_create", {"tenant_id": hub.tenant_id})
        return self._to_domain(model)

    def compare_and_swap(self, session: Session, expected_version: int, hub: HubSession) -> bool:
        """Persist ``hub`` only if the stored row still carries ``expected_version``."""
        result = session.execute(
            update(HubSessionModel)
            .where(
                HubSessionModel.session_id == hub.session_id,
                HubSessionModel.version == expected_version,
            )
            .values(
                version=expected_version + 1,
                last_activity_at=hub.last_activity_at,
                current_world_index=hub.current_world_index,
                worlds=[entry.model_dump(mode="json") for entry in hub.worlds],
                progress=hub.progress.model_dump(mode="json"),
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_for_user(self, session: Session, user_id: str) -> List[HubSession]:
        stmt = (
            select(HubSessionModel)
            .where(HubSessionModel.user_id == user_id)
            .order_by(HubSessionModel.created_at.asc())
        )
        return [self._to_domain(model) for model in session.execute(stmt).scalars().all()]

    def record_audit(
        self,
        session: Session,
        session_id: Optional[str],
        event_type: str,
        payload: Dict[str, Any],
        *,
        actor: str = "system",
    ) -> None:
        session.add(
            HubAuditEventModel(
                session_id=session_id,
                event_type=event_type,
                payload=payload,
                actor=actor,
            )
        )

    def recent_audit_events(self, session: Session, session_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        stmt = (
            select(HubAuditEventModel)
            .where(HubAuditEventModel.session_id == session_id)
            .order_by(HubAuditEventModel.created_at.desc())
            .limit(max(1, min(limit, MAX_AUDIT_EVENTS)))
        )
        return [
            {
                "event_type": event.event_type,
                "payload": dict(event.payload or {}),
                "actor": event.actor,
                "created_at": _aware(event.created_at),
            }
            for event in session.execute(stmt).scalars().all()
        ]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _to_domain(self, model: HubSessionModel) -> HubSession:
        worlds = [WorldCompletionStatus.model_validate(entry) for entry in model.worlds or []]
        worlds.sort(key=lambda entry: entry.world_index)
        return HubSession(
            session_id=model.session_id,
            access_code=model.access_code,
            tenant_id=model.tenant_id,
            cultural_context=model.cultural_context,  # type: ignore[arg-type]
            user_id=model.user_id,
            created_at=_aware(model.created_at),
            last_activity_at=_aware(model.last_activity_at),
            expires_at=_aware(model.expires_at),
            current_world_index=model.current_world_index,
            version=model.version,
            worlds=worlds,
            progress=HubProgressData.model_validate(model.progress or {}),
        )


hub_sessions = HubSessionRepository()

__all__ = ["HubSessionRepository", "hub_sessions"]

"""Access-code authentication and session issuance for the hub."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

from .config import get_settings
from .errors import DuplicateAccessCodeError, ExpiredCodeError, InvalidCodeError
from .hub_state import CulturalContext, HubSession
from .hub_store import HubSessionStore
from .telemetry import emit_event

logger = logging.getLogger(__name__)

ACCESS_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
MAX_ISSUE_ATTEMPTS = 10


def normalize_access_code(raw: Optional[str]) -> str:
    normalized = (raw or "").strip().upper()
    if not normalized:
        raise InvalidCodeError("Access code cannot be empty.")
    return normalized


def generate_access_code(length: int = 8) -> str:
    return "".join(secrets.choice(ACCESS_CODE_ALPHABET) for _ in range(length))


class HubSessionAuthenticator:
    """Exchanges learner-facing access codes for hub sessions."""

    def __init__(self, store: HubSessionStore, *, code_length: Optional[int] = None) -> None:
        self._store = store
        self._code_length = code_length or get_settings().access_code_length

    def authenticate(self, access_code: Optional[str], *, now: Optional[datetime] = None) -> HubSession:
        """Resolve ``access_code`` to its session and record the activity.

        Never creates a session; an unknown code raises ``InvalidCodeError`` and
        a lapsed one ``ExpiredCodeError``.
        """
        code = normalize_access_code(access_code)
        hub = self._store.get_by_access_code(code)
        if hub is None:
            logger.info("Rejected unknown access code")
            raise InvalidCodeError()
        moment = now or datetime.now(timezone.utc)
        if self._store.is_expired(hub, moment):
            logger.info("Rejected expired access code for session %s", hub.session_id)
            raise ExpiredCodeError(hub.session_id)

        def _touch(working: HubSession) -> None:
            working.last_activity_at = moment

        refreshed = self._store.mutate(hub.session_id, _touch)
        emit_event(
            "hub_session_authenticated",
            session_id=refreshed.session_id,
            tenant_id=refreshed.tenant_id,
            cultural_context=refreshed.cultural_context,
        )
        return refreshed

    def issue(
        self,
        tenant_id: str,
        cultural_context: CulturalContext,
        user_id: Optional[str] = None,
    ) -> HubSession:
        tenant = tenant_id.strip()
        if not tenant:
            raise ValueError("Tenant id cannot be empty.")
        for attempt in range(1, MAX_ISSUE_ATTEMPTS + 1):
            code = generate_access_code(self._code_length)
            try:
                hub = self._store.create(code, tenant, cultural_context, user_id=user_id)
            except DuplicateAccessCodeError:
                logger.warning("Access code collision on attempt %s; regenerating", attempt)
                continue
            emit_event(
                "hub_session_created",
                session_id=hub.session_id,
                tenant_id=hub.tenant_id,
                cultural_context=hub.cultural_context,
                user_id=hub.user_id,
            )
            return hub
        raise DuplicateAccessCodeError()


__all__ = [
    "ACCESS_CODE_ALPHABET",
    "HubSessionAuthenticator",
    "generate_access_code",
    "normalize_access_code",
]

"""Hub REST endpoints consumed by the world-map rendering layer."""

from __future__ import annotations

import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .achievements import AchievementEngine, default_achievement_content
from .authenticator import HubSessionAuthenticator
from .errors import (
    AuthenticationError,
    ConcurrentUpdateError,
    ExpiredCodeError,
    HubError,
    SessionNotFoundError,
    StoreUnavailableError,
    UnknownWorldError,
    WorldLockedError,
    WorldTransitionError,
)
from .hub_payloads import (
    AchievementCatalogPayload,
    AchievementDefinitionPayload,
    AuthenticateRequest,
    HubExportPayload,
    IssueSessionRequest,
    StartWorldRequest,
    UserExportPayload,
    WorldCatalogPayload,
    WorldCompletionPayload,
    WorldDefinitionPayload,
    WorldStartPayload,
)
from .hub_service import HubService
from .hub_state import HubSession
from .hub_store import HubSessionStore, get_hub_store
from .world_catalog import DEFAULT_LOCALE, world_catalog
from .world_result import WorldResult

router = APIRouter(prefix="/api/hub", tags=["hub"])
logger = logging.getLogger(__name__)


def get_achievement_engine() -> AchievementEngine:
    return AchievementEngine(default_achievement_content)


def get_hub_service(
    store: HubSessionStore = Depends(get_hub_store),
    engine: AchievementEngine = Depends(get_achievement_engine),
) -> HubService:
    return HubService(store, catalog=world_catalog, engine=engine)


def get_authenticator(store: HubSessionStore = Depends(get_hub_store)) -> HubSessionAuthenticator:
    return HubSessionAuthenticator(store)


def _raise_http(exc: HubError) -> NoReturn:
    if isinstance(exc, AuthenticationError):
        detail = {"message": f"{exc} Please re-enter your access code.", "reason": "invalid_code"}
        if isinstance(exc, ExpiredCodeError):
            detail["reason"] = "expired_code"
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail) from exc
    if isinstance(exc, WorldLockedError):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(exc),
                "changed": False,
                "world_index": exc.world_index,
                "missing_prerequisites": exc.missing_prerequisites,
            },
        ) from exc
    if isinstance(exc, WorldTransitionError):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(exc),
                "changed": False,
                "world_index": exc.world_index,
                "current_status": exc.current_status,
            },
        ) from exc
    if isinstance(exc, (SessionNotFoundError, UnknownWorldError)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, (StoreUnavailableError, ConcurrentUpdateError)):
        attempts = getattr(exc, "attempts", 1)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "message": "Your progress could not be saved. Please try again.",
                "saved": False,
                "retryable": True,
                "attempts": attempts,
            },
        ) from exc
    logger.exception("Unhandled hub error")
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc


@router.get("/catalog", response_model=WorldCatalogPayload, status_code=status.HTTP_200_OK)
def get_catalog(locale: Optional[str] = Query(default=None, max_length=16)) -> WorldCatalogPayload:
    resolved = locale or DEFAULT_LOCALE
    return WorldCatalogPayload(
        locale=resolved,
        worlds=[WorldDefinitionPayload.from_definition(definition, resolved) for definition in world_catalog.definitions()],
    )


@router.get("/achievements", response_model=AchievementCatalogPayload, status_code=status.HTTP_200_OK)
def get_achievements(
    locale: Optional[str] = Query(default=None, max_length=16),
    engine: AchievementEngine = Depends(get_achievement_engine),
) -> AchievementCatalogPayload:
    resolved = locale or DEFAULT_LOCALE
    return AchievementCatalogPayload(
        locale=resolved,
        achievements=[
            AchievementDefinitionPayload.from_definition(definition, resolved)
            for definition in engine.content.list_definitions()
        ],
    )


@router.post("/sessions", response_model=HubSession, status_code=status.HTTP_201_CREATED)
def issue_session(
    payload: IssueSessionRequest,
    authenticator: HubSessionAuthenticator = Depends(get_authenticator),
) -> HubSession:
    try:
        return authenticator.issue(payload.tenant_id, payload.cultural_context, user_id=payload.user_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except HubError as exc:
        _raise_http(exc)


@router.post("/authenticate", response_model=HubSession, status_code=status.HTTP_200_OK)
def authenticate(
    payload: AuthenticateRequest,
    authenticator: HubSessionAuthenticator = Depends(get_authenticator),
) -> HubSession:
    try:
        return authenticator.authenticate(payload.access_code)
    except HubError as exc:
        _raise_http(exc)


@router.get("/sessions/{session_id}", response_model=HubSession, status_code=status.HTTP_200_OK)
def get_session(session_id: str, service: HubService = Depends(get_hub_service)) -> HubSession:
    try:
        return service.get_session(session_id)
    except HubError as exc:
        _raise_http(exc)


@router.post(
    "/sessions/{session_id}/worlds/{world_index}/start",
    response_model=WorldStartPayload,
    status_code=status.HTTP_200_OK,
)
def start_world(
    session_id: str,
    world_index: int,
    payload: Optional[StartWorldRequest] = None,
    service: HubService = Depends(get_hub_service),
) -> WorldStartPayload:
    replay = payload.replay if payload is not None else False
    try:
        receipt = service.start_world(session_id, world_index, replay=replay)
    except HubError as exc:
        _raise_http(exc)
    return WorldStartPayload.from_receipt(receipt)


@router.post(
    "/sessions/{session_id}/worlds/{world_index}/complete",
    response_model=WorldCompletionPayload,
    status_code=status.HTTP_200_OK,
)
def complete_world(
    session_id: str,
    world_index: int,
    result: WorldResult,
    service: HubService = Depends(get_hub_service),
) -> WorldCompletionPayload:
    try:
        receipt = service.complete_world(session_id, world_index, result)
    except HubError as exc:
        _raise_http(exc)
    return WorldCompletionPayload.from_receipt(receipt)


@router.get("/sessions/{session_id}/export", response_model=HubExportPayload, status_code=status.HTTP_200_OK)
def export_session(session_id: str, store: HubSessionStore = Depends(get_hub_store)) -> HubExportPayload:
    try:
        return HubExportPayload.model_validate(store.export(session_id))
    except HubError as exc:
        _raise_http(exc)


@router.get("/users/{user_id}/export", response_model=UserExportPayload, status_code=status.HTTP_200_OK)
def export_user(user_id: str, store: HubSessionStore = Depends(get_hub_store)) -> UserExportPayload:
    """Data-portability export of every hub session tied to one learner."""
    try:
        return UserExportPayload.model_validate(store.export_user(user_id))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except HubError as exc:
        _raise_http(exc)


__all__ = ["router", "get_achievement_engine", "get_authenticator", "get_hub_service"]

"""Exception taxonomy shared by the hub services and REST routes."""

from __future__ import annotations

from typing import Optional


class HubError(RuntimeError):
    """Base class for failures raised by the world hub core."""


class AuthenticationError(HubError):
    """The access code cannot be exchanged for a hub session."""


class InvalidCodeError(AuthenticationError):
    def __init__(self, message: str = "Access code is not recognised.") -> None:
        super().__init__(message)


class ExpiredCodeError(AuthenticationError):
    def __init__(self, session_id: str, message: str = "Access code has expired.") -> None:
        super().__init__(message)
        self.session_id = session_id


class SessionNotFoundError(HubError, LookupError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Hub session '{session_id}' does not exist.")
        self.session_id = session_id


class UnknownWorldError(HubError, LookupError):
    def __init__(self, world_index: int) -> None:
        super().__init__(f"World {world_index} is not part of the catalog.")
        self.world_index = world_index


class WorldLockedError(HubError):
    """Raised when a client asks to enter a world whose prerequisites are unmet."""

    def __init__(self, world_index: int, missing_prerequisites: Optional[list[int]] = None) -> None:
        missing = sorted(missing_prerequisites or [])
        message = f"World {world_index} is locked."
        if missing:
            joined = ", ".join(str(index) for index in missing)
            message = f"World {world_index} is locked until world(s) {joined} are completed."
        super().__init__(message)
        self.world_index = world_index
        self.missing_prerequisites = missing


class WorldTransitionError(HubError):
    """The requested status change is not a legal progression step."""

    def __init__(self, world_index: int, current_status: str, message: str) -> None:
        super().__init__(message)
        self.world_index = world_index
        self.current_status = current_status


class DuplicateAccessCodeError(HubError):
    def __init__(self) -> None:
        super().__init__("Access code is already bound to another session.")


class StaleReadError(HubError):
    """A synchronizer refresh could not reach the session store."""

    def __init__(self, session_id: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Refresh of hub session '{session_id}' failed; serving cached copy.")
        self.session_id = session_id
        self.cause = cause


class StoreUnavailableError(HubError):
    """The session store could not commit a mutation."""

    def __init__(self, message: str = "Session store is unavailable.", *, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class ConcurrentUpdateError(HubError):
    """Optimistic version checks kept failing for a single mutation."""

    def __init__(self, session_id: str, attempts: int) -> None:
        super().__init__(
            f"Hub session '{session_id}' changed concurrently {attempts} times; mutation abandoned."
        )
        self.session_id = session_id
        self.attempts = attempts


__all__ = [
    "AuthenticationError",
    "ConcurrentUpdateError",
    "DuplicateAccessCodeError",
    "ExpiredCodeError",
    "HubError",
    "InvalidCodeError",
    "SessionNotFoundError",
    "StaleReadError",
    "StoreUnavailableError",
    "UnknownWorldError",
    "WorldLockedError",
    "WorldTransitionError",
]

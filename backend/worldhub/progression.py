"""World progression state machine.

Each world moves ``locked -> available -> in_progress -> completed``. A
completed world may re-enter ``in_progress`` through an explicit replay.
Unlocks are recomputed after every completion so worlds finished out of order
on different devices converge to the same statuses.

The functions here operate on the working copy handed out by
``HubSessionStore.mutate``; they change it in place and never touch the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from .errors import UnknownWorldError, WorldLockedError, WorldTransitionError
from .hub_state import HubSession, WorldCompletionStatus, WorldStatus
from .world_catalog import WorldCatalog, WorldDefinition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionOutcome:
    world_index: int
    previous_status: WorldStatus
    status: WorldStatus
    replayed: bool = False
    unlocked_worlds: Tuple[int, ...] = ()

    @property
    def changed(self) -> bool:
        return self.previous_status != self.status or bool(self.unlocked_worlds)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def initial_world_statuses(catalog: WorldCatalog) -> List[WorldCompletionStatus]:
    """Fresh statuses: worlds without prerequisites are available, the rest locked."""
    return [
        WorldCompletionStatus(
            world_index=definition.index,
            world_id=definition.world_id,
            status="available" if not definition.prerequisite_world_indices else "locked",
        )
        for definition in catalog.definitions()
    ]


def ensure_world_entries(session: HubSession, catalog: WorldCatalog) -> List[int]:
    """Add statuses for catalog worlds the record does not know yet."""
    known = {entry.world_index for entry in session.worlds}
    added: List[int] = []
    for status in initial_world_statuses(catalog):
        if status.world_index not in known:
            session.worlds.append(status)
            added.append(status.world_index)
    if added:
        session.worlds.sort(key=lambda entry: entry.world_index)
        recompute_unlocks(session, catalog)
    return added


def _require_definition(catalog: WorldCatalog, world_index: int) -> WorldDefinition:
    definition = catalog.get_definition(world_index)
    if definition is None:
        raise UnknownWorldError(world_index)
    return definition


def missing_prerequisites(session: HubSession, definition: WorldDefinition) -> List[int]:
    missing: List[int] = []
    for prerequisite in sorted(definition.prerequisite_world_indices):
        try:
            entry = session.world(prerequisite)
        except UnknownWorldError:
            missing.append(prerequisite)
            continue
        if not entry.ever_completed:
            missing.append(prerequisite)
    return missing


def recompute_unlocks(session: HubSession, catalog: WorldCatalog) -> List[int]:
    """Promote every locked world whose prerequisites have all been completed.

    Runs to a fixed point so the result does not depend on the order in which
    prerequisite completions arrived. Unlocks are never revoked.
    """
    unlocked: List[int] = []
    changed = True
    while changed:
        changed = False
        for entry in session.worlds:
            if entry.status != "locked":
                continue
            definition = catalog.get_definition(entry.world_index)
            if definition is None:
                continue
            if missing_prerequisites(session, definition):
                continue
            entry.status = "available"
            unlocked.append(entry.world_index)
            changed = True
    return unlocked


def start_world(
    session: HubSession,
    world_index: int,
    *,
    catalog: WorldCatalog,
    replay: bool = False,
    now: Optional[datetime] = None,
) -> TransitionOutcome:
    definition = _require_definition(catalog, world_index)
    entry = session.world(world_index)
    previous = entry.status
    moment = now or _now()

    if previous == "locked":
        raise WorldLockedError(world_index, missing_prerequisites(session, definition))

    if previous == "in_progress":
        session.current_world_index = world_index
        return TransitionOutcome(world_index=world_index, previous_status=previous, status=previous)

    if previous == "completed":
        if not replay:
            raise WorldTransitionError(
                world_index,
                previous,
                f"World {world_index} is already completed; request a replay to enter it again.",
            )
        entry.status = "in_progress"
        entry.replay_count += 1
        entry.started_at = moment
        session.current_world_index = world_index
        logger.debug("World %s re-entered for replay #%s", world_index, entry.replay_count)
        return TransitionOutcome(
            world_index=world_index,
            previous_status=previous,
            status=entry.status,
            replayed=True,
        )

    entry.status = "in_progress"
    entry.started_at = moment
    session.current_world_index = world_index
    return TransitionOutcome(world_index=world_index, previous_status=previous, status=entry.status)


def complete_world(
    session: HubSession,
    world_index: int,
    *,
    catalog: WorldCatalog,
    now: Optional[datetime] = None,
) -> TransitionOutcome:
    """Mark a world completed and unlock its dependents.

    Accepted from ``available`` (implicit start), ``in_progress`` and
    ``completed``; the last covers a second device finishing the same world.
    """
    definition = _require_definition(catalog, world_index)
    entry = session.world(world_index)
    previous = entry.status
    moment = now or _now()

    if previous == "locked":
        raise WorldLockedError(world_index, missing_prerequisites(session, definition))

    if entry.started_at is None:
        entry.started_at = moment
    entry.status = "completed"
    entry.completed_at = moment
    unlocked = recompute_unlocks(session, catalog)
    return TransitionOutcome(
        world_index=world_index,
        previous_status=previous,
        status=entry.status,
        unlocked_worlds=tuple(unlocked),
    )


__all__ = [
    "TransitionOutcome",
    "complete_world",
    "ensure_world_entries",
    "initial_world_statuses",
    "missing_prerequisites",
    "recompute_unlocks",
    "start_world",
]

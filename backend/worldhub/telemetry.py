"""Analytics events derived from hub state transitions.

``emit_event`` writes the ``TELEMETRY`` log line on the caller's thread and
hands listener delivery to a single background worker, so a slow analytics
sink or audit write never holds up a learner's request. One worker keeps
delivery in emission order. ``flush`` waits for queued deliveries and is used
on shutdown and in tests.
"""

from __future__ import annotations

import json
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

logger = logging.getLogger("worldhub.telemetry")

Listener = Callable[["TelemetryEvent"], None]


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]


_listeners: List[Listener] = []
_pending: Set["Future[None]"] = set()
_lock = RLock()
_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hub-telemetry")


def register_listener(listener: Listener) -> None:
    """Register an in-process listener (analytics sinks, audit pipeline, tests)."""
    with _lock:
        if listener not in _listeners:
            _listeners.append(listener)


def unregister_listener(listener: Listener) -> None:
    with _lock:
        if listener in _listeners:
            _listeners.remove(listener)


def clear_listeners() -> None:
    """Remove all registered listeners. Mainly used to reset test state."""
    with _lock:
        _listeners.clear()


def emit_event(name: str, **fields: Any) -> None:
    """Log the event and queue it for listeners; never waits for delivery."""
    payload = _sanitize(fields)
    event = TelemetryEvent(name=name, payload=payload)

    structured = {"event": name, **payload}
    logger.info("TELEMETRY %s", json.dumps(structured, default=_json_default))

    with _lock:
        listeners = list(_listeners)
    if listeners:
        _dispatch(event, listeners)


def flush(timeout: Optional[float] = 5.0) -> bool:
    """Block until queued deliveries finish; ``False`` if ``timeout`` ran out."""
    deadline = None if timeout is None else time.monotonic() + timeout
    while True:
        with _lock:
            pending = list(_pending)
        if not pending:
            return True
        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        _, not_done = wait(pending, timeout=remaining)
        if not_done:
            logger.warning("Telemetry flush timed out with %s deliveries outstanding", len(not_done))
            return False


def _dispatch(event: TelemetryEvent, listeners: Sequence[Listener]) -> None:
    try:
        future = _executor.submit(_deliver, event, tuple(listeners))
    except RuntimeError:
        # Executor already shut down during interpreter exit.
        logger.warning("Dropping telemetry event %s; delivery worker is stopped", event.name)
        return
    with _lock:
        _pending.add(future)
    future.add_done_callback(_forget)


def _deliver(event: TelemetryEvent, listeners: Sequence[Listener]) -> None:
    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", event.name)


def _forget(future: "Future[None]") -> None:
    with _lock:
        _pending.discard(future)


def _sanitize(fields: Dict[str, Any]) -> Dict[str, Any]:
    sanitized: Dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, datetime):
            sanitized[key] = value.isoformat()
        elif isinstance(value, (set, frozenset)):
            sanitized[key] = sorted(value)
        else:
            sanitized[key] = value
    return sanitized


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


__all__ = [
    "TelemetryEvent",
    "clear_listeners",
    "emit_event",
    "flush",
    "register_listener",
    "unregister_listener",
]

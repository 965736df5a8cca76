"""Engine and transaction scopes for the SQL-backed hub session store.

Two kinds of writers share the engine: request threads committing session
compare-and-swap updates, and the telemetry worker appending audit rows. On
SQLite that means waiting on the database lock instead of failing, and an
in-memory database must be a single shared connection or each thread would
see its own empty schema.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import Settings, get_settings
from .monitoring import instrument_engine

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker[Session]] = None


def _is_memory_sqlite(database_url: str) -> bool:
    url = make_url(database_url)
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def engine_options(settings: Settings) -> Dict[str, Any]:
    """Keyword arguments for ``create_engine`` given the configured hub database."""
    database_url = settings.database_url
    if not database_url:
        raise RuntimeError("HUB_DATABASE_URL must be configured before using the database.")

    options: Dict[str, Any] = {"echo": settings.database_echo, "future": True}
    if make_url(database_url).get_backend_name() == "sqlite":
        options["connect_args"] = {
            "check_same_thread": False,
            "timeout": settings.database_busy_timeout_seconds,
        }
        if _is_memory_sqlite(database_url):
            options["poolclass"] = StaticPool
    else:
        options["pool_pre_ping"] = True
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow
    return options


def get_engine() -> Engine:
    global _engine, _session_factory
    if _engine is None:
        settings = get_settings()
        options = engine_options(settings)
        _engine = create_engine(settings.database_url, **options)
        instrument_engine(_engine)
        # Committed snapshots are handed out as domain copies, so rows never need reloading.
        _session_factory = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
        logger.info("Hub store engine ready (%s)", _engine.url.render_as_string(hide_password=True))
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        get_engine()
    assert _session_factory is not None
    return _session_factory


@contextmanager
def session_scope(*, commit: bool = True) -> Generator[Session, None, None]:
    """One store transaction.

    Reads pass ``commit=False``. Write scopes commit when the body finishes;
    any exception rolls the scope back before it propagates.
    """
    session = get_session_factory()()
    try:
        yield session
        if commit:
            session.commit()
    except Exception:  # noqa: BLE001
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engine() -> None:
    """Drop the engine so the next call rebuilds it from fresh settings."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


__all__ = [
    "dispose_engine",
    "engine_options",
    "get_engine",
    "get_session_factory",
    "session_scope",
]

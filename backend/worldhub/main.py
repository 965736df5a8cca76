import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from . import telemetry
from . import telemetry_pipeline  # noqa: F401  registers the audit listener
from .config import Settings, get_settings
from .db.monitoring import get_pool_snapshot
from .db.session import get_engine
from .hub_routes import router as hub_router
from .logging_config import configure_logging
from .world_catalog import world_catalog


configure_logging()
logger = logging.getLogger(__name__)
app = FastAPI(title="World Hub Backend", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(hub_router)

settings_snapshot = get_settings()
logger.info("Hub backend starting with %s store backend", settings_snapshot.hub_store_backend)
logger.info("World catalog loaded with %s worlds", world_catalog.world_count)


@app.on_event("shutdown")
def drain_telemetry() -> None:
    if not telemetry.flush(timeout=5.0):
        logger.warning("Shutting down with undelivered telemetry events")


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    return {"status": "ok", "store_backend": settings.hub_store_backend}


@app.get("/healthz/database")
def database_health(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        logger.warning("Database health check failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return {
        "status": "ok",
        "store_backend": settings.hub_store_backend,
        "pool": get_pool_snapshot(engine),
    }

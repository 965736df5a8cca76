"""Print one JSON line with hub store pool counters and session totals."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from sqlalchemy import func, select

from worldhub.db.models import HubAuditEventModel, HubSessionModel
from worldhub.db.monitoring import get_pool_snapshot
from worldhub.db.session import get_engine, session_scope

LOGGER = logging.getLogger("worldhub.db_metrics")


def collect() -> dict:
    engine = get_engine()
    with session_scope(commit=False) as session:
        sessions = session.execute(select(func.count()).select_from(HubSessionModel)).scalar_one()
        audit_events = session.execute(select(func.count()).select_from(HubAuditEventModel)).scalar_one()
        max_version = session.execute(select(func.max(HubSessionModel.version))).scalar_one()
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "pool": get_pool_snapshot(engine),
        "hub_sessions": sessions,
        "hub_audit_events": audit_events,
        "max_session_version": max_version or 0,
    }


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    try:
        print(json.dumps(collect()))
        return 0
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Failed to collect hub store metrics: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())

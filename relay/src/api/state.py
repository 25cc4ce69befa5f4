"""
GET /v1/state endpoint returning the last known battery state.

Reads one snapshot from the LastStateStore, so all fields come from the same
sample even while the pipeline is writing. Time fields use the same -1
"not applicable" sentinel as the publish wire format.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-011)

TODO:
- None
"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, Request

from relay.src.models import to_wire

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["state"])


@router.get("/state")
async def last_state(request: Request) -> dict:
    """Return the most recent BatteryState with connection metadata.

    Returns:
        dict: Wire fields plus ``mode``, ``timestamp``, ``source_connected``,
        ``samples_received`` and ``alert_active``.

    Raises:
        HTTPException: 404 if no sample has been processed yet.
    """
    components = request.app.state.components
    settings = request.app.state.settings

    reading = components.store.snapshot()
    if reading is None:
        raise HTTPException(status_code=404, detail="No data available yet.")

    now = datetime.now(tz=UTC)
    return {
        **to_wire(reading.state),
        "mode": reading.state.mode.value,
        "timestamp": reading.timestamp.isoformat(),
        "source_connected": not components.store.is_stale(now, settings.stale_after_s),
        "samples_received": components.store.samples_received,
        "alert_active": components.alerts.alert_active,
    }

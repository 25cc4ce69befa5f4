"""
Subscriber management endpoints for low-battery alerts.

- PUT /v1/subscribers/{subscriber_id}: subscribe; 409 when at capacity.
- DELETE /v1/subscribers/{subscriber_id}: unsubscribe; idempotent.
- GET /v1/subscribers: current count and capacity.

Subscriber ids are Telegram chat ids. Subscribing never affects the alert
state itself.

CHANGELOG:
- 2026-10-16: Initial creation (STORY-012)

TODO:
- None
"""

import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["subscribers"])

SubscriberId = Annotated[str, Path(min_length=1, max_length=64)]


@router.get("/subscribers")
async def subscriber_summary(request: Request) -> dict:
    """Return subscriber count and capacity."""
    alerts = request.app.state.components.alerts
    return {"count": alerts.subscriber_count(), "capacity": alerts.capacity}


@router.put("/subscribers/{subscriber_id}")
async def subscribe(request: Request, subscriber_id: SubscriberId) -> dict:
    """Subscribe a chat to low-battery alerts.

    Raises:
        HTTPException: 409 if the subscriber cap has been reached.
    """
    alerts = request.app.state.components.alerts
    if not alerts.subscribe(subscriber_id):
        raise HTTPException(
            status_code=409,
            detail=f"Subscriber limit of {alerts.capacity} reached.",
        )
    return {"subscribed": True, "count": alerts.subscriber_count()}


@router.delete("/subscribers/{subscriber_id}")
async def unsubscribe(request: Request, subscriber_id: SubscriberId) -> dict:
    """Unsubscribe a chat; ``unsubscribed`` is False if it was not subscribed."""
    alerts = request.app.state.components.alerts
    return {"unsubscribed": alerts.unsubscribe(subscriber_id)}

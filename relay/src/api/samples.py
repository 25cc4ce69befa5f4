"""
POST /v1/samples endpoint for raw battery readings.

Accepts ``{"samples": [{"voltage": ..., "current": ..., "ts": ...}, ...]}``.
Each sample is parsed on its own: a malformed one (missing or non-numeric
voltage/current, bad timestamp) is dropped and counted, and the rest are
queued in order for the ingest pipeline. Estimation, gating and alerting
happen in the pipeline, not in the request.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-010)

TODO:
- None
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from relay.src.errors import MalformedSampleError
from relay.src.models import parse_sample

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["samples"])


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class SamplesPayload(BaseModel):
    """Batch payload; items are validated one by one in the handler."""

    samples: list[Any]


class SamplesResponse(BaseModel):
    """Response from the samples endpoint."""

    accepted: int
    rejected: int


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------


@router.post("/samples", response_model=SamplesResponse)
async def ingest_samples(request: Request) -> SamplesResponse:
    """Queue raw samples for the ingest pipeline.

    Args:
        request: The incoming FastAPI request.

    Returns:
        SamplesResponse: Counts of queued and dropped samples.

    Raises:
        HTTPException: 413 if the batch exceeds MAX_SAMPLES_PER_REQUEST.
        HTTPException: 503 if the ingest queue is full.
    """
    settings = request.app.state.settings
    queue: asyncio.Queue = request.app.state.queue

    body = await request.body()
    try:
        payload = SamplesPayload.model_validate_json(body)
    except ValidationError as exc:
        return JSONResponse(
            status_code=422,
            content={"detail": exc.errors(include_url=False, include_context=False)},
        )

    if len(payload.samples) > settings.max_samples_per_request:
        raise HTTPException(
            status_code=413,
            detail=f"Batch size {len(payload.samples)} exceeds limit of "
            f"{settings.max_samples_per_request}.",
        )

    received_at = datetime.now(tz=UTC)
    accepted = 0
    rejected = 0
    for idx, item in enumerate(payload.samples):
        try:
            sample = parse_sample(item, received_at=received_at)
        except MalformedSampleError as exc:
            rejected += 1
            logger.warning("Dropping malformed sample at position %d: %s", idx, exc)
            continue

        try:
            queue.put_nowait(sample)
        except asyncio.QueueFull:
            logger.warning(
                "Ingest queue full, rejecting remaining %d sample(s)",
                len(payload.samples) - idx,
            )
            raise HTTPException(
                status_code=503,
                detail=f"Ingest queue full; {accepted} sample(s) accepted before overflow.",
            ) from None
        accepted += 1

    return SamplesResponse(accepted=accepted, rejected=rejected)

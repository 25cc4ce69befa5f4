"""
Health check endpoints for the relay API.

- GET /health: always ``{"status": "ok"}`` with HTTP 200 (process liveness).
- GET /healthz: ``{"ok": true}`` with 200 while samples keep arriving,
  ``{"ok": false}`` with 503 once the source has been quiet for longer
  than STALE_AFTER_S (or nothing has arrived yet).

No authentication is required. These endpoints are intended for Docker
HEALTHCHECK and internal monitoring only.

CHANGELOG:
- 2026-10-15: Add /healthz source staleness check
- 2026-10-15: Initial creation (STORY-009)

TODO:
- None
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Return a simple health status.

    Returns:
        dict: ``{"status": "ok"}`` indicating the service is alive.
    """
    return {"status": "ok"}


@router.get("/healthz")
async def healthz(request: Request) -> JSONResponse:
    """Report whether the telemetry source is still delivering samples."""
    store = request.app.state.components.store
    stale_after_s = request.app.state.settings.stale_after_s
    ok = not store.is_stale(datetime.now(tz=UTC), stale_after_s)
    return JSONResponse(status_code=200 if ok else 503, content={"ok": ok})

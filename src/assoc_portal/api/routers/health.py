"""
assoc_portal.api.routers.health

Health and readiness endpoints.

Responsibilities:
- Provide a liveness check (`/healthz`).
- Provide a readiness check (`/readyz`) that verifies the backend store is reachable.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.status import HTTP_503_SERVICE_UNAVAILABLE

from assoc_portal.backend.errors import ConnectivityError
from assoc_portal.observability.logging import get_logger

log = get_logger(__name__)

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", response_model=None)
async def readyz(request: Request) -> dict[str, str] | JSONResponse:
    backend = request.app.state.backend  # type: ignore[attr-defined]
    try:
        await backend.ping()
    except ConnectivityError as e:
        log.warning("readiness_failed", error=str(e))
        return JSONResponse(
            {"status": "unavailable", "detail": "connection failed"},
            status_code=HTTP_503_SERVICE_UNAVAILABLE,
        )
    return {"status": "ready", "clients": str(len(request.app.state.registry))}

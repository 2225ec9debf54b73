"""Health check routes — liveness, readiness, and general health."""

from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from handoff.api.schemas.common import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Application health check endpoint."""
    settings = getattr(request.app.state, "settings", None)
    storage = getattr(request.app.state, "storage", None)
    return HealthResponse(
        status="ok",
        environment=settings.app_env if settings else "unknown",
        storage=storage.engine if storage is not None else "not_configured",
    )


@router.get("/health/live")
async def liveness_probe() -> dict[str, Any]:
    """Liveness probe — is the process alive and responding?"""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_probe(request: Request) -> Any:
    """Readiness probe — can the storage engine be reached?"""
    checks: dict[str, Any] = {}
    overall_ready = True

    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        checks["storage"] = {"status": "not_configured"}
        overall_ready = False
    else:
        start = time.perf_counter()
        reachable = storage.ping()
        elapsed_ms = (time.perf_counter() - start) * 1000
        checks["storage"] = {
            "status": "ok" if reachable else "error",
            "engine": storage.engine,
            "response_time_ms": round(elapsed_ms, 1),
        }
        overall_ready = reachable

    body = {"status": "ready" if overall_ready else "not_ready", "checks": checks}
    if not overall_ready:
        return JSONResponse(content=body, status_code=503)
    return body

"""Health check endpoints."""

from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])

_START_TIME = time.monotonic()


@router.get("/api/health")
async def health() -> dict[str, str]:
    """Basic health check -- always returns quickly."""
    return {"status": "ok"}


@router.get("/api/health/detailed")
async def health_detailed(request: Request) -> dict[str, Any]:
    """Detailed health check with provider status."""
    from toolstream import __version__

    checks: dict[str, Any] = {
        "status": "ok",
        "version": __version__,
        "uptime_seconds": round(time.monotonic() - _START_TIME, 1),
        "components": {},
    }

    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        checks["status"] = "degraded"
        checks["components"]["provider"] = {"status": "not configured"}
        return checks

    healthy = await pipeline.provider.health_check()
    checks["components"]["provider"] = {
        "id": pipeline.provider.provider_id,
        "status": "ok" if healthy else "unhealthy",
    }
    if not healthy:
        checks["status"] = "degraded"

    return checks

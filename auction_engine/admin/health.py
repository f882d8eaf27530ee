"""Admin health endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from ..timing.timestamps import format_timestamp

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health")
async def health(request: Request) -> dict[str, int | str | bool]:
    start_time = getattr(request.app.state, "start_time", None)
    if start_time:
        uptime = int((datetime.now(timezone.utc) - start_time).total_seconds())
    else:
        uptime = 0
    settings = request.app.state.server_config
    scheduler = getattr(request.app.state, "settlement_scheduler", None)
    return {
        "status": "healthy",
        "uptime_seconds": uptime,
        "version": request.app.version,
        "engine_time": format_timestamp(request.app.state.clock.now()),
        "store_backend": settings.store.backend,
        "settlement_scheduler": bool(scheduler and scheduler.running),
    }

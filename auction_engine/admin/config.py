"""Expose currently loaded server config for debugging."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..config import ServerConfig
from ..timing.timestamps import format_timestamp

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_config(request: Request) -> ServerConfig:
    return request.app.state.server_config


@router.get("/config")
async def config(
    request: Request,
    config: ServerConfig = Depends(_get_config),
) -> dict:
    season = config.season
    return {
        "version": request.app.version,
        "storage_backend": config.store.backend,
        "operation_timeout_ms": config.store.operation_timeout_ms,
        "clock_mode": config.clock.mode,
        "season": {
            "listing_start": format_timestamp(season.listing_start),
            "listing_end": format_timestamp(season.listing_end),
            "default_expiry": format_timestamp(season.default_expiry),
            "bidding_start": format_timestamp(season.bidding_start),
            "bidding_end": format_timestamp(season.bidding_end),
        },
        "pricing": {
            "min_increment": str(config.pricing.min_increment),
            "manufactured_ratio": str(config.pricing.manufactured_ratio),
            "purchased_ratio": str(config.pricing.purchased_ratio),
        },
        "catalog_backend": config.catalog.backend,
        "customers_backend": config.customers.backend,
        "settlement_interval_seconds": config.settlement.interval_seconds,
    }

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, status

from .admin import config as admin_config
from .admin import health as admin_health
from .admin import stats as admin_stats
from .bidding.engine import BiddingEngine
from .catalog.gateway import build_catalog
from .config import ServerConfig, get_server_config
from .customers.directory import build_customer_directory
from .errors import (
    AlreadyTerminal,
    AuctionError,
    Conflict,
    InvalidArgument,
    ListingCancelled,
    NotFound,
    StoreTimeout,
    UpstreamUnavailable,
)
from .history.query import HistoryService
from .listings.models import format_money
from .listings.service import ListingService
from .settlement.job import SettlementJob, SettlementResult
from .settlement.scheduler import SettlementScheduler
from .storage import build_storage
from .timing.clock import build_clock
from .timing.timestamps import coerce_timestamp, format_timestamp
from .validation.validator import SchemaRegistry, get_schema_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    server_config = get_server_config()
    logging.basicConfig(
        level=server_config.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    schema_registry = get_schema_registry()
    clock = build_clock(server_config.clock)
    storage = build_storage(server_config)
    catalog = build_catalog(server_config.catalog)
    customers = build_customer_directory(server_config.customers)
    timeout_ms = server_config.store.operation_timeout_ms
    listing_service = ListingService(
        storage=storage,
        catalog=catalog,
        season=server_config.season,
        pricing=server_config.pricing,
        timeout_ms=timeout_ms,
    )
    bidding_engine = BiddingEngine(
        storage=storage,
        catalog=catalog,
        customers=customers,
        clock=clock,
        season=server_config.season,
        pricing=server_config.pricing,
        timeout_ms=timeout_ms,
    )
    settlement_job = SettlementJob(
        storage=storage,
        catalog=catalog,
        clock=clock,
        timeout_ms=timeout_ms,
    )
    history_service = HistoryService(storage=storage)
    scheduler: SettlementScheduler | None = None
    if server_config.settlement.interval_seconds > 0:
        scheduler = SettlementScheduler(settlement_job, server_config.settlement.interval_seconds)
        scheduler.start()

    app.state.server_config = server_config
    app.state.schema_registry = schema_registry
    app.state.clock = clock
    app.state.storage = storage
    app.state.catalog = catalog
    app.state.customers = customers
    app.state.listing_service = listing_service
    app.state.bidding_engine = bidding_engine
    app.state.settlement_job = settlement_job
    app.state.settlement_scheduler = scheduler
    app.state.history_service = history_service
    app.state.start_time = datetime.now(timezone.utc)
    logger.info(
        "auction engine ready: store=%s clock=%s settlement_interval=%ss",
        server_config.store.backend,
        server_config.clock.mode,
        server_config.settlement.interval_seconds,
    )

    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown()
        await storage.close()
        await catalog.close()
        await customers.close()


app = FastAPI(
    title="Auction Bidding Engine",
    version="1.0.0",
    docs_url="/docs",
    lifespan=lifespan,
)

app.include_router(admin_health.router)
app.include_router(admin_stats.router)
app.include_router(admin_config.router)


# Dependency helpers ---------------------------------------------------------


def get_server_settings(request: Request) -> ServerConfig:
    return request.app.state.server_config


def get_schema_service(request: Request) -> SchemaRegistry:
    return request.app.state.schema_registry


def get_listing_service(request: Request) -> ListingService:
    return request.app.state.listing_service


def get_bidding_engine(request: Request) -> BiddingEngine:
    return request.app.state.bidding_engine


def get_settlement_job(request: Request) -> SettlementJob:
    return request.app.state.settlement_job


def get_history_service(request: Request) -> HistoryService:
    return request.app.state.history_service


# Error mapping --------------------------------------------------------------

_DEFAULT_ERROR_STATUS = 422

_STATUS_BY_ERROR: tuple[tuple[type[AuctionError], int], ...] = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (Conflict, status.HTTP_409_CONFLICT),
    (AlreadyTerminal, status.HTTP_409_CONFLICT),
    (ListingCancelled, status.HTTP_409_CONFLICT),
    (StoreTimeout, status.HTTP_503_SERVICE_UNAVAILABLE),
    (UpstreamUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def to_http_error(exc: AuctionError) -> HTTPException:
    status_code = next(
        (code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)),
        _DEFAULT_ERROR_STATUS,
    )
    return HTTPException(status_code=status_code, detail={"error": exc.kind, "message": str(exc)})


def validate_payload(schemas: SchemaRegistry, schema_name: str, payload: Any) -> None:
    try:
        schemas.check(schema_name, payload)
    except InvalidArgument as exc:
        raise to_http_error(exc) from exc


# Routes ---------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root(settings: ServerConfig = Depends(get_server_settings)) -> dict[str, Any]:
    return {
        "service": "auction-engine",
        "version": app.version,
        "store": {
            "backend": settings.store.backend,
            "operation_timeout_ms": settings.store.operation_timeout_ms,
        },
        "season": {
            "bidding_start": format_timestamp(settings.season.bidding_start),
            "bidding_end": format_timestamp(settings.season.bidding_end),
        },
    }


@app.post("/auction/listings", tags=["listings"], status_code=status.HTTP_201_CREATED)
async def add_listing(
    payload: dict[str, Any] = Body(...),
    schemas: SchemaRegistry = Depends(get_schema_service),
    listings: ListingService = Depends(get_listing_service),
) -> dict[str, Any]:
    validate_payload(schemas, "listing_request", payload)
    try:
        listing = await listings.create_listing(
            payload["item_id"],
            expiry=payload.get("expiry"),
            initial_price=payload.get("initial_price"),
        )
    except AuctionError as exc:
        raise to_http_error(exc) from exc
    return listing.to_record()


@app.get("/auction/listings/{item_id}", tags=["listings"])
async def get_listing(
    item_id: int,
    listings: ListingService = Depends(get_listing_service),
) -> dict[str, Any]:
    try:
        listing, bids = await listings.get_listing(item_id)
    except AuctionError as exc:
        raise to_http_error(exc) from exc
    highest = ListingService.highest_amount(bids)
    return {
        **listing.to_record(),
        "highest_bid": format_money(highest) if highest is not None else None,
        "bids": [bid.to_record() for bid in bids],
    }


@app.post(
    "/auction/listings/{item_id}/bids",
    tags=["bidding"],
    status_code=status.HTTP_201_CREATED,
)
async def place_bid(
    item_id: int,
    payload: dict[str, Any] = Body(...),
    schemas: SchemaRegistry = Depends(get_schema_service),
    engine: BiddingEngine = Depends(get_bidding_engine),
) -> dict[str, Any]:
    validate_payload(schemas, "bid_request", payload)
    try:
        bid = await engine.place_bid(item_id, payload["bidder_id"], payload.get("amount"))
    except AuctionError as exc:
        raise to_http_error(exc) from exc
    return bid.to_record()


@app.post("/auction/listings/{item_id}/cancel", tags=["listings"])
async def cancel_listing(
    item_id: int,
    listings: ListingService = Depends(get_listing_service),
) -> dict[str, Any]:
    try:
        listing = await listings.cancel_listing(item_id)
    except AuctionError as exc:
        raise to_http_error(exc) from exc
    return listing.to_record()


@app.post("/auction/settlement", tags=["settlement"])
async def settle(
    payload: dict[str, Any] | None = Body(default=None),
    schemas: SchemaRegistry = Depends(get_schema_service),
    job: SettlementJob = Depends(get_settlement_job),
) -> dict[str, Any]:
    payload = payload or {}
    validate_payload(schemas, "settlement_request", payload)
    try:
        now = payload.get("now")
        result = await job.run(coerce_timestamp(now) if now else None)
    except AuctionError as exc:
        raise to_http_error(exc) from exc
    return format_settlement(result)


@app.get("/auction/customers/{customer_id}/history", tags=["history"])
async def history(
    customer_id: int,
    start: str | None = Query(default=None),
    end: str | None = Query(default=None),
    active_only: bool = Query(default=True),
    schemas: SchemaRegistry = Depends(get_schema_service),
    service: HistoryService = Depends(get_history_service),
) -> list[dict[str, Any]]:
    query: dict[str, Any] = {"active_only": active_only}
    if start is not None:
        query["start"] = start
    if end is not None:
        query["end"] = end
    validate_payload(schemas, "history_query", query)
    try:
        entries = await service.list_history(customer_id, start, end, active_only).collect()
    except AuctionError as exc:
        raise to_http_error(exc) from exc
    return [entry.to_record() for entry in entries]


def format_settlement(result: SettlementResult) -> dict[str, Any]:
    return {
        "settled_at": format_timestamp(result.settled_at),
        "transitions": [
            {"item_id": item_id, "status": new_status.value}
            for item_id, new_status in result.transitions
        ],
        "report": [row.to_record() for row in result.rows],
    }

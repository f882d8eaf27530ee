"""Configuration helpers for the auction engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml

from ..timing.timestamps import coerce_timestamp

_CONFIG_DIR = Path(__file__).resolve().parent
_DEFAULT_SERVER_CONFIG = _CONFIG_DIR / "server.yaml"
_DEFAULT_CATALOG = _CONFIG_DIR / "catalog.yaml"
_DEFAULT_CUSTOMERS = _CONFIG_DIR / "customers.yaml"


@dataclass(frozen=True)
class StoreConfig:
    backend: str
    options: Mapping[str, Any]
    operation_timeout_ms: int


@dataclass(frozen=True)
class ClockConfig:
    mode: str
    now: datetime | None = None
    date: str | None = None


@dataclass(frozen=True)
class SeasonConfig:
    listing_start: datetime
    listing_end: datetime
    default_duration: timedelta
    bidding_start: datetime
    bidding_end: datetime

    @property
    def default_expiry(self) -> datetime:
        return self.listing_start + self.default_duration


@dataclass(frozen=True)
class PricingConfig:
    min_increment: Decimal
    manufactured_ratio: Decimal
    purchased_ratio: Decimal


@dataclass(frozen=True)
class DirectoryConfig:
    backend: str
    options: Mapping[str, Any]


@dataclass(frozen=True)
class SettlementConfig:
    interval_seconds: int


@dataclass(frozen=True)
class ServerConfig:
    listen: Mapping[str, Any]
    store: StoreConfig
    clock: ClockConfig
    season: SeasonConfig
    pricing: PricingConfig
    catalog: DirectoryConfig
    customers: DirectoryConfig
    settlement: SettlementConfig
    log_level: str


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    return yaml.safe_load(path.read_text()) or {}


def _directory(section: Mapping[str, Any], default_path: Path) -> DirectoryConfig:
    backend = str(section.get("backend", "static"))
    options = dict(section.get("options") or {})
    if backend == "static":
        options.setdefault("path", str(default_path))
    return DirectoryConfig(backend=backend, options=options)


def parse_server_config(data: Mapping[str, Any]) -> ServerConfig:
    store = data.get("store", {})
    clock = data.get("clock", {})
    season = data.get("season", {})
    pricing = data.get("pricing", {})
    settlement = data.get("settlement", {})
    logging_section = data.get("logging", {})
    raw_now = clock.get("now")
    raw_date = clock.get("date")
    return ServerConfig(
        listen=data.get("listen", {}),
        store=StoreConfig(
            backend=str(store.get("backend", "in_memory")),
            options=dict(store.get("options") or {}),
            operation_timeout_ms=int(store.get("operation_timeout_ms", 2000)),
        ),
        clock=ClockConfig(
            mode=str(clock.get("mode", "system")),
            now=coerce_timestamp(raw_now) if raw_now is not None else None,
            date=str(raw_date) if raw_date is not None else None,
        ),
        season=SeasonConfig(
            listing_start=coerce_timestamp(season.get("listing_start", "2014-11-14T00:00:00Z")),
            listing_end=coerce_timestamp(season.get("listing_end", "2014-11-30T00:00:00Z")),
            default_duration=timedelta(days=int(season.get("default_duration_days", 7))),
            bidding_start=coerce_timestamp(season.get("bidding_start", "2014-11-16T00:00:00Z")),
            bidding_end=coerce_timestamp(season.get("bidding_end", "2014-11-30T00:00:00Z")),
        ),
        pricing=PricingConfig(
            min_increment=Decimal(str(pricing.get("min_increment", "0.05"))),
            manufactured_ratio=Decimal(str(pricing.get("manufactured_ratio", "0.50"))),
            purchased_ratio=Decimal(str(pricing.get("purchased_ratio", "0.75"))),
        ),
        catalog=_directory(
            data.get("catalog", {}),
            Path(os.getenv("AUCTION_CATALOG_PATH", _DEFAULT_CATALOG)),
        ),
        customers=_directory(
            data.get("customers", {}),
            Path(os.getenv("AUCTION_CUSTOMERS_PATH", _DEFAULT_CUSTOMERS)),
        ),
        settlement=SettlementConfig(
            interval_seconds=int(settlement.get("interval_seconds", 0)),
        ),
        log_level=str(logging_section.get("level", "INFO")).upper(),
    )


@lru_cache(maxsize=1)
def get_server_config() -> ServerConfig:
    path = Path(os.getenv("AUCTION_CONFIG_PATH", _DEFAULT_SERVER_CONFIG))
    return parse_server_config(_load_yaml(path))

"""Configuration helpers and service wiring."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Optional

from putwatch.adapters import MarketDataClient, create_client
from putwatch.clock import Clock, utc_now

from .loader import AppSettings, build_settings, get_settings, reset_settings_cache

if TYPE_CHECKING:
    from putwatch.service import PutWatchService

logger = logging.getLogger(__name__)

DEFAULT_MARKET_DATA_PROVIDER = "yfinance"
PROVIDER_ENVIRONMENT_VARIABLE = "MARKET_DATA_PROVIDER"


def get_market_data_client(settings: AppSettings, *, clock: Clock = utc_now) -> MarketDataClient:
    """Return a market data client for the configured (or overridden) provider."""

    provider = os.getenv(PROVIDER_ENVIRONMENT_VARIABLE) or settings.adapter.provider or DEFAULT_MARKET_DATA_PROVIDER
    return create_client(provider, clock=clock, **settings.adapter.settings)


def build_service(
    settings: Optional[AppSettings] = None,
    *,
    client: Optional[MarketDataClient] = None,
    clock: Clock = utc_now,
) -> "PutWatchService":
    """Wire the registry, store, scheduler and cache for one process."""

    from putwatch.cache import ResponseCache
    from putwatch.market import MarketCalendar
    from putwatch.registry import SymbolRegistry
    from putwatch.scheduler import RefreshScheduler
    from putwatch.scoring import PutScoringEngine
    from putwatch.service import PutWatchService
    from putwatch.storage import SQLiteDatabase, SQLiteSnapshotStore

    settings = settings or get_settings()
    sqlite_settings = settings.storage.require_sqlite()
    database = SQLiteDatabase(sqlite_settings.path, sqlite_settings.pragmas)
    registry = SymbolRegistry(database, clock=clock)
    store = SQLiteSnapshotStore(database, clock=clock)
    calendar = MarketCalendar(
        extra_holidays=settings.calendar.extra_holidays,
        use_timezone_database=settings.calendar.use_timezone_database,
    )
    scheduler = RefreshScheduler(
        registry,
        store,
        client or get_market_data_client(settings, clock=clock),
        engine=PutScoringEngine(settings.scoring_dict(), clock=clock),
        calendar=calendar,
        clock=clock,
        fetch_timeout_seconds=settings.scheduler.fetch_timeout_seconds,
        max_consecutive_failures=settings.scheduler.max_consecutive_failures,
    )

    preferred = set(settings.get_watchlist("preferred"))
    for symbol in settings.get_watchlist("default") + sorted(preferred):
        registry.add_or_update(symbol, is_preferred=symbol in preferred)

    logger.info(f"Built service for env={settings.env} with database {database.database}")
    return PutWatchService(registry, store, scheduler, ResponseCache(clock=clock), settings)


__all__ = [
    "AppSettings",
    "DEFAULT_MARKET_DATA_PROVIDER",
    "build_service",
    "build_settings",
    "get_market_data_client",
    "get_settings",
    "reset_settings_cache",
]

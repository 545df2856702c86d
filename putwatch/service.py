"""Read and administrative facade used by the serving layer."""

from __future__ import annotations

import logging
from typing import List, Optional

from putwatch.cache.response import CacheKey, DataKind, ResponseCache
from putwatch.config.loader import AppSettings
from putwatch.models.symbols import normalize_symbol
from putwatch.models.tracking import TrackedSymbol
from putwatch.registry.sqlite import SymbolRegistry
from putwatch.scheduler.service import RefreshOutcome, RefreshScheduler, SchedulerStatus
from putwatch.storage.base import DailyPerformance, HistoricalContract, SnapshotBundle, SnapshotStore, StockSnapshot

logger = logging.getLogger(__name__)

STATUS_CACHE_SYMBOL = "*"


class PutWatchService:
    """Serve ranked snapshots through the response cache and expose admin actions.

    Reads never fetch upstream: they return whatever the scheduler last
    committed, or an empty result when nothing has been stored yet.
    """

    def __init__(
        self,
        registry: SymbolRegistry,
        store: SnapshotStore,
        scheduler: RefreshScheduler,
        cache: ResponseCache,
        settings: AppSettings,
    ) -> None:
        self.registry = registry
        self.store = store
        self.scheduler = scheduler
        self.cache = cache
        self.settings = settings

    def _ttl(self, kind: DataKind) -> float:
        return self.settings.cache.ttl_for(kind)

    def list_tracked_symbols(self) -> List[TrackedSymbol]:
        return self.registry.list_active()

    def get_latest_ranked(self, symbol: str, *, force_refresh: bool = False) -> Optional[SnapshotBundle]:
        symbol = normalize_symbol(symbol)
        return self.cache.get_or_fetch(
            CacheKey(symbol, DataKind.LATEST),
            self._ttl(DataKind.LATEST),
            lambda: self.store.get_latest(symbol),
            force_refresh=force_refresh,
        )

    def get_history(self, symbol: str, limit: int = 10) -> List[StockSnapshot]:
        symbol = normalize_symbol(symbol)
        return self.cache.get_or_fetch(
            CacheKey(symbol, DataKind.HISTORY, str(limit)),
            self._ttl(DataKind.HISTORY),
            lambda: self.store.get_recent(symbol, limit),
        )

    def get_performance(self, symbol: str, days: int = 30) -> List[DailyPerformance]:
        symbol = normalize_symbol(symbol)
        return self.cache.get_or_fetch(
            CacheKey(symbol, DataKind.PERFORMANCE, str(days)),
            self._ttl(DataKind.PERFORMANCE),
            lambda: self.store.get_performance(symbol, days),
        )

    def get_top_contracts(self, symbol: str, days: int = 30, limit: int = 10) -> List[HistoricalContract]:
        symbol = normalize_symbol(symbol)
        return self.cache.get_or_fetch(
            CacheKey(symbol, DataKind.PERFORMANCE, f"top:{days}:{limit}"),
            self._ttl(DataKind.PERFORMANCE),
            lambda: self.store.get_top_contracts(symbol, days, limit),
        )

    def get_snapshot(self, snapshot_id: str) -> Optional[SnapshotBundle]:
        return self.store.get_bundle(snapshot_id)

    def cache_minutes_remaining(self, symbol: str, kind: DataKind = DataKind.LATEST) -> int:
        return self.cache.time_remaining(CacheKey(normalize_symbol(symbol), kind))

    def trigger_refresh(self, symbol: str) -> RefreshOutcome:
        """Refresh ``symbol`` now, registering it first if it was never tracked.

        The round-robin cursor is left where it is, and a symbol that was
        untracked stays out of the rotation.
        """

        symbol = normalize_symbol(symbol)
        if self.registry.get(symbol) is None:
            self.registry.add_or_update(symbol)
        outcome = self.scheduler.refresh_one(symbol, advance_cursor=False)
        self.cache.invalidate(symbol)
        self.cache.invalidate(STATUS_CACHE_SYMBOL)
        logger.info(f"Manual refresh for {symbol}: {'ok' if outcome.success else outcome.error}")
        return outcome

    def get_scheduler_status(self, *, force_refresh: bool = False) -> SchedulerStatus:
        return self.cache.get_or_fetch(
            CacheKey(STATUS_CACHE_SYMBOL, DataKind.STATUS),
            self._ttl(DataKind.STATUS),
            self.scheduler.status,
            force_refresh=force_refresh,
        )

    def track(self, symbol: str, preferred: bool = False) -> TrackedSymbol:
        tracked = self.registry.add_or_update(symbol, is_preferred=preferred)
        self.cache.invalidate(STATUS_CACHE_SYMBOL)
        return tracked

    def untrack(self, symbol: str) -> bool:
        removed = self.registry.deactivate(symbol)
        self.cache.invalidate(STATUS_CACHE_SYMBOL)
        return removed


__all__ = ["PutWatchService", "STATUS_CACHE_SYMBOL"]

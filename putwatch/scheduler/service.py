"""Round-robin refresh of tracked symbols, one upstream refresh per tick."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from putwatch.adapters.base import MarketDataClient
from putwatch.clock import Clock, utc_now
from putwatch.errors import (
    ConfigurationError,
    DataNotAvailable,
    PersistenceError,
    PutWatchError,
    UpstreamFetchError,
    ValidationError,
)
from putwatch.market.calendar import MarketCalendar
from putwatch.models.option import OptionContract
from putwatch.models.symbols import normalize_symbol
from putwatch.models.tracking import RefreshCursor, RefreshStatistics
from putwatch.registry.sqlite import SymbolRegistry
from putwatch.scoring.engine import PutScoringEngine
from putwatch.storage.base import SnapshotStore
from putwatch.timeouts import fetch_deadline, run_with_timeout

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT_SECONDS = 20.0
DEFAULT_MAX_CONSECUTIVE_FAILURES = 3

T = TypeVar("T")


@dataclass
class RefreshOutcome:
    """Result of one refresh attempt."""

    symbol: str
    success: bool
    snapshot_id: Optional[str] = None
    contract_count: int = 0
    error: Optional[str] = None
    skipped: bool = False
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "success": self.success,
            "snapshotId": self.snapshot_id,
            "contractCount": self.contract_count,
            "error": self.error,
            "skipped": self.skipped,
            "durationSeconds": round(self.duration_seconds, 3),
        }


@dataclass
class SchedulerStatus:
    market_open: bool
    cursor: RefreshCursor
    statistics: RefreshStatistics
    checked_at: datetime
    next_open: Optional[datetime] = None
    active_symbols: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "marketOpen": self.market_open,
            "checkedAt": self.checked_at.isoformat(),
            "nextOpen": self.next_open.isoformat() if self.next_open else None,
            "cursor": self.cursor.model_dump(mode="json"),
            "statistics": self.statistics.model_dump(mode="json"),
            "activeSymbols": list(self.active_symbols),
        }


class RefreshScheduler:
    """Refresh one tracked symbol per tick while the market is open.

    The cursor only moves when a refresh succeeds, except that a symbol which
    has failed ``max_consecutive_failures`` times in a row is stepped over so
    the rest of the rotation keeps progressing; it is retried on its next turn.
    ``max_consecutive_failures=0`` keeps retrying the failing symbol forever.

    Ticks within one process are serialized; separate processes sharing a
    database need external mutual exclusion.
    """

    def __init__(
        self,
        registry: Optional[SymbolRegistry],
        store: Optional[SnapshotStore],
        client: Optional[MarketDataClient],
        *,
        engine: Optional[PutScoringEngine] = None,
        calendar: Optional[MarketCalendar] = None,
        clock: Clock = utc_now,
        fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
        max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES,
    ) -> None:
        if registry is None:
            raise ConfigurationError("A symbol registry is required to schedule refreshes")
        if store is None:
            raise ConfigurationError("A snapshot store is required to schedule refreshes")
        if client is None:
            raise ConfigurationError("A market data client is required to schedule refreshes")
        if fetch_timeout_seconds <= 0:
            raise ConfigurationError("fetch_timeout_seconds must be positive")
        self.registry = registry
        self.store = store
        self.client = client
        self.engine = engine or PutScoringEngine(clock=clock)
        self.calendar = calendar or MarketCalendar()
        self._clock = clock
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self.max_consecutive_failures = max(0, max_consecutive_failures)
        self._lock = threading.RLock()

    def is_market_open(self) -> bool:
        return self.calendar.is_open(self._clock())

    def next_symbol(self) -> Optional[str]:
        """Pick the symbol at the cursor's next position without moving the cursor.

        Cycle bookkeeping happens here: wrapping back to position 1 after at
        least one advance completes the current cycle and starts the next one.
        """

        with self._lock:
            active = self.registry.list_active()
            cursor = self.registry.load_cursor()
            updates: Dict[str, Any] = {}

            if not active:
                if cursor.total_symbols or cursor.position:
                    self.registry.save_cursor(cursor.model_copy(update={"total_symbols": 0, "position": 0}))
                logger.info("No active symbols to refresh")
                return None

            total = len(active)
            position = cursor.position
            if total != cursor.total_symbols:
                logger.info(f"Active symbol count changed {cursor.total_symbols} -> {total}")
                position = min(position, total)
                updates.update(total_symbols=total, position=position)

            next_position = (position % total) + 1
            if next_position == 1:
                if position > 0 and cursor.advances_in_cycle > 0:
                    cycle_count = cursor.cycle_count + 1
                    updates.update(cycle_completed_at=self._clock(), cycle_count=cycle_count)
                    updates.update(cycle_started_at=self._clock(), advances_in_cycle=0)
                    logger.info(f"Completed refresh cycle {cycle_count}")
                elif cursor.cycle_started_at is None:
                    updates.update(cycle_started_at=self._clock(), advances_in_cycle=0)

            if updates:
                self.registry.save_cursor(cursor.model_copy(update=updates))

            symbol = active[next_position - 1].symbol
            logger.info(f"Next symbol to refresh: {symbol} (position {next_position}/{total})")
            return symbol

    def refresh_one(self, symbol: str, *, advance_cursor: bool = True) -> RefreshOutcome:
        """Fetch, score and persist ``symbol``.

        Any error raised by the market data client is recorded against the
        symbol and returned as an unsuccessful outcome. Persistence errors
        propagate.
        """

        symbol = normalize_symbol(symbol)
        with self._lock:
            if self.registry.get(symbol) is None:
                raise ValidationError(f"{symbol} is not tracked")

            started = time.monotonic()
            logger.info(f"Starting refresh for symbol: {symbol}")
            try:
                price, contracts = self._fetch(symbol)
            except UpstreamFetchError as exc:
                return self._handle_failure(symbol, str(exc), advance_cursor, started)

            now = self._clock()
            ranked = self.engine.rank(contracts, price, now=now)
            contracts = [item.contract for item in ranked]
            scores = [item.score for item in ranked]
            try:
                snapshot = self.store.save(
                    symbol,
                    price,
                    contracts,
                    scores,
                    source=self.client.name,
                    fetched_at=now,
                )
            except PersistenceError:
                logger.exception(f"Failed to persist snapshot for {symbol}")
                raise
            self.registry.record_success(symbol, now)
            if advance_cursor:
                self._advance(symbol, record_last=True)

            duration = time.monotonic() - started
            logger.info(f"Refreshed {symbol} with {len(contracts)} contracts in {duration:.2f}s")
            return RefreshOutcome(
                symbol=symbol,
                success=True,
                snapshot_id=snapshot.id,
                contract_count=len(contracts),
                duration_seconds=duration,
            )

    def tick(self) -> Optional[RefreshOutcome]:
        """Run one scheduled refresh; ``None`` when closed or nothing is tracked."""

        with self._lock:
            now = self._clock()
            if not self.calendar.is_open(now):
                logger.info(f"Market closed at {now.isoformat()}, skipping refresh")
                return None
            symbol = self.next_symbol()
            if symbol is None:
                return None
            return self.refresh_one(symbol)

    def status(self) -> SchedulerStatus:
        now = self._clock()
        market_open = self.calendar.is_open(now)
        return SchedulerStatus(
            market_open=market_open,
            cursor=self.registry.load_cursor(),
            statistics=self.registry.statistics(),
            checked_at=now,
            next_open=None if market_open else self.calendar.next_open(now),
            active_symbols=[item.symbol for item in self.registry.list_active()],
        )

    def _call_client(self, operation: Callable[[], T]) -> T:
        try:
            with fetch_deadline(self.fetch_timeout_seconds):
                return run_with_timeout(operation, self.fetch_timeout_seconds)
        except PutWatchError:
            raise
        except Exception as exc:  # third-party clients raise arbitrary errors
            raise UpstreamFetchError(f"{type(exc).__name__}: {exc}") from exc

    def _fetch(self, symbol: str) -> tuple[float, List[OptionContract]]:
        price = self._call_client(lambda: self.client.fetch_quote(symbol))
        if price is None or price <= 0:
            raise DataNotAvailable(f"No valid quote for {symbol}: {price!r}")
        chain = self._call_client(lambda: self.client.fetch_option_chain(symbol))
        contracts = [contract for contract in chain if contract.strike > 0]
        if len(contracts) != len(chain):
            logger.debug(f"Dropped {len(chain) - len(contracts)} contracts without a valid strike for {symbol}")
        return float(price), contracts

    def _handle_failure(
        self,
        symbol: str,
        message: str,
        advance_cursor: bool,
        started: float,
    ) -> RefreshOutcome:
        tracked = self.registry.record_failure(symbol, message)
        logger.warning(f"Failed to refresh {symbol}: {message} (consecutive failures: {tracked.error_count})")

        skipped = False
        threshold = self.max_consecutive_failures
        if advance_cursor and threshold and tracked.error_count >= threshold:
            logger.warning(f"Stepping past {symbol} after {tracked.error_count} failures; retrying next cycle")
            self._advance(symbol, record_last=False)
            skipped = True

        return RefreshOutcome(
            symbol=symbol,
            success=False,
            error=message,
            skipped=skipped,
            duration_seconds=time.monotonic() - started,
        )

    def _advance(self, symbol: str, *, record_last: bool) -> None:
        cursor = self.registry.load_cursor()
        total = cursor.total_symbols
        if total == 0:
            return
        updates: Dict[str, Any] = {
            "position": (cursor.position % total) + 1,
            "advances_in_cycle": cursor.advances_in_cycle + 1,
        }
        if record_last:
            updates["last_symbol"] = symbol
        self.registry.save_cursor(cursor.model_copy(update=updates))


__all__ = [
    "DEFAULT_FETCH_TIMEOUT_SECONDS",
    "DEFAULT_MAX_CONSECUTIVE_FAILURES",
    "RefreshOutcome",
    "RefreshScheduler",
    "SchedulerStatus",
]

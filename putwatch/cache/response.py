"""Short-TTL, process-local read-through cache for serving snapshot data."""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, NamedTuple, Optional, TypeVar

from putwatch.clock import Clock, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DataKind(str, Enum):
    LATEST = "latest"
    HISTORY = "history"
    PERFORMANCE = "performance"
    STATUS = "status"


class CacheKey(NamedTuple):
    symbol: str
    kind: DataKind
    variant: str = ""


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    stored_at: datetime
    ttl_seconds: float

    def age_seconds(self, now: datetime) -> float:
        return (now - self.stored_at).total_seconds()

    def is_fresh(self, now: datetime) -> bool:
        return self.age_seconds(now) < self.ttl_seconds


class ResponseCache:
    """Cache fetch results per (symbol, data kind) for a bounded time.

    No cross-process coherency: every process keeps its own entries. The
    fetch callable runs outside the lock, so two concurrent misses on the same
    key may both fetch; the later result wins.
    """

    def __init__(self, *, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._lock = threading.Lock()

    def get_or_fetch(
        self,
        key: CacheKey,
        ttl_seconds: float,
        fetch: Callable[[], T],
        force_refresh: bool = False,
    ) -> T:
        if not force_refresh:
            with self._lock:
                entry = self._entries.get(key)
            if entry is not None and entry.is_fresh(self._clock()):
                return entry.value

        value = fetch()
        with self._lock:
            self._entries[key] = CacheEntry(value=value, stored_at=self._clock(), ttl_seconds=ttl_seconds)
        return value

    def peek(self, key: CacheKey) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(self._clock()):
            return None
        return entry.value

    def time_remaining(self, key: CacheKey) -> int:
        """Whole minutes (rounded up) until ``key`` expires; 0 when absent."""

        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return 0
        remaining = max(0.0, entry.ttl_seconds - entry.age_seconds(self._clock()))
        return math.ceil(remaining / 60)

    def invalidate(self, symbol: str) -> int:
        with self._lock:
            stale = [key for key in self._entries if key.symbol == symbol]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug(f"Invalidated {len(stale)} cache entries for {symbol}")
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["CacheEntry", "CacheKey", "DataKind", "ResponseCache"]

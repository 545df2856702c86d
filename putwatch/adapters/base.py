"""Core abstractions for market data clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import List, Optional

from putwatch.errors import DataNotAvailable, FetchTimeoutError, RateLimitError, UpstreamFetchError
from putwatch.models.option import OptionContract


class MarketDataClient(ABC):
    """Abstract base class for fetching quotes and put chains from a provider."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human readable provider name, stored as the snapshot source."""

    @abstractmethod
    def fetch_quote(self, symbol: str) -> float:
        """Return the latest underlying price for ``symbol``."""

    @abstractmethod
    def fetch_option_chain(
        self,
        symbol: str,
        as_of: Optional[date | datetime] = None,
    ) -> List[OptionContract]:
        """Return the put contracts of interest for ``symbol``."""


__all__ = [
    "DataNotAvailable",
    "FetchTimeoutError",
    "MarketDataClient",
    "RateLimitError",
    "UpstreamFetchError",
]

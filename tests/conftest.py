from __future__ import annotations

import time
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from putwatch.adapters.base import MarketDataClient
from putwatch.errors import UpstreamFetchError
from putwatch.models.option import OptionContract
from putwatch.registry import SymbolRegistry
from putwatch.storage import SQLiteDatabase, SQLiteSnapshotStore

# Monday 2025-03-03 11:00 EST, inside the regular session.
MARKET_OPEN_INSTANT = datetime(2025, 3, 3, 16, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = MARKET_OPEN_INSTANT) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def build_contract(
    strike: float = 95.0,
    *,
    expiration: date = date(2025, 4, 4),
    bid: float = 2.0,
    ask: float = 2.1,
    theta: Optional[float] = -0.03,
    iv: float = 35.0,
    volume: int = 250,
    open_interest: int = 1200,
    name: Optional[str] = None,
) -> OptionContract:
    return OptionContract(
        contract_name=name or f"XYZ{expiration:%y%m%d}P{int(strike * 1000):08d}",
        strike=strike,
        expiration=expiration,
        last_price=(bid + ask) / 2,
        bid=bid,
        ask=ask,
        volume=volume,
        open_interest=open_interest,
        implied_volatility=iv,
        delta=-0.3 if theta is not None else None,
        gamma=0.02 if theta is not None else None,
        theta=theta,
    )


class FakeMarketDataClient(MarketDataClient):
    """In-memory client; failures and delays are configured per symbol."""

    def __init__(self, price: float = 100.0) -> None:
        self.default_price = price
        self.prices: Dict[str, float] = {}
        self.chains: Dict[str, List[OptionContract]] = {}
        self.failures: Dict[str, Exception] = {}
        self.delays: Dict[str, float] = {}
        self.quote_calls: List[str] = []

    @property
    def name(self) -> str:
        return "fake"

    def fetch_quote(self, symbol: str) -> float:
        self.quote_calls.append(symbol)
        if symbol in self.delays:
            time.sleep(self.delays[symbol])
        if symbol in self.failures:
            raise self.failures[symbol]
        return self.prices.get(symbol, self.default_price)

    def fetch_option_chain(self, symbol, as_of=None) -> List[OptionContract]:
        if symbol in self.failures:
            raise self.failures[symbol]
        if symbol in self.chains:
            return list(self.chains[symbol])
        return [build_contract(95.0), build_contract(90.0, bid=1.2, ask=1.3), build_contract(100.0, bid=3.5, ask=3.7)]

    def fail(self, symbol: str, message: str = "upstream unavailable") -> None:
        self.failures[symbol] = UpstreamFetchError(message)

    def recover(self, symbol: str) -> None:
        self.failures.pop(symbol, None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def database(tmp_path) -> SQLiteDatabase:
    return SQLiteDatabase(tmp_path / "putwatch.db")


@pytest.fixture
def registry(database, clock) -> SymbolRegistry:
    return SymbolRegistry(database, clock=clock)


@pytest.fixture
def store(database, clock) -> SQLiteSnapshotStore:
    return SQLiteSnapshotStore(database, clock=clock)


@pytest.fixture
def client() -> FakeMarketDataClient:
    return FakeMarketDataClient()


@pytest.fixture
def contract_factory():
    return build_contract

"""Snapshot records and the abstract snapshot store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, field_validator

from putwatch.clock import parse_timestamp
from putwatch.errors import PersistenceError
from putwatch.models.option import OptionContract, OptionScore, classify_score
from putwatch.scoring.returns import classify_return


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)


class StockSnapshot(_Record):
    """Underlying price captured by one successful refresh."""

    id: str
    symbol: str
    price: float
    fetched_at: datetime
    source: str

    @field_validator("fetched_at", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> datetime:
        return parse_timestamp(value)


class ContractSnapshot(_Record):
    id: str
    snapshot_id: str
    contract_name: Optional[str] = None
    strike: float
    last_price: float = 0.0
    bid: float = 0.0
    ask: float = 0.0
    volume: int = 0
    open_interest: int = 0
    expiration_date: date
    implied_volatility: float = 0.0
    delta: Optional[float] = None
    gamma: Optional[float] = None
    theta: Optional[float] = None

    def to_contract(self) -> OptionContract:
        return OptionContract(
            contract_name=self.contract_name,
            strike=self.strike,
            expiration=self.expiration_date,
            last_price=self.last_price,
            bid=self.bid,
            ask=self.ask,
            volume=self.volume,
            open_interest=self.open_interest,
            implied_volatility=self.implied_volatility,
            delta=self.delta,
            gamma=self.gamma,
            theta=self.theta,
        )


class ScoreSnapshot(_Record):
    id: str
    contract_id: str
    total: float
    premium_score: float
    theta_score: float
    strike_score: float
    dte_score: float
    iv_score: float
    liquidity_score: float
    spread_penalty: float

    def to_score(self) -> OptionScore:
        return OptionScore(**self.model_dump(exclude={"id", "contract_id"}))


class RankedContract(_Record):
    contract: ContractSnapshot
    score: Optional[ScoreSnapshot] = None
    days_to_expiry: int
    annualized_return: float = 0.0

    @property
    def classification(self) -> Optional[str]:
        return classify_score(self.score.total) if self.score is not None else None

    @property
    def return_class(self) -> str:
        return classify_return(self.annualized_return)


class SnapshotBundle(_Record):
    """A stock snapshot with its contracts, best score first."""

    snapshot: StockSnapshot
    contracts: List[RankedContract]

    @property
    def top_score(self) -> float:
        scores = [item.score.total for item in self.contracts if item.score is not None]
        return max(scores) if scores else 0.0


class HistoricalContract(_Record):
    snapshot: StockSnapshot
    contract: ContractSnapshot
    score: ScoreSnapshot


class DailyPerformance(_Record):
    day: date
    low_price: float
    high_price: float
    avg_price: float
    top_score: float
    avg_top_score: float
    unique_contracts: int
    snapshot_count: int


class SnapshotStore(ABC):
    """Abstract base class for snapshot persistence backends."""

    @abstractmethod
    def save(
        self,
        symbol: str,
        price: float,
        contracts: Sequence[OptionContract],
        scores: Sequence[OptionScore],
        *,
        source: str,
        fetched_at: Optional[datetime] = None,
    ) -> StockSnapshot:
        """Atomically persist a stock snapshot with its contracts and scores."""

    @abstractmethod
    def get_latest(self, symbol: str) -> Optional[SnapshotBundle]:
        """Return the newest snapshot for ``symbol`` or ``None`` when there is none."""

    @abstractmethod
    def get_recent(self, symbol: str, limit: int = 10) -> List[StockSnapshot]:
        """Return up to ``limit`` deduplicated snapshots, newest first."""

    @abstractmethod
    def get_performance(self, symbol: str, window_days: int = 30) -> List[DailyPerformance]:
        """Return per-day aggregates over the trailing window, newest day first."""

    @abstractmethod
    def get_bundle(self, snapshot_id: str) -> Optional[SnapshotBundle]:
        """Return one snapshot with its ranked contracts, or ``None`` when unknown."""

    @abstractmethod
    def get_top_contracts(self, symbol: str, days: int = 30, limit: int = 10) -> List[HistoricalContract]:
        """Return the best-scoring contracts seen for ``symbol`` over the trailing window."""


__all__ = [
    "ContractSnapshot",
    "DailyPerformance",
    "HistoricalContract",
    "PersistenceError",
    "RankedContract",
    "ScoreSnapshot",
    "SnapshotBundle",
    "SnapshotStore",
    "StockSnapshot",
]

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _finite_or_none(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class OptionContract(BaseModel):
    """Structured view of a put contract used by the scoring engine.

    Implied volatility is expressed in percentage points (``45.0`` for 45%).
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    contract_name: Optional[str] = Field(default=None, alias="contractName")
    strike: float
    expiration: date = Field(alias="expirationDate")
    last_price: float = Field(default=0.0, alias="lastPrice")
    bid: float = 0.0
    ask: float = 0.0
    volume: int = 0
    open_interest: int = Field(default=0, alias="openInterest")
    implied_volatility: float = Field(default=0.0, alias="impliedVolatility")
    delta: Optional[float] = None
    gamma: Optional[float] = None
    theta: Optional[float] = None

    @field_validator("expiration", mode="before")
    @classmethod
    def parse_expiration(cls, value: Any) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            return datetime.strptime(value[:10], "%Y-%m-%d").date()
        raise ValueError("Unsupported expiration format")

    @field_validator("volume", "open_interest", mode="before")
    @classmethod
    def coerce_int(cls, value: Any) -> int:
        number = _finite_or_none(value)
        return int(number) if number is not None else 0

    @field_validator("implied_volatility", "last_price", "bid", "ask", "strike", mode="before")
    @classmethod
    def coerce_float(cls, value: Any) -> float:
        number = _finite_or_none(value)
        return number if number is not None else 0.0

    @field_validator("delta", "gamma", "theta", mode="before")
    @classmethod
    def coerce_greek(cls, value: Any) -> Optional[float]:
        return _finite_or_none(value)

    @property
    def mid_price(self) -> float:
        return round((self.bid + self.ask) / 2, 4) if self.bid or self.ask else self.last_price

    @property
    def has_greeks(self) -> bool:
        return self.delta is not None and self.gamma is not None and self.theta is not None


SCORE_CLASSES: List[tuple[float, str]] = [
    (80.0, "excellent"),
    (65.0, "good"),
    (50.0, "moderate"),
    (35.0, "weak"),
]


def classify_score(total: float) -> str:
    for threshold, label in SCORE_CLASSES:
        if total >= threshold:
            return label
    return "poor"


class OptionScore(BaseModel):
    """Composite 0-100 score with its per-factor breakdown."""

    model_config = ConfigDict(frozen=True)

    total: float
    premium_score: float = 0.0
    theta_score: float = 0.0
    strike_score: float = 0.0
    dte_score: float = 0.0
    iv_score: float = 0.0
    liquidity_score: float = 0.0
    spread_penalty: float = 0.0

    @property
    def classification(self) -> str:
        return classify_score(self.total)

    def factor_scores(self) -> Dict[str, float]:
        return {
            "premium": self.premium_score,
            "theta": self.theta_score,
            "strike": self.strike_score,
            "dte": self.dte_score,
            "iv": self.iv_score,
            "liquidity": self.liquidity_score,
        }


class ScoredContract(BaseModel):
    contract: OptionContract
    score: OptionScore
    days_to_expiry: int

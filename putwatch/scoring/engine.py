from __future__ import annotations

import math
from datetime import date, datetime, time, timezone
from typing import Dict, Iterable, List, Optional

from putwatch.clock import Clock, ensure_utc, utc_now
from putwatch.errors import ValidationError
from putwatch.models.option import OptionContract, OptionScore, ScoredContract, classify_score

from .base import ScoreContext
from .config import merge_config
from .factors import (
    DaysToExpiryScorer,
    ImpliedVolatilityScorer,
    PremiumScorer,
    StrikeDistanceScorer,
    ThetaScorer,
)
from .liquidity import LiquidityScorer, spread_penalty

SCORER_REGISTRY = {
    PremiumScorer.key: PremiumScorer,
    ThetaScorer.key: ThetaScorer,
    StrikeDistanceScorer.key: StrikeDistanceScorer,
    DaysToExpiryScorer.key: DaysToExpiryScorer,
    ImpliedVolatilityScorer.key: ImpliedVolatilityScorer,
    LiquidityScorer.key: LiquidityScorer,
}

_SECONDS_PER_DAY = 86_400


def days_to_expiry(expiration: date, now: datetime) -> int:
    """Whole days until ``expiration`` (taken at 00:00 UTC), rounded up."""

    expiry = datetime.combine(expiration, time(0, 0), tzinfo=timezone.utc)
    return math.ceil((expiry - ensure_utc(now)).total_seconds() / _SECONDS_PER_DAY)


class PutScoringEngine:
    """Combine the factor scorers into a 0-100 composite for cash-secured puts."""

    def __init__(self, config: Dict[str, object] | None = None, *, clock: Clock = utc_now):
        self.config = merge_config(config)
        self._clock = clock
        self._scorers = [scorer_cls() for scorer_cls in SCORER_REGISTRY.values()]

    def score(
        self,
        contract: OptionContract,
        current_price: float,
        *,
        now: Optional[datetime] = None,
    ) -> OptionScore:
        if contract.strike <= 0:
            raise ValidationError(f"Strike must be positive, got {contract.strike}")
        if current_price <= 0:
            raise ValidationError(f"Current price must be positive, got {current_price}")

        dte = days_to_expiry(contract.expiration, now or self._clock())
        context = ScoreContext(
            contract=contract,
            current_price=current_price,
            days_to_expiry=dte,
            config=self.config,
        )

        factors: Dict[str, float] = {}
        for scorer in self._scorers:
            weight = context.get_weight(scorer.key, scorer.default_weight)
            factors[scorer.key] = scorer.score(context, weight)

        penalty = spread_penalty(contract.bid, contract.ask, self.config.get("spread"))  # type: ignore[arg-type]

        bounds = self.config.get("score_bounds", {})
        min_score = float(bounds.get("min", 0.0))  # type: ignore[union-attr]
        max_score = float(bounds.get("max", 100.0))  # type: ignore[union-attr]
        total = max(min_score, min(max_score, sum(factors.values()) - penalty))

        return OptionScore(
            total=round(total, 2),
            premium_score=round(factors["premium"], 2),
            theta_score=round(factors["theta"], 2),
            strike_score=round(factors["strike"], 2),
            dte_score=round(factors["dte"], 2),
            iv_score=round(factors["iv"], 2),
            liquidity_score=round(factors["liquidity"], 2),
            spread_penalty=round(penalty, 2),
        )

    def score_many(
        self,
        contracts: Iterable[OptionContract],
        current_price: float,
        *,
        now: Optional[datetime] = None,
    ) -> List[OptionScore]:
        moment = now or self._clock()
        return [self.score(contract, current_price, now=moment) for contract in contracts]

    def rank(
        self,
        contracts: Iterable[OptionContract],
        current_price: float,
        *,
        now: Optional[datetime] = None,
    ) -> List[ScoredContract]:
        """Score ``contracts`` and return them best first."""

        moment = now or self._clock()
        contracts = list(contracts)
        scores = self.score_many(contracts, current_price, now=moment)
        ranked = [
            ScoredContract(
                contract=contract,
                score=score,
                days_to_expiry=days_to_expiry(contract.expiration, moment),
            )
            for contract, score in zip(contracts, scores)
        ]
        ranked.sort(key=lambda item: item.score.total, reverse=True)
        return ranked

    @staticmethod
    def classify(total: float) -> str:
        return classify_score(total)

    @property
    def enabled_scorers(self) -> List[str]:
        return [scorer.key for scorer in self._scorers]


__all__ = ["PutScoringEngine", "SCORER_REGISTRY", "days_to_expiry"]

"""Premium, time-decay, moneyness, expiry and volatility factors."""

from __future__ import annotations

import math

from .base import ScoreContext


class PremiumScorer:
    """Premium as a share of strike, log-compressed and capped at 10%."""

    key = "premium"
    default_weight = 25.0

    def score(self, context: ScoreContext, weight: float) -> float:
        premium_pct = context.contract.bid / context.contract.strike * 100
        premium_pct = max(0.0, min(premium_pct, 10.0))
        return min(weight, math.log1p(premium_pct) * 8)


class ThetaScorer:
    """Faster time decay scores higher; theta is clamped to [-0.1, 0]."""

    key = "theta"
    default_weight = 20.0

    def score(self, context: ScoreContext, weight: float) -> float:
        theta = context.contract.theta
        if theta is None:
            return 0.0
        clamped = max(-0.1, min(theta, 0.0))
        return min(weight, abs(clamped) * 200)


class StrikeDistanceScorer:
    key = "strike"
    default_weight = 15.0

    def score(self, context: ScoreContext, weight: float) -> float:
        distance = abs(1 - context.contract.strike / context.current_price)
        return max(0.0, weight - distance * 150)


class DaysToExpiryScorer:
    """Full marks around 37.5 days, decaying faster below 25 than above 50."""

    key = "dte"
    default_weight = 15.0

    def score(self, context: ScoreContext, weight: float) -> float:
        dte = context.days_to_expiry
        if dte < 25:
            value = weight - (25 - dte) * 1.5
        elif dte < 30:
            value = weight - (30 - dte) * 0.8
        elif dte <= 45:
            value = weight - abs(dte - 37.5) * 0.2
        elif dte <= 50:
            value = weight - (dte - 45) * 0.8
        else:
            value = weight - (dte - 50) * 0.5
        return max(0.0, value)


class ImpliedVolatilityScorer:
    """Implied volatility in percent; 60% and above earns full marks."""

    key = "iv"
    default_weight = 15.0

    def score(self, context: ScoreContext, weight: float) -> float:
        iv = max(0.0, min(context.contract.implied_volatility, 100.0))
        return min(weight, iv / 60 * weight)


__all__ = [
    "DaysToExpiryScorer",
    "ImpliedVolatilityScorer",
    "PremiumScorer",
    "StrikeDistanceScorer",
    "ThetaScorer",
]

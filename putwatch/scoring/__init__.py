"""Convenient exports for scoring components."""

from .engine import PutScoringEngine, days_to_expiry
from .factors import (
    DaysToExpiryScorer,
    ImpliedVolatilityScorer,
    PremiumScorer,
    StrikeDistanceScorer,
    ThetaScorer,
)
from .liquidity import LiquidityScorer, spread_penalty
from .returns import annualized_return, classify_return, simple_return

__all__ = [
    "DaysToExpiryScorer",
    "ImpliedVolatilityScorer",
    "LiquidityScorer",
    "PremiumScorer",
    "PutScoringEngine",
    "StrikeDistanceScorer",
    "ThetaScorer",
    "annualized_return",
    "classify_return",
    "days_to_expiry",
    "simple_return",
    "spread_penalty",
]

from __future__ import annotations

import math
from typing import Mapping

from .base import ScoreContext

_LIQUIDITY_CEILING = math.log1p(10_000)


class LiquidityScorer:
    key = "liquidity"
    default_weight = 10.0

    def score(self, context: ScoreContext, weight: float) -> float:
        contract = context.contract
        activity = max(0.0, contract.open_interest * 0.8 + contract.volume * 0.2)
        return min(weight, math.log1p(activity) / _LIQUIDITY_CEILING * weight)


def spread_penalty(bid: float, ask: float, settings: Mapping[str, float] | None = None) -> float:
    """Points deducted for a bid/ask spread wider than the tolerance."""

    settings = settings or {}
    tolerance = float(settings.get("tolerance", 0.08))
    max_penalty = float(settings.get("max_penalty", 15.0))
    if ask <= 0:
        return 0.0
    spread_pct = (ask - bid) / ask
    if spread_pct <= tolerance:
        return 0.0
    return min(max_penalty, (spread_pct - tolerance) * 200)


__all__ = ["LiquidityScorer", "spread_penalty"]

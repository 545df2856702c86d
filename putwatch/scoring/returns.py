"""Return-on-collateral helpers for short puts."""

from __future__ import annotations

DEFAULT_MARGIN_RATE = 0.20


def simple_return(premium: float, strike: float, margin_rate: float = DEFAULT_MARGIN_RATE) -> float:
    """Premium over required collateral, in percent."""

    if strike <= 0 or premium <= 0:
        return 0.0
    if margin_rate <= 0 or margin_rate > 1:
        return 0.0
    return premium / (strike * margin_rate) * 100


def annualized_return(
    premium: float,
    strike: float,
    days_to_expiry: int,
    margin_rate: float = DEFAULT_MARGIN_RATE,
) -> float:
    if days_to_expiry <= 0:
        return 0.0
    simple = simple_return(premium, strike, margin_rate)
    return round(simple * 365 / days_to_expiry, 2)


def classify_return(annualized: float) -> str:
    if annualized >= 15:
        return "high"
    if annualized >= 8:
        return "medium"
    return "low"


__all__ = ["DEFAULT_MARGIN_RATE", "annualized_return", "classify_return", "simple_return"]

"""Black-Scholes-Merton Greeks used to fill in what a data provider omits."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional

from scipy.stats import norm

DAYS_PER_YEAR = 365.0


@dataclass
class OptionGreeks:
    delta: float    # dV/dS
    gamma: float    # d2V/dS2
    theta: float    # dV/dt, per calendar day
    vega: float     # per 1% vol change
    warning_flags: List[str] = field(default_factory=list)


class BlackScholesGreeksCalculator:
    """Greeks calculator using the Black-Scholes-Merton model with dividends."""

    def __init__(self, risk_free_rate: float = 0.05):
        self.risk_free_rate = risk_free_rate

    def calculate(
        self,
        option_type: str,
        stock_price: float,
        strike_price: float,
        time_to_expiration: float,
        volatility: float,
        dividend_yield: float = 0.0,
        risk_free_rate: Optional[float] = None,
    ) -> OptionGreeks:
        """Return delta, gamma, theta and vega.

        Args:
            option_type: "call" or "put"
            stock_price: Current underlying price
            strike_price: Option strike price
            time_to_expiration: Time to expiration in years
            volatility: Implied volatility as a decimal (0.45 for 45%)
            dividend_yield: Annual dividend yield
            risk_free_rate: Overrides the calculator default when provided
        """

        if stock_price <= 0 or strike_price <= 0:
            raise ValueError("Stock and strike prices must be positive")

        is_call = option_type.lower() == "call"
        warnings: List[str] = []

        if time_to_expiration <= 0:
            intrinsic_itm = stock_price > strike_price if is_call else stock_price < strike_price
            delta = (1.0 if is_call else -1.0) if intrinsic_itm else 0.0
            return OptionGreeks(delta=delta, gamma=0.0, theta=0.0, vega=0.0, warning_flags=["expired"])

        if volatility <= 0:
            volatility = 0.01
            warnings.append("Volatility was zero or negative, using 0.01")

        r = risk_free_rate if risk_free_rate is not None else self.risk_free_rate
        S, K, T, sigma, q = stock_price, strike_price, time_to_expiration, volatility, dividend_yield

        sqrt_T = math.sqrt(T)
        d1 = (math.log(S / K) + (r - q + 0.5 * sigma**2) * T) / (sigma * sqrt_T)
        d2 = d1 - sigma * sqrt_T

        n_d1 = norm.pdf(d1)
        exp_neg_qT = math.exp(-q * T)
        exp_neg_rT = math.exp(-r * T)

        if is_call:
            delta = exp_neg_qT * norm.cdf(d1)
        else:
            delta = -exp_neg_qT * norm.cdf(-d1)

        gamma = exp_neg_qT * n_d1 / (S * sigma * sqrt_T)
        vega = S * exp_neg_qT * n_d1 * sqrt_T / 100

        decay = -(S * n_d1 * sigma * exp_neg_qT) / (2 * sqrt_T)
        if is_call:
            theta = decay - r * K * exp_neg_rT * norm.cdf(d2) + q * S * exp_neg_qT * norm.cdf(d1)
        else:
            theta = decay + r * K * exp_neg_rT * norm.cdf(-d2) - q * S * exp_neg_qT * norm.cdf(-d1)

        return OptionGreeks(
            delta=round(float(delta), 6),
            gamma=round(float(gamma), 8),
            theta=round(float(theta) / DAYS_PER_YEAR, 6),
            vega=round(float(vega), 6),
            warning_flags=warnings,
        )


__all__ = ["BlackScholesGreeksCalculator", "DAYS_PER_YEAR", "OptionGreeks"]

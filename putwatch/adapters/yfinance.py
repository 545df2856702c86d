"""Market data client backed by the public yfinance client."""

from __future__ import annotations

import logging
import math
import random
import time
from datetime import date, datetime, timezone
from typing import Any, Callable, List, Mapping, NamedTuple, Optional

import pandas as pd
import yfinance as yf

from putwatch.clock import Clock, utc_now
from putwatch.errors import DataNotAvailable, FetchTimeoutError, RateLimitError, UpstreamFetchError
from putwatch.math.greeks import DAYS_PER_YEAR, BlackScholesGreeksCalculator
from putwatch.models.option import OptionContract
from putwatch.timeouts import deadline_remaining, run_with_timeout

from .base import MarketDataClient

logger = logging.getLogger(__name__)


class PriceInfo(NamedTuple):
    """Container for price data with metadata for quality tracking."""

    price: float
    timestamp: datetime
    source: str


def _is_valid_price(value: Any) -> bool:
    if value in (None, ""):
        return False
    try:
        price_val = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(price_val) and price_val > 0


def _is_rate_limited(exc: Exception) -> bool:
    message = str(exc)
    return "Too Many Requests" in message or "rate limit" in message.lower() or "429" in message


def _number(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class YFinanceMarketDataClient(MarketDataClient):
    """Fetch quotes and put chains from Yahoo Finance via yfinance.

    Only expirations within ``max_days_to_expiry`` and strikes within
    ``strike_band`` of the underlying price are kept. Implied volatility is
    converted to percent, and missing Greeks are estimated with Black-Scholes.
    """

    def __init__(
        self,
        ticker_factory: Callable[[str], yf.Ticker] | None = None,
        max_retries: int = 3,
        base_delay: float = 0.75,
        max_delay: float = 4.0,
        jitter: float = 0.3,
        *,
        request_timeout_seconds: float = 30.0,
        max_days_to_expiry: int = 60,
        strike_band: float = 0.2,
        risk_free_rate: float = 0.05,
        clock: Clock = utc_now,
    ) -> None:
        self._ticker_factory = ticker_factory or yf.Ticker
        self._max_retries = max(1, max_retries)
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._jitter = jitter
        self._request_timeout = request_timeout_seconds
        self._max_days_to_expiry = max_days_to_expiry
        self._strike_band = strike_band
        self._greeks = BlackScholesGreeksCalculator(risk_free_rate=risk_free_rate)
        self._clock = clock

    @property
    def name(self) -> str:
        return "yfinance"

    def fetch_quote(self, symbol: str) -> float:
        ticker = self._ticker_factory(symbol)
        price_info = self._extract_price(ticker)
        if price_info is None:
            raise DataNotAvailable(f"No price available for {symbol}")
        logger.debug(f"{symbol} price {price_info.price} from {price_info.source}")
        return price_info.price

    def fetch_option_chain(
        self,
        symbol: str,
        as_of: Optional[date | datetime] = None,
    ) -> List[OptionContract]:
        ticker = self._ticker_factory(symbol)
        today = self._as_date(as_of)
        expirations = [
            expiration
            for expiration in self._expirations(ticker, symbol)
            if 0 <= (expiration - today).days <= self._max_days_to_expiry
        ]
        if not expirations:
            raise DataNotAvailable(f"No expirations within {self._max_days_to_expiry} days for {symbol}")

        price_info = self._extract_price(ticker)
        price = price_info.price if price_info else None

        contracts: List[OptionContract] = []
        for expiration in expirations:
            expiration_str = expiration.strftime("%Y-%m-%d")
            option_chain = self._retry(
                lambda: ticker.option_chain(expiration_str),
                context=f"fetch options chain for {symbol} {expiration_str}",
            )
            puts = getattr(option_chain, "puts", None)
            if puts is None or puts.empty:
                continue
            for record in puts.to_dict("records"):
                contract = self._to_contract(record, expiration)
                if contract is None or not self._within_band(contract.strike, price):
                    continue
                contracts.append(self._with_greeks(contract, price, today))
        return contracts

    def _expirations(self, ticker: yf.Ticker, symbol: str) -> List[date]:
        raw = self._retry(lambda: ticker.options, context=f"fetch expirations for {symbol}")
        parsed: List[date] = []
        for value in raw or ():
            try:
                parsed.append(datetime.strptime(value, "%Y-%m-%d").date())
            except ValueError:
                continue
        return parsed

    def _as_date(self, as_of: Optional[date | datetime]) -> date:
        if as_of is None:
            return self._clock().date()
        if isinstance(as_of, datetime):
            return as_of.date()
        return as_of

    def _within_band(self, strike: float, price: Optional[float]) -> bool:
        if price is None:
            return strike > 0
        return price * (1 - self._strike_band) <= strike <= price * (1 + self._strike_band)

    @staticmethod
    def _to_contract(record: Mapping[str, Any], expiration: date) -> Optional[OptionContract]:
        strike = _number(record.get("strike"))
        if strike is None or strike <= 0:
            return None
        iv = _number(record.get("impliedVolatility"))
        return OptionContract(
            contract_name=record.get("contractSymbol"),
            strike=strike,
            expiration=expiration,
            last_price=record.get("lastPrice"),
            bid=record.get("bid"),
            ask=record.get("ask"),
            volume=record.get("volume"),
            open_interest=record.get("openInterest"),
            implied_volatility=iv * 100 if iv is not None else 0.0,
        )

    def _with_greeks(self, contract: OptionContract, price: Optional[float], today: date) -> OptionContract:
        if contract.has_greeks or price is None or contract.implied_volatility <= 0:
            return contract
        years = (contract.expiration - today).days / DAYS_PER_YEAR
        greeks = self._greeks.calculate(
            "put",
            stock_price=price,
            strike_price=contract.strike,
            time_to_expiration=years,
            volatility=contract.implied_volatility / 100,
        )
        return contract.model_copy(
            update={
                "delta": contract.delta if contract.delta is not None else greeks.delta,
                "gamma": contract.gamma if contract.gamma is not None else greeks.gamma,
                "theta": contract.theta if contract.theta is not None else greeks.theta,
            }
        )

    def _retry(self, operation: Callable[[], Any], context: str) -> Any:
        last_error: Exception | None = None
        for attempt in range(self._max_retries):
            timeout = self._attempt_timeout(context)
            try:
                return run_with_timeout(operation, timeout)
            except FetchTimeoutError as timeout_exc:
                last_error = timeout_exc
                logger.warning(
                    f"Timeout after {timeout:.2f}s while trying to {context} "
                    f"(attempt {attempt + 1}/{self._max_retries})"
                )
                if attempt == self._max_retries - 1:
                    raise FetchTimeoutError(f"Timeout after {timeout:.2f}s while trying to {context}") from timeout_exc
                self._apply_rate_limit_backoff(attempt)
            except Exception as exc:  # yfinance raises generic errors
                last_error = exc
                if attempt == self._max_retries - 1:
                    break
                self._apply_rate_limit_backoff(attempt)

        if last_error is not None and _is_rate_limited(last_error):
            raise RateLimitError(f"Rate limited while trying to {context}: {last_error}") from last_error
        if last_error is not None:
            raise UpstreamFetchError(f"Failed to {context}: {last_error}") from last_error
        raise UpstreamFetchError(f"Failed to {context}: unknown error")

    def _attempt_timeout(self, context: str) -> float:
        remaining = deadline_remaining()
        if remaining is None:
            return self._request_timeout
        if remaining <= 0:
            raise FetchTimeoutError(f"Fetch deadline passed before trying to {context}")
        return min(self._request_timeout, remaining)

    def _apply_rate_limit_backoff(self, attempt: int) -> None:
        delay = min(self._max_delay, self._base_delay * (1 + attempt))
        delay += random.uniform(0, self._jitter)
        remaining = deadline_remaining()
        if remaining is not None:
            delay = min(delay, max(0.0, remaining))
        time.sleep(delay)

    def _extract_price(self, ticker: yf.Ticker) -> PriceInfo | None:
        """Return the freshest underlying price, trying sources in priority order."""

        fetch_time = self._clock()

        # Priority 1: fast_info (real-time or near real-time)
        try:
            fast_price = self._retry(lambda: self._fast_price(ticker), context="fetch fast price info")
            if fast_price is not None:
                key, value = fast_price
                return PriceInfo(price=value, timestamp=fetch_time, source=f"fast_info.{key}")
        except UpstreamFetchError as exc:
            logger.debug(f"fast_info price unavailable: {exc}")

        # Priority 2: intraday history (1-minute bars), only if reasonably fresh
        try:
            history = self._retry(
                lambda: ticker.history(period="1d", interval="1m"),
                context="fetch intraday price history",
            )
            if isinstance(history, pd.DataFrame) and not history.empty:
                last_close = history["Close"].dropna()
                if not last_close.empty:
                    last_timestamp = last_close.index[-1]
                    if last_timestamp.tzinfo is None:
                        last_timestamp = last_timestamp.tz_localize("America/New_York")
                    last_timestamp = last_timestamp.tz_convert(timezone.utc).to_pydatetime()
                    if (fetch_time - last_timestamp).total_seconds() < 900:
                        return PriceInfo(
                            price=float(last_close.iloc[-1]),
                            timestamp=last_timestamp,
                            source="intraday_1m",
                        )
        except UpstreamFetchError as exc:
            logger.debug(f"Intraday history unavailable: {exc}")

        # Priority 3: info dict (may be cached/stale)
        try:
            info = self._retry(lambda: ticker.info, context="fetch price metadata")
            if isinstance(info, dict):
                for key in ("currentPrice", "regularMarketPrice", "previousClose"):
                    value = info.get(key)
                    if _is_valid_price(value):
                        return PriceInfo(price=float(value), timestamp=fetch_time, source=f"info.{key}")
        except UpstreamFetchError as exc:
            logger.debug(f"Price metadata unavailable: {exc}")

        return None

    @staticmethod
    def _fast_price(ticker: yf.Ticker) -> Optional[tuple[str, float]]:
        fast_info = getattr(ticker, "fast_info", None)
        if fast_info is None:
            return None
        for key in ("last_price", "lastPrice", "regular_market_price", "regularMarketPrice"):
            if isinstance(fast_info, Mapping):
                value = fast_info.get(key)
            else:
                try:
                    value = fast_info[key]
                except KeyError:
                    value = None
            if _is_valid_price(value):
                return key, float(value)
        return None


__all__ = ["PriceInfo", "YFinanceMarketDataClient"]

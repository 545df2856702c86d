"""NYSE full-day closures per calendar year, read from the exchange calendar."""

from __future__ import annotations

from datetime import date
from functools import lru_cache
from typing import FrozenSet

import pandas as pd
import pandas_market_calendars as mcal

EXCHANGE = "NYSE"


@lru_cache(maxsize=None)
def _exchange_calendar() -> mcal.MarketCalendar:
    return mcal.get_calendar(EXCHANGE)


@lru_cache(maxsize=None)
def nyse_holidays(year: int) -> FrozenSet[date]:
    """Return the weekdays of ``year`` on which the exchange holds no session.

    Early-close days are sessions and are not included.
    """

    start, end = f"{year}-01-01", f"{year}-12-31"
    sessions = {stamp.date() for stamp in _exchange_calendar().valid_days(start_date=start, end_date=end)}
    return frozenset(day.date() for day in pd.bdate_range(start, end) if day.date() not in sessions)


__all__ = ["EXCHANGE", "nyse_holidays"]

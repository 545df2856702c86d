"""Market session calendar."""

from .calendar import MARKET_CLOSE, MARKET_OPEN, MarketCalendar, is_daylight_saving
from .holidays import nyse_holidays

__all__ = ["MARKET_CLOSE", "MARKET_OPEN", "MarketCalendar", "is_daylight_saving", "nyse_holidays"]

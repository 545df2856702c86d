"""US equity market session gate.

``MarketCalendar.is_open`` answers whether regular trading is active at an
instant: Monday-Friday, not an exchange holiday, and Eastern wall-clock time in
``[09:30, 16:00)``. Eastern time comes from the IANA database when it is
available; otherwise a fixed UTC-4/UTC-5 offset is chosen from a table of
known daylight-saving windows. Years missing from the table fall back to a
March-through-October heuristic, which is imprecise on transition days.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Dict, Iterable, Mapping, Optional, Set, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from putwatch.clock import ensure_utc

from .holidays import nyse_holidays

logger = logging.getLogger(__name__)

EASTERN_ZONE = "America/New_York"
MARKET_OPEN = time(9, 30)
MARKET_CLOSE = time(16, 0)

EDT = timezone(timedelta(hours=-4), "EDT")
EST = timezone(timedelta(hours=-5), "EST")

# Second Sunday in March / first Sunday in November.
DST_TRANSITIONS: Dict[int, Tuple[date, date]] = {
    2024: (date(2024, 3, 10), date(2024, 11, 3)),
    2025: (date(2025, 3, 9), date(2025, 11, 2)),
    2026: (date(2026, 3, 8), date(2026, 11, 1)),
    2027: (date(2027, 3, 14), date(2027, 11, 7)),
    2028: (date(2028, 3, 12), date(2028, 11, 5)),
    2029: (date(2029, 3, 11), date(2029, 11, 4)),
    2030: (date(2030, 3, 10), date(2030, 11, 3)),
}

# Transitions happen at 02:00 local: 07:00 UTC in spring, 06:00 UTC in autumn.
_DST_START_UTC = time(7, 0)
_DST_END_UTC = time(6, 0)


def _load_eastern_zone() -> Optional[tzinfo]:
    try:
        return ZoneInfo(EASTERN_ZONE)
    except ZoneInfoNotFoundError:
        logger.warning("Timezone database unavailable; using fixed-offset DST table")
        return None


def is_daylight_saving(instant: datetime, table: Mapping[int, Tuple[date, date]] = DST_TRANSITIONS) -> bool:
    """Return True when ``instant`` falls inside US Eastern daylight time."""

    moment = ensure_utc(instant)
    window = table.get(moment.year)
    if window is None:
        return 3 <= moment.month <= 10
    start = datetime.combine(window[0], _DST_START_UTC, tzinfo=timezone.utc)
    end = datetime.combine(window[1], _DST_END_UTC, tzinfo=timezone.utc)
    return start <= moment < end


class MarketCalendar:
    """Decide whether the US equity market is in its regular session."""

    def __init__(
        self,
        *,
        extra_holidays: Iterable[date | str] = (),
        use_timezone_database: bool = True,
        dst_table: Mapping[int, Tuple[date, date]] | None = None,
    ) -> None:
        self._zone = _load_eastern_zone() if use_timezone_database else None
        self._dst_table = dict(dst_table or DST_TRANSITIONS)
        self._extra_holidays: Set[date] = set()
        for day in extra_holidays:
            self.add_holiday(day)

    @property
    def uses_timezone_database(self) -> bool:
        return self._zone is not None

    def add_holiday(self, day: date | str) -> None:
        if isinstance(day, str):
            day = date.fromisoformat(day)
        self._extra_holidays.add(day)

    def to_eastern(self, instant: datetime) -> datetime:
        moment = ensure_utc(instant)
        if self._zone is not None:
            return moment.astimezone(self._zone)
        offset = EDT if is_daylight_saving(moment, self._dst_table) else EST
        return moment.astimezone(offset)

    def is_holiday(self, day: date) -> bool:
        return day in self._extra_holidays or day in nyse_holidays(day.year)

    def is_trading_day(self, day: date) -> bool:
        return day.weekday() < 5 and not self.is_holiday(day)

    def is_open(self, instant: datetime) -> bool:
        eastern = self.to_eastern(instant)
        if not self.is_trading_day(eastern.date()):
            return False
        return MARKET_OPEN <= eastern.time() < MARKET_CLOSE

    def next_open(self, instant: datetime) -> datetime:
        """Return the UTC instant of the next session open at or after ``instant``."""

        eastern = self.to_eastern(instant)
        day = eastern.date()
        if eastern.time() > MARKET_OPEN:
            day += timedelta(days=1)
        while not self.is_trading_day(day):
            day += timedelta(days=1)
        return self._session_open_utc(day)

    def _session_open_utc(self, day: date) -> datetime:
        if self._zone is not None:
            return datetime.combine(day, MARKET_OPEN, tzinfo=self._zone).astimezone(timezone.utc)
        noon = datetime.combine(day, time(12, 0), tzinfo=timezone.utc)
        offset = EDT if is_daylight_saving(noon, self._dst_table) else EST
        return datetime.combine(day, MARKET_OPEN, tzinfo=offset).astimezone(timezone.utc)


__all__ = [
    "DST_TRANSITIONS",
    "MARKET_CLOSE",
    "MARKET_OPEN",
    "MarketCalendar",
    "is_daylight_saving",
]

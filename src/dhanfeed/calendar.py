"""NSE trading calendar — session hours in IST, weekdays only.

Exchange holidays change every year and are not hardcoded; pass them via
``holidays`` where they matter.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Collection
from zoneinfo import ZoneInfo

IST = ZoneInfo("Asia/Kolkata")

SESSION_OPEN = time(9, 15)
SESSION_CLOSE = time(15, 30)


def _to_ist(dt: datetime | None) -> datetime:
    if dt is None:
        return datetime.now(IST)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=IST)
    return dt.astimezone(IST)


def is_trading_day(d: date, holidays: Collection[date] = ()) -> bool:
    """Check if a date is a trading day (weekday and not a listed holiday)."""
    return d.weekday() < 5 and d not in holidays


def market_open_time(d: date) -> time:
    """Regular session open (09:15 IST)."""
    return SESSION_OPEN


def market_close_time(d: date) -> time:
    """Regular session close (15:30 IST)."""
    return SESSION_CLOSE


def is_market_open(dt: datetime | None = None, holidays: Collection[date] = ()) -> bool:
    """Check if the market is open; the closing minute counts as open.

    Args:
        dt: Datetime to check. Naive values are taken as IST. Defaults to now.
        holidays: Dates on which the exchange is closed.
    """
    dt = _to_ist(dt)
    d = dt.date()
    if not is_trading_day(d, holidays):
        return False
    minute = (dt.hour, dt.minute)
    open_t, close_t = market_open_time(d), market_close_time(d)
    return (open_t.hour, open_t.minute) <= minute <= (close_t.hour, close_t.minute)


def next_market_open(from_dt: datetime | None = None, holidays: Collection[date] = ()) -> datetime:
    """Get the next session open (IST)."""
    from_dt = _to_ist(from_dt)
    d = from_dt.date()

    if is_trading_day(d, holidays) and from_dt.time() < market_open_time(d):
        return datetime.combine(d, market_open_time(d), tzinfo=IST)

    d += timedelta(days=1)
    while not is_trading_day(d, holidays):
        d += timedelta(days=1)
    return datetime.combine(d, market_open_time(d), tzinfo=IST)


def market_status(dt: datetime | None = None, holidays: Collection[date] = ()) -> str:
    """Human-readable market status for display."""
    dt = _to_ist(dt)
    if is_market_open(dt, holidays):
        return "Market Open"
    if dt.weekday() >= 5:
        return "Market Closed - Weekend"
    if dt.date() in holidays:
        return "Market Closed - Holiday"
    return "Market Closed"

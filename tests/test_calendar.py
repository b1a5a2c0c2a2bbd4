"""Tests for the NSE trading calendar."""

from datetime import date, datetime, time, timezone

from dhanfeed.calendar import (
    IST,
    is_market_open,
    is_trading_day,
    market_close_time,
    market_open_time,
    market_status,
    next_market_open,
)

REPUBLIC_DAY = date(2024, 1, 26)


class TestIsTradingDay:
    def test_weekday(self):
        assert is_trading_day(date(2024, 1, 15))  # Monday

    def test_weekend(self):
        assert not is_trading_day(date(2024, 1, 20))  # Saturday
        assert not is_trading_day(date(2024, 1, 21))  # Sunday

    def test_holiday(self):
        assert not is_trading_day(REPUBLIC_DAY, holidays={REPUBLIC_DAY})
        assert is_trading_day(REPUBLIC_DAY)


class TestMarketHours:
    def test_session_times(self):
        assert market_open_time(date(2024, 1, 15)) == time(9, 15)
        assert market_close_time(date(2024, 1, 15)) == time(15, 30)

    def test_before_open(self):
        assert not is_market_open(datetime(2024, 1, 15, 9, 14, tzinfo=IST))
        assert not is_market_open(datetime(2024, 1, 15, 9, 14, 59, tzinfo=IST))

    def test_at_open(self):
        assert is_market_open(datetime(2024, 1, 15, 9, 15, tzinfo=IST))

    def test_at_close(self):
        assert is_market_open(datetime(2024, 1, 15, 15, 30, tzinfo=IST))

    def test_whole_closing_minute_open(self):
        assert is_market_open(datetime(2024, 1, 15, 15, 30, 59, 999999, tzinfo=IST))

    def test_after_close(self):
        assert not is_market_open(datetime(2024, 1, 15, 15, 31, tzinfo=IST))

    def test_weekend(self):
        assert not is_market_open(datetime(2024, 1, 20, 11, 0, tzinfo=IST))

    def test_holiday(self):
        assert not is_market_open(datetime(2024, 1, 26, 11, 0, tzinfo=IST), holidays={REPUBLIC_DAY})

    def test_utc_converted(self):
        # 04:00 UTC is 09:30 IST
        assert is_market_open(datetime(2024, 1, 15, 4, 0, tzinfo=timezone.utc))
        # 10:30 UTC is 16:00 IST
        assert not is_market_open(datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc))

    def test_naive_is_ist(self):
        assert is_market_open(datetime(2024, 1, 15, 10, 0))


class TestNextMarketOpen:
    def test_before_open_same_day(self):
        result = next_market_open(datetime(2024, 1, 15, 8, 0, tzinfo=IST))
        assert result == datetime(2024, 1, 15, 9, 15, tzinfo=IST)

    def test_after_close_next_day(self):
        result = next_market_open(datetime(2024, 1, 15, 16, 0, tzinfo=IST))
        assert result == datetime(2024, 1, 16, 9, 15, tzinfo=IST)

    def test_friday_to_monday(self):
        result = next_market_open(datetime(2024, 1, 19, 16, 0, tzinfo=IST))
        assert result == datetime(2024, 1, 22, 9, 15, tzinfo=IST)

    def test_skips_holiday(self):
        result = next_market_open(datetime(2024, 1, 25, 16, 0, tzinfo=IST), holidays={REPUBLIC_DAY})
        assert result == datetime(2024, 1, 29, 9, 15, tzinfo=IST)


class TestMarketStatus:
    def test_open(self):
        assert market_status(datetime(2024, 1, 15, 11, 0, tzinfo=IST)) == "Market Open"

    def test_weekend(self):
        assert market_status(datetime(2024, 1, 20, 11, 0, tzinfo=IST)) == "Market Closed - Weekend"

    def test_holiday(self):
        status = market_status(datetime(2024, 1, 26, 11, 0, tzinfo=IST), holidays={REPUBLIC_DAY})
        assert status == "Market Closed - Holiday"

    def test_after_hours(self):
        assert market_status(datetime(2024, 1, 15, 18, 0, tzinfo=IST)) == "Market Closed"

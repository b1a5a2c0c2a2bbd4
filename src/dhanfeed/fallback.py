"""Static fallback quotes served when neither the feed nor REST has data."""

from __future__ import annotations

from datetime import datetime, timezone

from dhanfeed.models.quote import QuoteSource, StockQuote

# Reference quotes (NSE_EQ security id -> fields) shown while the market is
# closed or the broker is unreachable.
DEFAULT_QUOTES: dict[str, dict] = {
    "2885": {
        "symbol": "RELIANCE", "name": "Reliance Industries Ltd",
        "price": 2456.75, "open": 2445.30, "high": 2478.90, "low": 2434.20,
        "close": 2433.30, "volume": 1234567,
    },
    "11536": {
        "symbol": "TCS", "name": "Tata Consultancy Services",
        "price": 3789.20, "open": 3820.50, "high": 3834.80, "low": 3765.10,
        "close": 3834.80, "volume": 987654,
    },
    "1594": {
        "symbol": "INFY", "name": "Infosys Limited",
        "price": 1456.85, "open": 1448.75, "high": 1467.20, "low": 1441.50,
        "close": 1441.55, "volume": 2345678,
    },
    "1333": {
        "symbol": "HDFCBANK", "name": "HDFC Bank Limited",
        "price": 1678.45, "open": 1685.90, "high": 1692.30, "low": 1665.20,
        "close": 1691.30, "volume": 1567890,
    },
}


class StaticQuoteBook:
    """Per-instrument static quotes with a zero-priced placeholder for unknowns."""

    def __init__(self, quotes: dict[str, dict] | None = None) -> None:
        self._quotes: dict[str, dict] = dict(DEFAULT_QUOTES if quotes is None else quotes)

    def set_quote(self, instrument_id: str, **fields: float | str) -> None:
        self._quotes[str(instrument_id)] = dict(fields)

    def __contains__(self, instrument_id: object) -> bool:
        return instrument_id in self._quotes

    def describe(self, instrument_id: str) -> tuple[str | None, str | None]:
        """Return ``(symbol, name)`` for a known instrument."""
        data = self._quotes.get(instrument_id, {})
        return data.get("symbol"), data.get("name")

    def get(self, instrument_id: str, symbol: str | None = None) -> StockQuote:
        data = self._quotes.get(instrument_id, {})
        price = float(data.get("price", 0.0))
        return StockQuote(
            instrument_id=instrument_id,
            price=price,
            open=float(data.get("open", price)),
            high=float(data.get("high", price)),
            low=float(data.get("low", price)),
            close=float(data.get("close", price)),
            volume=float(data.get("volume", 0)),
            timestamp=datetime.now(timezone.utc),
            source=QuoteSource.STATIC,
            symbol=data.get("symbol", symbol),
            name=data.get("name"),
        )

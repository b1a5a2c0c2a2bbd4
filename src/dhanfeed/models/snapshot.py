"""Market snapshot model — merged view handed to dashboard consumers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator

import pandas as pd

from dhanfeed.models.quote import Provenance, StockQuote


@dataclass(frozen=True)
class MarketSnapshot:
    """Mapping of instrument id to its most recently known quote.

    Attributes:
        quotes: Quotes keyed by instrument id, in request order.
        market_open: Market-hours state when the snapshot was built.
        created_at: Build time.
    """

    quotes: dict[str, StockQuote] = field(default_factory=dict)
    market_open: bool = False
    created_at: datetime | None = None

    def __getitem__(self, instrument_id: str) -> StockQuote:
        return self.quotes[instrument_id]

    def __contains__(self, instrument_id: object) -> bool:
        return instrument_id in self.quotes

    def __iter__(self) -> Iterator[str]:
        return iter(self.quotes)

    def __len__(self) -> int:
        return len(self.quotes)

    @property
    def live(self) -> list[StockQuote]:
        return [q for q in self.quotes.values() if q.provenance is Provenance.LIVE]

    @property
    def fallback(self) -> list[StockQuote]:
        return [q for q in self.quotes.values() if q.provenance is Provenance.FALLBACK]

    @property
    def is_stale(self) -> bool:
        """True when any entry is a stand-in rather than market data."""
        return bool(self.fallback)

    def to_frame(self) -> pd.DataFrame:
        """One row per instrument, indexed by instrument id."""
        records = [
            {
                "instrument_id": q.instrument_id,
                "symbol": q.symbol,
                "price": q.price,
                "open": q.open,
                "high": q.high,
                "low": q.low,
                "close": q.close,
                "volume": q.volume,
                "change": q.change,
                "change_percent": q.change_percent,
                "timestamp": q.timestamp,
                "source": q.source.value,
                "provenance": q.provenance.value,
            }
            for q in self.quotes.values()
        ]
        columns = [
            "instrument_id", "symbol", "price", "open", "high", "low", "close",
            "volume", "change", "change_percent", "timestamp", "source", "provenance",
        ]
        return pd.DataFrame(records, columns=columns).set_index("instrument_id")

"""Stock quote data model with provenance."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from dhanfeed.models.tick import Tick


class Provenance(Enum):
    """Whether a quote reflects current market data or a stand-in."""

    LIVE = "live"
    FALLBACK = "fallback"


class QuoteSource(Enum):
    """Tier a quote was served from."""

    FEED = "feed"
    REST = "rest"
    STALE = "stale"
    STATIC = "static"

    @property
    def provenance(self) -> Provenance:
        if self in (QuoteSource.FEED, QuoteSource.REST):
            return Provenance.LIVE
        return Provenance.FALLBACK


@dataclass(frozen=True)
class StockQuote:
    """Dashboard-facing quote for one instrument.

    Attributes:
        instrument_id: Security id.
        price: Last traded price.
        open: Session open.
        high: Session high.
        low: Session low.
        close: Previous close.
        volume: Session volume.
        timestamp: When the price was observed.
        source: Tier the quote came from.
        symbol: Trading symbol, when known.
        name: Display name, when known.
    """

    instrument_id: str
    price: float
    open: float
    high: float
    low: float
    close: float
    volume: float
    timestamp: datetime
    source: QuoteSource
    symbol: str | None = None
    name: str | None = None

    @property
    def provenance(self) -> Provenance:
        return self.source.provenance

    @property
    def change(self) -> float:
        return self.price - self.close

    @property
    def change_percent(self) -> float:
        if self.close == 0:
            return 0.0
        return self.change / self.close * 100

    @classmethod
    def from_tick(cls, tick: Tick) -> StockQuote:
        return cls(
            instrument_id=tick.instrument_id,
            price=tick.last_traded_price,
            open=tick.open,
            high=tick.high,
            low=tick.low,
            close=tick.close,
            volume=tick.volume,
            timestamp=tick.last_trade_time,
            source=QuoteSource.FEED,
        )

"""Tick (decoded market update) data model."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Tick:
    """Single decoded market update for one instrument.

    Attributes:
        instrument_id: Security id the frame was addressed to.
        last_traded_price: Last traded price in currency units.
        last_trade_time: Time of the last trade.
        volume: Traded volume for the session.
        open: Session open price.
        high: Session high price.
        low: Session low price.
        close: Previous close price.
    """

    instrument_id: str
    last_traded_price: float
    last_trade_time: datetime
    volume: float = 0.0
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    close: float = 0.0

    @property
    def change(self) -> float:
        """Absolute change from previous close."""
        return self.last_traded_price - self.close

    @property
    def change_percent(self) -> float:
        """Percent change from previous close (0 when close is 0)."""
        if self.close == 0:
            return 0.0
        return self.change / self.close * 100

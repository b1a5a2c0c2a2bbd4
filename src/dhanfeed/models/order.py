"""Order and position data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class OrderSide(Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP_LOSS = "STOP_LOSS"
    STOP_LOSS_MARKET = "STOP_LOSS_MARKET"


class OrderStatus(Enum):
    PENDING = "PENDING"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class OrderRequest:
    """Order to be placed with the broker.

    Attributes:
        security_id: Broker security id of the instrument.
        side: Buy or sell.
        quantity: Number of shares.
        order_type: Market, limit, or stop variants.
        price: Limit price (0 for market orders).
        trigger_price: Trigger for stop orders.
        symbol: Trading symbol, for display and echo back.
        exchange_segment: Overrides the configured default segment.
        product_type: Overrides the configured default product type.
    """

    security_id: str
    side: OrderSide
    quantity: int
    order_type: OrderType = OrderType.MARKET
    price: float = 0.0
    trigger_price: float = 0.0
    symbol: str | None = None
    exchange_segment: str | None = None
    product_type: str | None = None


@dataclass(frozen=True)
class Order:
    """Order as reported by the broker."""

    order_id: str
    symbol: str
    side: OrderSide
    quantity: int
    price: float
    order_type: OrderType
    status: OrderStatus
    timestamp: datetime
    security_id: str | None = None


@dataclass(frozen=True)
class Position:
    """Open position or holding.

    Attributes:
        symbol: Trading symbol.
        quantity: Net quantity held.
        avg_price: Average cost per share.
        current_price: Last traded price, None when not reported.
        pnl: Profit and loss in currency units, None when unknown.
        security_id: Broker security id, when reported.
    """

    symbol: str
    quantity: int
    avg_price: float
    current_price: float | None = None
    pnl: float | None = None
    security_id: str | None = None

    @property
    def pnl_percent(self) -> float | None:
        if self.pnl is None:
            return None
        cost = self.avg_price * self.quantity
        if cost == 0:
            return 0.0
        return self.pnl / abs(cost) * 100

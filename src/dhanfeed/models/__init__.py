"""Feed and broker data models."""

from dhanfeed.models.instrument import Credentials, Instrument
from dhanfeed.models.order import Order, OrderRequest, OrderSide, OrderStatus, OrderType, Position
from dhanfeed.models.quote import Provenance, QuoteSource, StockQuote
from dhanfeed.models.snapshot import MarketSnapshot
from dhanfeed.models.tick import Tick

__all__ = [
    "Credentials",
    "Instrument",
    "MarketSnapshot",
    "Order",
    "OrderRequest",
    "OrderSide",
    "OrderStatus",
    "OrderType",
    "Position",
    "Provenance",
    "QuoteSource",
    "StockQuote",
    "Tick",
]

"""dhanfeed — live NSE market data for the Dhan trading dashboard.

Binary WebSocket feed with keep-alive and bounded reconnects, batched
instrument subscriptions, and a quote aggregator that falls back from the
live feed to REST quotes to static data, tagging every quote with where it
came from.

Quick start::

    from dhanfeed import create_aggregator_from_env
    agg = create_aggregator_from_env()
    await agg.watch(["2885", "11536"])
    await agg.start()
    snapshot = await agg.get_snapshot(["2885", "11536"])
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

from dhanfeed.aggregator import MarketDataAggregator
from dhanfeed.cache import QuoteCache
from dhanfeed.calendar import is_market_open, market_status, next_market_open
from dhanfeed.config import FeedConfig
from dhanfeed.connection import ConnectionState, FeedConnection
from dhanfeed.decoder import DisconnectFrame, ResponseCode, decode_frame
from dhanfeed.errors import (
    ConnectionExhausted,
    CredentialsMissing,
    FeedError,
    FeedErrorCode,
    MalformedFrame,
    OrderFailed,
    RestUnavailable,
    TransportError,
)
from dhanfeed.fallback import StaticQuoteBook
from dhanfeed.log import configure_logging
from dhanfeed.models import (
    Credentials,
    Instrument,
    MarketSnapshot,
    Order,
    OrderRequest,
    OrderSide,
    OrderStatus,
    OrderType,
    Position,
    Provenance,
    QuoteSource,
    StockQuote,
    Tick,
)
from dhanfeed.registry import SubscriptionRegistry
from dhanfeed.rest import DhanRestClient

__version__ = "0.1.0"

__all__ = [
    # Aggregator
    "MarketDataAggregator",
    "create_aggregator_from_env",
    # Feed
    "FeedConnection",
    "ConnectionState",
    "SubscriptionRegistry",
    "ResponseCode",
    "DisconnectFrame",
    "decode_frame",
    # REST and data tiers
    "DhanRestClient",
    "QuoteCache",
    "StaticQuoteBook",
    # Calendar
    "is_market_open",
    "market_status",
    "next_market_open",
    # Config and logging
    "FeedConfig",
    "configure_logging",
    # Errors
    "FeedError",
    "FeedErrorCode",
    "CredentialsMissing",
    "MalformedFrame",
    "TransportError",
    "ConnectionExhausted",
    "RestUnavailable",
    "OrderFailed",
    # Models
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


def create_aggregator_from_env() -> MarketDataAggregator:
    """Zero-config factory — reads credentials and endpoints from env vars.

    A ``.env`` file in the working directory is loaded first.

    Environment variables:
        DHAN_ACCESS_TOKEN: Broker access token.
        DHAN_CLIENT_ID: Broker client id.
        DHAN_FEED_URL: Live feed endpoint (default: "wss://api-feed.dhan.co").
        DHAN_API_URL: REST base URL (default: "https://api.dhan.co/v2").
        DHAN_CACHE_TTL: Quote cache TTL in seconds (default: 60).
        DHAN_LOG_LEVEL: Log level for the stderr sink (default: "INFO").
    """
    load_dotenv()
    configure_logging(os.getenv("DHAN_LOG_LEVEL", "INFO"))

    defaults = FeedConfig()
    config = FeedConfig(
        feed_url=os.getenv("DHAN_FEED_URL", defaults.feed_url),
        api_url=os.getenv("DHAN_API_URL", defaults.api_url),
        cache_ttl_seconds=int(os.getenv("DHAN_CACHE_TTL", str(defaults.cache_ttl_seconds))),
    )

    token = os.getenv("DHAN_ACCESS_TOKEN")
    client_id = os.getenv("DHAN_CLIENT_ID")
    credentials = Credentials(token, client_id) if token and client_id else None

    return MarketDataAggregator(config, credentials=credentials)

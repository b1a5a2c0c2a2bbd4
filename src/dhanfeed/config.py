"""Feed configuration."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class FeedConfig:
    """Configuration for FeedConnection, DhanRestClient and MarketDataAggregator.

    Attributes:
        feed_url: WebSocket endpoint of the live market feed.
        api_url: Base URL of the broker REST API.
        api_version: Feed protocol version sent as the ``version`` query param.
        auth_type: Feed auth type sent as the ``authType`` query param.
        ping_interval: Seconds between keep-alive messages while connected.
        max_reconnect_attempts: Reconnect ceiling before the feed is closed.
        reconnect_base_delay: Backoff unit; attempt ``n`` waits ``n`` units.
        subscribe_batch_size: Max instruments per subscribe message.
        cache_ttl_seconds: Age after which a cached quote is no longer fresh.
        cache_max_entries: LRU bound of the quote cache.
        request_timeout: Timeout in seconds for REST calls.
        exchange_segment: Default segment for instruments and orders.
        product_type: Default product type for orders.
    """

    feed_url: str = "wss://api-feed.dhan.co"
    api_url: str = "https://api.dhan.co/v2"
    api_version: int = 2
    auth_type: int = 2
    ping_interval: float = 10.0
    max_reconnect_attempts: int = 5
    reconnect_base_delay: float = 1.0
    subscribe_batch_size: int = 100
    cache_ttl_seconds: int = 60
    cache_max_entries: int = 1000
    request_timeout: float = 10.0
    exchange_segment: str = "NSE_EQ"
    product_type: str = "CNC"

"""MarketDataAggregator — merged quote view with live -> REST -> fallback tiers."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, TypeVar

from loguru import logger

from dhanfeed.cache import QuoteCache
from dhanfeed.calendar import is_market_open
from dhanfeed.config import FeedConfig
from dhanfeed.connection import ConnectionState, FeedConnection
from dhanfeed.errors import FeedError
from dhanfeed.fallback import StaticQuoteBook
from dhanfeed.models.instrument import Credentials, Instrument
from dhanfeed.models.order import Order, OrderRequest, OrderStatus, Position
from dhanfeed.models.quote import QuoteSource, StockQuote
from dhanfeed.models.snapshot import MarketSnapshot
from dhanfeed.models.tick import Tick
from dhanfeed.rest import DhanRestClient

T = TypeVar("T")

InstrumentLike = Instrument | str


class MarketDataAggregator:
    """Central orchestrator: feed cache -> REST quotes -> stale/static fallback.

    A quote read never raises: when the feed and REST are both unavailable
    the caller gets a fallback quote whose provenance says so.

    Usage::

        agg = MarketDataAggregator(FeedConfig(), credentials=Credentials(token, cid))
        await agg.watch([Instrument("NSE_EQ", "2885")])
        await agg.start()
        snap = await agg.get_snapshot(["2885"])

    Args:
        config: Shared feed/REST settings.
        credentials: Broker credentials, forwarded to feed and REST.
        connection: Feed connection (built from ``config`` if omitted).
        rest: REST client (built from ``config`` if omitted).
        fallback: Static quotes for the last tier.
        cache: Quote cache; TTL defaults to ``config.cache_ttl_seconds``.
        market_open: Market-hours check; defaults to the NSE calendar.
    """

    def __init__(
        self,
        config: FeedConfig | None = None,
        *,
        credentials: Credentials | None = None,
        connection: FeedConnection | None = None,
        rest: DhanRestClient | None = None,
        fallback: StaticQuoteBook | None = None,
        cache: QuoteCache | None = None,
        market_open: Callable[[], bool] | None = None,
    ) -> None:
        self.config = config or FeedConfig()
        self.connection = connection or FeedConnection(self.config, credentials=credentials)
        self.rest = rest or DhanRestClient(self.config, credentials)
        self.fallback = fallback if fallback is not None else StaticQuoteBook()
        if cache is None:
            cache = QuoteCache(
                ttl_seconds=self.config.cache_ttl_seconds,
                max_entries=self.config.cache_max_entries,
            )
        self.cache = cache
        self._market_open = market_open or is_market_open

        self._watched: dict[str, Instrument] = {}
        self._resubscribe_pending = False
        self._resubscribe_task: asyncio.Task | None = None

        self.connection.add_state_listener(self._on_state_change)
        self.connection.add_error_listener(self._on_feed_error)

    def set_credentials(self, credentials: Credentials) -> None:
        self.connection.set_credentials(credentials)
        self.rest.set_credentials(credentials)

    def is_market_open(self) -> bool:
        return self._market_open()

    @property
    def watched(self) -> list[Instrument]:
        return list(self._watched.values())

    # ------------------------------------------------------------- lifecycle

    async def start(self) -> bool:
        """Connect the live feed if the market is open and credentials exist.

        Returns True when the feed is connected. Feed failures are logged;
        snapshots keep working from REST and fallback data.
        """
        if not self.is_market_open():
            logger.info("Market closed; live feed not started")
            return False
        if not self.connection.has_credentials:
            logger.warning("No feed credentials; serving REST/fallback quotes only")
            return False
        try:
            await self.connection.connect()
        except FeedError as exc:
            logger.warning("Live feed unavailable, serving REST/fallback quotes: {}", exc)
            return False
        await self._subscribe_watched()
        return True

    async def stop(self) -> None:
        if self._resubscribe_task is not None and not self._resubscribe_task.done():
            self._resubscribe_task.cancel()
        self._resubscribe_task = None
        await self.connection.disconnect()

    # -------------------------------------------------------------- watching

    async def watch(self, instruments: Iterable[InstrumentLike]) -> None:
        """Track instruments; live ticks for them update the cache."""
        added = []
        for item in instruments:
            inst = self._as_instrument(item)
            self._watched[inst.security_id] = inst
            self.connection.subscribe(inst.security_id, self._on_tick)
            added.append(inst)
        if added and self.connection.is_connected:
            try:
                await self.connection.subscribe_to_instruments(added)
            except FeedError as exc:
                logger.warning("Could not subscribe {} instruments: {}", len(added), exc)

    def unwatch(self, instrument_id: str) -> None:
        self._watched.pop(str(instrument_id), None)
        self.connection.unsubscribe(str(instrument_id))

    async def _subscribe_watched(self) -> None:
        if not self._watched:
            return
        for security_id in self._watched:
            self.connection.subscribe(security_id, self._on_tick)
        try:
            await self.connection.subscribe_to_instruments(list(self._watched.values()))
        except FeedError as exc:
            logger.warning("Could not subscribe watched instruments: {}", exc)

    def _on_tick(self, tick: Tick) -> None:
        self.cache.put(self._label(StockQuote.from_tick(tick)))

    def _on_state_change(self, state: ConnectionState) -> None:
        if state is ConnectionState.RECONNECTING:
            self._resubscribe_pending = True
        elif state is ConnectionState.CONNECTED and self._resubscribe_pending:
            # the server forgot our subscriptions with the old transport
            self._resubscribe_pending = False
            self._resubscribe_task = asyncio.create_task(
                self._subscribe_watched(), name="dhanfeed-resubscribe"
            )
        elif state is ConnectionState.CLOSED:
            self._resubscribe_pending = False

    def _on_feed_error(self, error: FeedError) -> None:
        logger.error("Live feed stopped ({}); snapshots fall back to REST/static data", error)

    # ------------------------------------------------------------- snapshots

    async def get_snapshot(
        self,
        instruments: Iterable[InstrumentLike],
        force_refresh: bool = False,
    ) -> MarketSnapshot:
        """Build the current view of ``instruments``.

        Market closed: fallback quotes only, no network. Market open: fresh
        cached quotes, then one REST call for the rest, then fallback for
        whatever REST could not supply. ``force_refresh`` skips the cache.
        """
        requested = [self._as_instrument(i) for i in instruments]
        now = datetime.now(timezone.utc)

        if not self.is_market_open():
            quotes = {i.security_id: self._fallback_quote(i.security_id) for i in requested}
            return MarketSnapshot(quotes=quotes, market_open=False, created_at=now)

        found: dict[str, StockQuote] = {}
        missing: list[Instrument] = []
        for inst in requested:
            cached = None if force_refresh else self.cache.get(inst.security_id)
            if cached is not None:
                found[inst.security_id] = cached
            else:
                missing.append(inst)

        if missing:
            found.update(await self._fetch_quotes(missing))

        quotes = {
            i.security_id: found.get(i.security_id) or self._fallback_quote(i.security_id)
            for i in requested
        }
        return MarketSnapshot(quotes=quotes, market_open=True, created_at=now)

    async def get_quote(self, instrument: InstrumentLike, force_refresh: bool = False) -> StockQuote:
        inst = self._as_instrument(instrument)
        snapshot = await self.get_snapshot([inst], force_refresh=force_refresh)
        return snapshot[inst.security_id]

    async def _fetch_quotes(self, instruments: list[Instrument]) -> dict[str, StockQuote]:
        try:
            result = await asyncio.to_thread(self.rest.get_quotes, instruments)
        except FeedError as exc:
            logger.warning("REST quotes unavailable, serving fallback: {}", exc)
            return {}
        fetched: dict[str, StockQuote] = {}
        for quote in result.items:
            quote = self._label(quote)
            self.cache.put(quote)
            fetched[quote.instrument_id] = quote
        return fetched

    def _fallback_quote(self, instrument_id: str) -> StockQuote:
        stale = self.cache.get_stale(instrument_id)
        if stale is not None:
            return replace(stale, source=QuoteSource.STALE)
        return self.fallback.get(instrument_id)

    def _label(self, quote: StockQuote) -> StockQuote:
        if quote.symbol is not None:
            return quote
        symbol, name = self.fallback.describe(quote.instrument_id)
        if symbol is None:
            return quote
        return replace(quote, symbol=symbol, name=name)

    def _as_instrument(self, item: InstrumentLike) -> Instrument:
        if isinstance(item, Instrument):
            return item
        key = str(item)
        return self._watched.get(key) or Instrument(self.config.exchange_segment, key)

    # ---------------------------------------------------------------- orders

    async def place_order(self, request: OrderRequest) -> Order:
        """Place an order. Failures propagate with the broker's message."""
        try:
            return await asyncio.to_thread(self.rest.place_order, request)
        except FeedError as exc:
            logger.error("Order placement failed: {}", exc)
            raise

    async def modify_order(self, order_id: str, **changes: Any) -> str:
        try:
            return await asyncio.to_thread(self.rest.modify_order, order_id, **changes)
        except FeedError as exc:
            logger.error("Order {} modification failed: {}", order_id, exc)
            raise

    async def cancel_order(self, order_id: str) -> OrderStatus:
        try:
            return await asyncio.to_thread(self.rest.cancel_order, order_id)
        except FeedError as exc:
            logger.error("Order {} cancellation failed: {}", order_id, exc)
            raise

    # ----------------------------------------------------------------- reads

    async def get_orders(self) -> list[Order]:
        result = await self._read("orders", self.rest.get_orders, None)
        return result.items if result is not None else []

    async def get_positions(self) -> list[Position]:
        result = await self._read("positions", self.rest.get_positions, None)
        return result.items if result is not None else []

    async def get_holdings(self) -> list[Position]:
        result = await self._read("holdings", self.rest.get_holdings, None)
        return result.items if result is not None else []

    async def get_trades(self) -> list[dict[str, Any]]:
        return await self._read("trades", self.rest.get_trades, [])

    async def get_fund_limit(self) -> dict[str, Any] | None:
        return await self._read("fund limit", self.rest.get_fund_limit, None)

    @staticmethod
    async def _read(what: str, fetch: Callable[[], T], default: Any) -> T | Any:
        try:
            return await asyncio.to_thread(fetch)
        except FeedError as exc:
            logger.warning("Could not load {}: {}", what, exc)
            return default

"""Shared fixtures for dhanfeed tests."""

from __future__ import annotations

import asyncio
import json
import struct
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

# Ensure src/ is on the path for editable-style imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from dhanfeed.config import FeedConfig
from dhanfeed.connection import FeedConnection
from dhanfeed.models.instrument import Credentials
from dhanfeed.models.quote import QuoteSource, StockQuote

_END = object()


# ------------------------------------------------------------------ frames

def make_header(code: int, instrument_id: int) -> bytes:
    return struct.pack("<HIxx", code, instrument_id)


def make_ticker_frame(instrument_id: int, price: float, epoch: int) -> bytes:
    return make_header(2, instrument_id) + struct.pack("<dI", price * 100, epoch)


def make_quote_frame(
    instrument_id: int,
    ltp: float,
    volume: int,
    open_: float,
    high: float,
    low: float,
    close: float,
    code: int = 4,
) -> bytes:
    body = struct.pack("<dIdddd", ltp * 100, volume, open_ * 100, high * 100, low * 100, close * 100)
    return make_header(code, instrument_id) + body


def make_disconnect_frame(instrument_id: int = 0, reason: int | None = None) -> bytes:
    frame = make_header(50, instrument_id)
    if reason is not None:
        frame += struct.pack("<H", reason)
    return frame


# --------------------------------------------------------------- transport

class FakeTransport:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.close_code: int | None = None
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    @property
    def sent_json(self) -> list[dict[str, Any]]:
        return [json.loads(m) for m in self.sent]

    def request_codes(self) -> list[int]:
        return [m["RequestCode"] for m in self.sent_json]

    def feed(self, message: bytes | str) -> None:
        """Queue a message as if the server had sent it."""
        self._incoming.put_nowait(message)

    def drop(self, code: int = 1006) -> None:
        """End the stream as if the server closed with ``code``."""
        self.close_code = code
        self.closed = True
        self._incoming.put_nowait(_END)

    async def send(self, message: str) -> None:
        if self.closed:
            raise OSError("transport is closed")
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if not self.closed:
            self.closed = True
            self.close_code = code
            self._incoming.put_nowait(_END)

    def __aiter__(self) -> FakeTransport:
        return self

    async def __anext__(self) -> bytes | str:
        item = await self._incoming.get()
        if item is _END:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Connector that fails ``failures`` times, then hands out FakeTransports."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls: list[str] = []
        self.transports: list[FakeTransport] = []

    async def __call__(self, url: str) -> FakeTransport:
        self.calls.append(url)
        if self.failures > 0:
            self.failures -= 1
            raise OSError("connection refused")
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.transports[-1]


class RecordingSleep:
    """Backoff sleep that records delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


async def until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until ``predicate()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


# ---------------------------------------------------------------- fixtures

@pytest.fixture
def credentials() -> Credentials:
    return Credentials(token="tok-123", client_id="1000000001")


@pytest.fixture
def feed_config() -> FeedConfig:
    return FeedConfig(ping_interval=60.0)


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def backoff_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def connection(feed_config, credentials, connector, backoff_sleep) -> FeedConnection:
    return FeedConnection(
        feed_config,
        credentials=credentials,
        connector=connector,
        sleep=backoff_sleep,
    )


@pytest.fixture
def sample_quote() -> StockQuote:
    return StockQuote(
        instrument_id="2885",
        price=2456.75,
        open=2445.30,
        high=2478.90,
        low=2434.20,
        close=2433.30,
        volume=1234567.0,
        timestamp=datetime(2024, 1, 15, 4, 30, tzinfo=timezone.utc),
        source=QuoteSource.FEED,
        symbol="RELIANCE",
    )

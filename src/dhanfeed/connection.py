"""FeedConnection — live-feed transport lifecycle, keep-alive and reconnects.

State machine::

    Disconnected -> Connecting -> Connected -> Reconnecting -> Connecting ...
                                     |              |
                                     +--> Closed <--+  (disconnect / ceiling hit)

Every scheduled task (reader, keep-alive, reconnect backoff) is owned by the
connection and cancelled whenever the state it depends on is left, so a
manual ``disconnect()`` never races a pending reconnect.
"""

from __future__ import annotations

import asyncio
import json
import time
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol, Union
from urllib.parse import urlencode

from loguru import logger
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from dhanfeed.config import FeedConfig
from dhanfeed.decoder import DisconnectFrame, decode_frame
from dhanfeed.errors import ConnectionExhausted, CredentialsMissing, FeedError, MalformedFrame, TransportError
from dhanfeed.models.instrument import Credentials, Instrument
from dhanfeed.models.tick import Tick
from dhanfeed.registry import SubscriptionRegistry

NORMAL_CLOSURE = 1000

PING_MESSAGE = {"RequestCode": 16}
DISCONNECT_MESSAGE = {"RequestCode": 12}

Message = Union[bytes, str]


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class Transport(Protocol):
    """The subset of a websockets ``ClientConnection`` the feed relies on."""

    @property
    def close_code(self) -> int | None: ...

    async def send(self, message: str) -> None: ...

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None: ...

    def __aiter__(self) -> AsyncIterator[Message]: ...


Connector = Callable[[str], Awaitable[Transport]]
StateListener = Callable[[ConnectionState], None]
ErrorListener = Callable[[FeedError], None]

_TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


async def open_websocket(url: str) -> Transport:
    """Default connector: the protocol's JSON ping replaces websocket pings."""
    return await ws_connect(
        url,
        ping_interval=None,
        ping_timeout=None,
        close_timeout=5,
        max_size=2**20,
    )


class FeedConnection:
    """Owns the feed transport, its keep-alive, and the reconnect policy.

    Usage::

        conn = FeedConnection(FeedConfig())
        conn.set_credentials(Credentials(token, client_id))
        await conn.connect()
        conn.subscribe("2885", on_tick)
        await conn.subscribe_to_instruments([Instrument("NSE_EQ", "2885")])
        ...
        await conn.disconnect()

    Args:
        config: Endpoint, keep-alive and reconnect settings.
        credentials: Optional credentials; may be set later.
        connector: Coroutine opening a transport for a URL. Defaults to
            ``websockets``.
        sleep: Coroutine used for reconnect backoff delays.
    """

    def __init__(
        self,
        config: FeedConfig | None = None,
        *,
        credentials: Credentials | None = None,
        connector: Connector | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self.config = config or FeedConfig()
        self._credentials = credentials
        self._connector = connector or open_websocket
        self._sleep = sleep or asyncio.sleep

        self._state = ConnectionState.DISCONNECTED
        self._transport: Transport | None = None
        self._reconnect_attempts = 0
        self._closed = asyncio.Event()

        self._reader_task: asyncio.Task | None = None
        self._keepalive_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None

        self._state_listeners: list[StateListener] = []
        self._error_listeners: list[ErrorListener] = []
        self.last_error: FeedError | None = None

        self.registry = SubscriptionRegistry(
            self._send_json,
            lambda: self.is_connected,
            batch_size=self.config.subscribe_batch_size,
        )

        self._frames_received = 0
        self._ticks_dispatched = 0
        self._malformed_frames = 0
        self._connected_since: float | None = None

    # ------------------------------------------------------------ properties

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._transport is not None

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def has_credentials(self) -> bool:
        return self._credentials is not None and self._credentials.complete

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "frames_received": self._frames_received,
            "ticks_dispatched": self._ticks_dispatched,
            "malformed_frames": self._malformed_frames,
            "reconnect_attempts": self._reconnect_attempts,
            "connected_since": self._connected_since,
            "subscriptions": len(self.registry),
        }

    def set_credentials(self, credentials: Credentials) -> None:
        self._credentials = credentials

    def feed_url(self) -> str:
        if not self.has_credentials:
            raise CredentialsMissing("Feed credentials (token, client id) are not set")
        assert self._credentials is not None
        query = urlencode({
            "version": self.config.api_version,
            "token": self._credentials.token,
            "clientId": self._credentials.client_id,
            "authType": self.config.auth_type,
        })
        return f"{self.config.feed_url}?{query}"

    # ------------------------------------------------------------- listeners

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.debug("Feed state {} -> {}", self._state.value, state.value)
        self._state = state
        if state is ConnectionState.CLOSED:
            self._closed.set()
        elif state is ConnectionState.CONNECTING:
            self._closed.clear()
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener failed on {}", state.value)

    def _notify_error(self, error: FeedError) -> None:
        self.last_error = error
        for listener in list(self._error_listeners):
            try:
                listener(error)
            except Exception:
                logger.exception("Error listener failed on {}", error.code.value)

    # ------------------------------------------------------------ lifecycle

    async def connect(self, credentials: Credentials | None = None) -> bool:
        """Open the feed. Idempotent while connected.

        Raises:
            CredentialsMissing: No complete credentials are available.
            TransportError: The transport could not be opened. The reconnect
                policy has already been started when this is raised.
        """
        if credentials is not None:
            self._credentials = credentials
        url = self.feed_url()

        if self.is_connected:
            return True

        self._cancel(self._reconnect_task)
        self._reconnect_task = None
        self._reconnect_attempts = 0

        try:
            return await self._open(url)
        except TransportError as exc:
            self._on_transport_failure(str(exc))
            raise

    async def disconnect(self) -> None:
        """Gracefully leave the feed. Safe to call in any state."""
        current = asyncio.current_task()
        tasks = [self._reconnect_task, self._keepalive_task, self._reader_task]
        self._reconnect_task = self._keepalive_task = self._reader_task = None
        pending = [t for t in tasks if t is not None and t is not current and not t.done()]
        for task in pending:
            task.cancel()

        transport = self._transport
        was_connected = self._state is ConnectionState.CONNECTED
        self._transport = None
        self._connected_since = None

        if transport is not None:
            if was_connected:
                try:
                    await transport.send(json.dumps(DISCONNECT_MESSAGE))
                except (ConnectionClosed, OSError) as exc:
                    logger.debug("Could not send disconnect message: {}", exc)
            try:
                await transport.close(code=NORMAL_CLOSURE)
            except _TRANSPORT_ERRORS as exc:
                logger.debug("Error closing feed transport: {}", exc)

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self.registry.clear()
        if self._state is not ConnectionState.CLOSED:
            logger.info("Feed disconnected")
        self._set_state(ConnectionState.CLOSED)

    async def wait_closed(self) -> None:
        """Wait until the connection reaches ``Closed``."""
        await self._closed.wait()

    # ---------------------------------------------------------- subscribing

    def subscribe(self, instrument_id: str, callback: Callable[[Tick], None]) -> None:
        self.registry.subscribe(instrument_id, callback)

    def unsubscribe(self, instrument_id: str) -> None:
        self.registry.unsubscribe(instrument_id)

    async def subscribe_to_instruments(self, instruments: list[Instrument]) -> int:
        return await self.registry.subscribe_to_instruments(instruments)

    # ------------------------------------------------------------- internal

    async def _open(self, url: str) -> bool:
        self._set_state(ConnectionState.CONNECTING)
        logger.info("Connecting to live feed {}", self.config.feed_url)
        try:
            transport = await self._connector(url)
        except _TRANSPORT_ERRORS as exc:
            raise TransportError(f"Could not open feed: {exc}") from exc

        if self._state is not ConnectionState.CONNECTING:
            # disconnect() ran while the transport was opening
            await transport.close(code=NORMAL_CLOSURE)
            return False

        self._transport = transport
        self._reconnect_attempts = 0
        self._connected_since = time.time()
        self._set_state(ConnectionState.CONNECTED)
        logger.info("Connected to live feed")

        self._keepalive_task = asyncio.create_task(
            self._keepalive(transport), name="dhanfeed-keepalive"
        )
        self._reader_task = asyncio.create_task(
            self._read(transport), name="dhanfeed-reader"
        )
        return True

    async def _send_json(self, message: dict[str, Any]) -> None:
        transport = self._transport
        if transport is None:
            raise TransportError("Feed is not connected")
        try:
            await transport.send(json.dumps(message))
        except (ConnectionClosed, OSError) as exc:
            raise TransportError(f"Send failed: {exc}") from exc

    async def _keepalive(self, transport: Transport) -> None:
        ping = json.dumps(PING_MESSAGE)
        while True:
            await asyncio.sleep(self.config.ping_interval)
            if self._transport is not transport or self._state is not ConnectionState.CONNECTED:
                return
            try:
                await transport.send(ping)
            except (ConnectionClosed, OSError) as exc:
                logger.warning("Keep-alive failed, connection probably lost: {}", exc)
                return

    async def _read(self, transport: Transport) -> None:
        server_disconnect = False
        try:
            async for message in transport:
                if self._handle_message(message):
                    server_disconnect = True
                    break
        except ConnectionClosed as exc:
            logger.warning("Feed connection closed: {}", exc)
        except OSError as exc:
            logger.error("Feed network error: {}", exc)

        if self._transport is not transport:
            return

        if server_disconnect:
            await self.disconnect()
            return

        close_code = transport.close_code
        self._drop_transport()
        if close_code == NORMAL_CLOSURE:
            logger.info("Feed closed normally by server")
            self._set_state(ConnectionState.DISCONNECTED)
        else:
            self._on_transport_failure(f"Feed closed unexpectedly (code {close_code})")

    def _handle_message(self, message: Message) -> bool:
        """Decode and dispatch one message. Returns True on server disconnect."""
        if isinstance(message, str):
            logger.debug("Ignoring text message from feed: {}", message[:200])
            return False

        self._frames_received += 1
        try:
            decoded = decode_frame(message)
        except MalformedFrame as exc:
            self._malformed_frames += 1
            logger.warning("Dropping malformed frame: {}", exc)
            return False

        if decoded is None:
            return False
        if isinstance(decoded, DisconnectFrame):
            logger.info("Server requested disconnection (reason {})", decoded.reason_code)
            return True

        try:
            if self.registry.dispatch(decoded):
                self._ticks_dispatched += 1
        except Exception:
            logger.exception("Tick callback failed for instrument {}", decoded.instrument_id)
        return False

    def _drop_transport(self) -> None:
        """Forget a transport that is already gone and stop its keep-alive."""
        self._cancel(self._keepalive_task)
        self._keepalive_task = None
        self._reader_task = None
        self._transport = None
        self._connected_since = None
        self.registry.forget_server_subscriptions()

    def _on_transport_failure(self, reason: str) -> None:
        if self._state is ConnectionState.CLOSED:
            return
        self.last_error = TransportError(reason)
        logger.warning("{}", reason)
        if self._reconnect_attempts >= self.config.max_reconnect_attempts:
            self._exhaust()
            return
        self._set_state(ConnectionState.RECONNECTING)
        self._reconnect_task = asyncio.create_task(
            self._reconnect_loop(), name="dhanfeed-reconnect"
        )

    async def _reconnect_loop(self) -> None:
        ceiling = self.config.max_reconnect_attempts
        while True:
            self._reconnect_attempts += 1
            delay = self._reconnect_attempts * self.config.reconnect_base_delay
            logger.info(
                "Reconnecting in {:.1f}s (attempt {}/{})",
                delay, self._reconnect_attempts, ceiling,
            )
            await self._sleep(delay)
            if self._state is not ConnectionState.RECONNECTING:
                return
            try:
                url = self.feed_url()
            except CredentialsMissing as exc:
                logger.error("Cannot reconnect: {}", exc)
                self._exhaust()
                return
            try:
                await self._open(url)
                return
            except TransportError as exc:
                self.last_error = exc
                logger.warning("Reconnect attempt {} failed: {}", self._reconnect_attempts, exc)
            if self._reconnect_attempts >= ceiling:
                self._exhaust()
                return
            self._set_state(ConnectionState.RECONNECTING)

    def _exhaust(self) -> None:
        error = ConnectionExhausted(
            f"Gave up after {self._reconnect_attempts} reconnect attempts"
        )
        logger.error("{}", error)
        self.registry.clear()
        self._set_state(ConnectionState.CLOSED)
        self._notify_error(error)

    @staticmethod
    def _cancel(task: asyncio.Task | None) -> None:
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

"""Instrument subscription registry — callbacks and batched subscribe messages."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Iterable, Iterator, Sequence, TypeVar

from loguru import logger

from dhanfeed.models.instrument import Instrument
from dhanfeed.models.tick import Tick

SUBSCRIBE_REQUEST_CODE = 15
MAX_BATCH_SIZE = 100

TickCallback = Callable[[Tick], None]
SendFn = Callable[[dict[str, Any]], Awaitable[None]]

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size <= 0:
        raise ValueError("size must be positive")
    for i in range(0, len(items), size):
        yield items[i:i + size]


def build_subscribe_messages(
    instruments: Sequence[Instrument],
    batch_size: int = MAX_BATCH_SIZE,
) -> list[dict[str, Any]]:
    """Split instruments into subscribe control messages of at most ``batch_size``."""
    batch_size = min(batch_size, MAX_BATCH_SIZE)
    return [
        {
            "RequestCode": SUBSCRIBE_REQUEST_CODE,
            "InstrumentCount": len(batch),
            "InstrumentList": [inst.to_wire() for inst in batch],
        }
        for batch in chunked(instruments, batch_size)
    ]


class SubscriptionRegistry:
    """Maps instrument ids to tick callbacks and tracks server-side subscriptions.

    Local delivery (``subscribe``/``unsubscribe``) is kept apart from telling
    the server what to stream (``subscribe_to_instruments``). One callback per
    instrument: registering again replaces the previous callback.

    Args:
        send: Coroutine that writes one JSON control message to the transport.
        is_connected: Returns True while the transport can accept messages.
        batch_size: Max instruments per subscribe message (capped at 100).
    """

    def __init__(
        self,
        send: SendFn,
        is_connected: Callable[[], bool],
        batch_size: int = MAX_BATCH_SIZE,
    ) -> None:
        self._send = send
        self._is_connected = is_connected
        self.batch_size = min(batch_size, MAX_BATCH_SIZE)
        self._callbacks: dict[str, TickCallback] = {}
        self._subscribed: dict[str, Instrument] = {}

    # ------------------------------------------------------------ callbacks

    def subscribe(self, instrument_id: str, callback: TickCallback) -> None:
        self._callbacks[str(instrument_id)] = callback

    def unsubscribe(self, instrument_id: str) -> None:
        self._callbacks.pop(str(instrument_id), None)

    def has_callback(self, instrument_id: str) -> bool:
        return str(instrument_id) in self._callbacks

    def dispatch(self, tick: Tick) -> bool:
        """Deliver a tick to its instrument's callback.

        Returns False when no callback is registered (the tick is dropped).
        """
        callback = self._callbacks.get(tick.instrument_id)
        if callback is None:
            return False
        callback(tick)
        return True

    # ----------------------------------------------------- server-side subs

    @property
    def subscribed_instruments(self) -> list[Instrument]:
        return list(self._subscribed.values())

    async def subscribe_to_instruments(self, instruments: Iterable[Instrument]) -> int:
        """Send batched subscribe requests for ``instruments``.

        Returns the number of messages sent; 0 (with a warning) when the
        transport is not connected.
        """
        instruments = list(instruments)
        if not self._is_connected():
            logger.warning(
                "Feed not connected; skipping subscribe for {} instruments", len(instruments)
            )
            return 0

        messages = build_subscribe_messages(instruments, self.batch_size)
        for message in messages:
            await self._send(message)
            for entry in message["InstrumentList"]:
                inst = Instrument(entry["ExchangeSegment"], entry["SecurityId"])
                self._subscribed[inst.security_id] = inst
        logger.info(
            "Subscribed {} instruments in {} batch(es)", len(instruments), len(messages)
        )
        return len(messages)

    # ------------------------------------------------------------- teardown

    def forget_server_subscriptions(self) -> None:
        """Transport lost: the server no longer streams anything for us."""
        self._subscribed.clear()

    def clear(self) -> None:
        self._callbacks.clear()
        self._subscribed.clear()

    def __len__(self) -> int:
        return len(self._callbacks)

"""Binary market-feed frame decoder.

Every frame starts with an 8-byte little-endian header::

    offset 0  uint16  response code
    offset 2  uint32  instrument (security) id
    offset 6  2 bytes reserved

The body layout depends on the response code. Prices are encoded as
float64 in sub-units and divided by ``PRICE_SCALE``. The layout and the
scale have not been checked against a capture of the production feed;
treat them as a placeholder protocol.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum
from typing import Union

from loguru import logger

from dhanfeed.errors import MalformedFrame
from dhanfeed.models.tick import Tick

PRICE_SCALE = 100.0

HEADER_SIZE = 8
TICKER_SIZE = 20
QUOTE_SIZE = 52

_HEADER = struct.Struct("<HI")
_TICKER_BODY = struct.Struct("<dI")
_QUOTE_BODY = struct.Struct("<dIdddd")
_REASON = struct.Struct("<H")

Buffer = Union[bytes, bytearray, memoryview]


class ResponseCode(IntEnum):
    """Response codes of server -> client frames."""

    TICKER = 2
    QUOTE = 4
    FULL = 8
    DISCONNECT = 50


@dataclass(frozen=True)
class FrameHeader:
    response_code: int
    instrument_id: str


@dataclass(frozen=True)
class DisconnectFrame:
    """Server asked the client to leave. Not a tick."""

    instrument_id: str
    reason_code: int | None = None


def read_header(data: Buffer) -> FrameHeader:
    """Parse the 8-byte header. Raises ``MalformedFrame`` if too short."""
    if len(data) < HEADER_SIZE:
        raise MalformedFrame(f"Frame of {len(data)} bytes is shorter than the {HEADER_SIZE}-byte header")
    code, instrument_id = _HEADER.unpack_from(data, 0)
    return FrameHeader(response_code=code, instrument_id=str(instrument_id))


def decode_frame(
    data: Buffer,
    *,
    received_at: datetime | None = None,
    price_scale: float = PRICE_SCALE,
) -> Tick | DisconnectFrame | None:
    """Decode one frame.

    Args:
        data: Raw bytes of a single frame.
        received_at: Receive time, used as trade time for quote frames.
            Defaults to now (UTC).
        price_scale: Divisor applied to every encoded price.

    Returns:
        A ``Tick`` for ticker/quote/full frames, a ``DisconnectFrame`` for
        code 50, or ``None`` for response codes this decoder does not know.

    Raises:
        MalformedFrame: The buffer is shorter than its response code needs.
    """
    header = read_header(data)
    code = header.response_code

    if code == ResponseCode.TICKER:
        _require(data, TICKER_SIZE, code)
        raw_price, trade_epoch = _TICKER_BODY.unpack_from(data, HEADER_SIZE)
        price = raw_price / price_scale
        return Tick(
            instrument_id=header.instrument_id,
            last_traded_price=price,
            last_trade_time=datetime.fromtimestamp(trade_epoch, tz=timezone.utc),
            volume=0.0,
            open=price,
            high=price,
            low=price,
            close=price,
        )

    if code in (ResponseCode.QUOTE, ResponseCode.FULL):
        # Full frames carry market depth after the quote body; depth is not modelled.
        _require(data, QUOTE_SIZE, code)
        raw_ltp, volume, raw_open, raw_high, raw_low, raw_close = _QUOTE_BODY.unpack_from(data, HEADER_SIZE)
        return Tick(
            instrument_id=header.instrument_id,
            last_traded_price=raw_ltp / price_scale,
            last_trade_time=received_at or datetime.now(timezone.utc),
            volume=float(volume),
            open=raw_open / price_scale,
            high=raw_high / price_scale,
            low=raw_low / price_scale,
            close=raw_close / price_scale,
        )

    if code == ResponseCode.DISCONNECT:
        reason = None
        if len(data) >= HEADER_SIZE + _REASON.size:
            (reason,) = _REASON.unpack_from(data, HEADER_SIZE)
        return DisconnectFrame(instrument_id=header.instrument_id, reason_code=reason)

    logger.debug("Dropping frame with unknown response code {}", code)
    return None


def _require(data: Buffer, size: int, code: int) -> None:
    if len(data) < size:
        raise MalformedFrame(
            f"Response code {code} needs {size} bytes, frame has {len(data)}"
        )

"""Strict normalisation of broker REST responses.

Each record is parsed on its own; records that are missing required fields
or carry non-numeric values become ``ParseFailure`` entries instead of being
filled in with zeros, so callers can tell real data from gaps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Generic, TypeVar

from dhanfeed.calendar import IST
from dhanfeed.models.order import Order, OrderSide, OrderStatus, OrderType, Position
from dhanfeed.models.quote import QuoteSource, StockQuote

T = TypeVar("T")

_FILLED = {"COMPLETE", "COMPLETED", "TRADED", "FILLED"}
_CANCELLED = {"CANCELLED", "REJECTED", "EXPIRED"}


class ParseError(ValueError):
    """A single record could not be normalised."""


@dataclass
class ParseFailure:
    """Single record that failed to parse."""

    key: str
    reason: str
    raw: Any = None


@dataclass
class ParseResult(Generic[T]):
    """Parsed records plus the records that were rejected."""

    items: list[T] = field(default_factory=list)
    failures: list[ParseFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


# ------------------------------------------------------------------ fields

def _number(record: dict[str, Any], name: str) -> float:
    if name not in record or record[name] is None:
        raise ParseError(f"missing '{name}'")
    value = record[name]
    if isinstance(value, bool):
        raise ParseError(f"'{name}' is not numeric: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ParseError(f"'{name}' is not numeric: {value!r}") from None


def _optional_number(record: dict[str, Any], name: str) -> float | None:
    if record.get(name) is None:
        return None
    return _number(record, name)


def _text(record: dict[str, Any], name: str) -> str:
    value = record.get(name)
    if value is None or str(value).strip() == "":
        raise ParseError(f"missing '{name}'")
    return str(value).strip()


def _enum(enum_cls: type, record: dict[str, Any], name: str) -> Any:
    raw = _text(record, name).upper()
    try:
        return enum_cls(raw)
    except ValueError:
        raise ParseError(f"unknown {name} {raw!r}") from None


def _timestamp(record: dict[str, Any], name: str) -> datetime:
    raw = _text(record, name)
    try:
        parsed = datetime.strptime(raw, "%Y-%m-%d %H:%M:%S")
    except ValueError:
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            raise ParseError(f"'{name}' is not a timestamp: {raw!r}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=IST)
    return parsed


def _collect(
    records: Any,
    parse: Callable[[dict[str, Any]], T],
    key_field: str,
) -> ParseResult[T]:
    result: ParseResult[T] = ParseResult()
    if isinstance(records, dict) and isinstance(records.get("data"), list):
        records = records["data"]
    if not isinstance(records, list):
        result.failures.append(ParseFailure("<payload>", "expected a list of records", records))
        return result
    for i, record in enumerate(records):
        if not isinstance(record, dict):
            result.failures.append(ParseFailure(f"#{i}", "record is not an object", record))
            continue
        key = str(record.get(key_field) or f"#{i}")
        try:
            result.items.append(parse(record))
        except ParseError as exc:
            result.failures.append(ParseFailure(key, str(exc), record))
    return result


# ------------------------------------------------------------------ quotes

def parse_quote(instrument_id: str, record: dict[str, Any], received_at: datetime | None = None) -> StockQuote:
    """Normalise one market-feed quote record.

    ``last_price`` and the four ``ohlc`` prices are required; ``volume`` is
    optional because the OHLC endpoint does not report it.
    """
    if not isinstance(record, dict):
        raise ParseError("record is not an object")
    ohlc = record.get("ohlc")
    if not isinstance(ohlc, dict):
        raise ParseError("missing 'ohlc'")
    price = _number(record, "last_price")
    return StockQuote(
        instrument_id=str(instrument_id),
        price=price,
        open=_number(ohlc, "open"),
        high=_number(ohlc, "high"),
        low=_number(ohlc, "low"),
        close=_number(ohlc, "close"),
        volume=_optional_number(record, "volume") or 0.0,
        timestamp=received_at or datetime.now(timezone.utc),
        source=QuoteSource.REST,
    )


def parse_quotes(payload: Any, received_at: datetime | None = None) -> ParseResult[StockQuote]:
    """Parse a ``{"data": {segment: {security_id: record}}}`` quote response."""
    result: ParseResult[StockQuote] = ParseResult()
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        result.failures.append(ParseFailure("<payload>", "missing 'data' object", payload))
        return result

    for segment, records in data.items():
        if not isinstance(records, dict):
            result.failures.append(ParseFailure(str(segment), "segment is not an object", records))
            continue
        for instrument_id, record in records.items():
            try:
                result.items.append(parse_quote(instrument_id, record, received_at))
            except ParseError as exc:
                result.failures.append(ParseFailure(str(instrument_id), str(exc), record))
    return result


# ------------------------------------------------------------------ orders

def normalize_order_status(status: str | None) -> OrderStatus:
    """Collapse broker order states into pending / filled / cancelled."""
    value = (status or "").upper()
    if value in _FILLED:
        return OrderStatus.FILLED
    if value in _CANCELLED:
        return OrderStatus.CANCELLED
    return OrderStatus.PENDING


def parse_order(record: dict[str, Any]) -> Order:
    security_id = record.get("securityId")
    return Order(
        order_id=_text(record, "orderId"),
        symbol=_text(record, "tradingSymbol"),
        side=_enum(OrderSide, record, "transactionType"),
        quantity=int(_number(record, "quantity")),
        price=_number(record, "price"),
        order_type=_enum(OrderType, record, "orderType"),
        status=normalize_order_status(record.get("orderStatus")),
        timestamp=_timestamp(record, "createTime"),
        security_id=str(security_id) if security_id is not None else None,
    )


def parse_orders(payload: Any) -> ParseResult[Order]:
    return _collect(payload, parse_order, "orderId")


# --------------------------------------------------------------- positions

def parse_position(record: dict[str, Any]) -> Position:
    """Normalise an intraday/carry-forward position record."""
    security_id = record.get("securityId")
    pnl = _number(record, "realizedProfit") + _number(record, "unrealizedProfit")
    return Position(
        symbol=_text(record, "tradingSymbol"),
        quantity=int(_number(record, "netQty")),
        avg_price=_number(record, "costPrice"),
        current_price=_optional_number(record, "lastTradedPrice"),
        pnl=pnl,
        security_id=str(security_id) if security_id is not None else None,
    )


def parse_positions(payload: Any) -> ParseResult[Position]:
    return _collect(payload, parse_position, "tradingSymbol")


def parse_holding(record: dict[str, Any]) -> Position:
    """Normalise a demat holding record; P&L needs a reported last price."""
    security_id = record.get("securityId")
    quantity = int(_number(record, "totalQty"))
    avg_price = _number(record, "avgCostPrice")
    ltp = _optional_number(record, "lastTradedPrice")
    return Position(
        symbol=_text(record, "tradingSymbol"),
        quantity=quantity,
        avg_price=avg_price,
        current_price=ltp,
        pnl=(ltp - avg_price) * quantity if ltp is not None else None,
        security_id=str(security_id) if security_id is not None else None,
    )


def parse_holdings(payload: Any) -> ParseResult[Position]:
    return _collect(payload, parse_holding, "tradingSymbol")

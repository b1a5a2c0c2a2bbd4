"""Dhan REST client — funds, orders, positions, holdings and quotes.

Authenticates with ``access-token`` / ``client-id`` headers. Read methods
raise ``RestUnavailable`` on any failure; order writes raise ``OrderFailed``
carrying the broker's own error message.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Iterable

import certifi
import requests
from loguru import logger

from dhanfeed.config import FeedConfig
from dhanfeed.errors import CredentialsMissing, FeedErrorCode, OrderFailed, RestUnavailable
from dhanfeed.models.instrument import Credentials, Instrument
from dhanfeed.models.order import Order, OrderRequest, OrderStatus
from dhanfeed.models.quote import StockQuote
from dhanfeed.parsing import (
    ParseResult,
    normalize_order_status,
    parse_holdings,
    parse_orders,
    parse_positions,
    parse_quotes,
)


class DhanRestClient:
    """Thin synchronous wrapper over the broker REST API.

    Args:
        config: Base URL, timeout and order defaults.
        credentials: Access token and client id; may be set later.
        session: Optional ``requests.Session`` (tests inject their own).
    """

    def __init__(
        self,
        config: FeedConfig | None = None,
        credentials: Credentials | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config or FeedConfig()
        self.credentials = credentials
        self.base_url = self.config.api_url.rstrip("/")
        if session is None:
            session = requests.Session()
            session.verify = certifi.where()
        self.session = session

    def set_credentials(self, credentials: Credentials) -> None:
        self.credentials = credentials

    # ------------------------------------------------------------- requests

    def _require_credentials(self) -> Credentials:
        if self.credentials is None or not self.credentials.complete:
            raise CredentialsMissing("Broker credentials (token, client id) are not set")
        return self.credentials

    def _headers(self) -> dict[str, str]:
        creds = self._require_credentials()
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "access-token": creds.token,
            "client-id": creds.client_id,
        }

    def _request(self, method: str, path: str, *, payload: Any = None, write: bool = False) -> Any:
        url = f"{self.base_url}{path}"
        headers = self._headers()
        try:
            resp = self.session.request(
                method, url, json=payload, headers=headers, timeout=self.config.request_timeout,
            )
        except requests.RequestException as exc:
            error_cls = OrderFailed if write else RestUnavailable
            raise error_cls(f"{method} {path} failed: {exc}", retryable=True) from exc

        self._check_response(resp, method, path, write)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise RestUnavailable(f"{method} {path} returned a non-JSON body") from exc

    @staticmethod
    def _error_message(resp: requests.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text[:200] or resp.reason or ""
        if isinstance(body, dict):
            message = body.get("errorMessage") or body.get("message") or body.get("remarks")
            code = body.get("errorCode")
            if message and code:
                return f"{code}: {message}"
            if message:
                return str(message)
        return str(body)[:200]

    def _check_response(self, resp: requests.Response, method: str, path: str, write: bool) -> None:
        if resp.ok:
            return
        detail = self._error_message(resp)
        summary = f"{method} {path} -> HTTP {resp.status_code}: {detail}"
        if write:
            raise OrderFailed(summary, code=FeedErrorCode.ORDER_FAILED)
        if resp.status_code in (401, 403):
            raise RestUnavailable(summary, code=FeedErrorCode.AUTH_FAILED)
        if resp.status_code == 429:
            raise RestUnavailable(summary, code=FeedErrorCode.RATE_LIMITED, retryable=True)
        if resp.status_code == 404:
            raise RestUnavailable(summary, code=FeedErrorCode.NOT_FOUND)
        raise RestUnavailable(summary, retryable=resp.status_code >= 500)

    # ---------------------------------------------------------------- reads

    def get_fund_limit(self) -> dict[str, Any]:
        data = self._request("GET", "/fundlimit")
        if not isinstance(data, dict):
            raise RestUnavailable("GET /fundlimit returned an unexpected body")
        return data

    def get_trades(self) -> list[dict[str, Any]]:
        data = self._request("GET", "/trades")
        return data if isinstance(data, list) else []

    def get_orders(self) -> ParseResult[Order]:
        return self._log_failures("orders", parse_orders(self._request("GET", "/orders") or []))

    def get_positions(self) -> ParseResult:
        return self._log_failures("positions", parse_positions(self._request("GET", "/positions") or []))

    def get_holdings(self) -> ParseResult:
        return self._log_failures("holdings", parse_holdings(self._request("GET", "/holdings") or []))

    def get_quotes(self, instruments: Iterable[Instrument]) -> ParseResult[StockQuote]:
        """Fetch LTP + OHLC for instruments, grouped by exchange segment."""
        body: dict[str, list[int | str]] = {}
        for inst in instruments:
            sid = inst.security_id
            body.setdefault(inst.exchange_segment, []).append(int(sid) if sid.isdigit() else sid)
        if not body:
            return ParseResult()
        result = parse_quotes(self._request("POST", "/marketfeed/quote", payload=body))
        return self._log_failures("quotes", result)

    @staticmethod
    def _log_failures(kind: str, result: ParseResult) -> ParseResult:
        for failure in result.failures:
            logger.warning("Skipping {} record {}: {}", kind, failure.key, failure.reason)
        return result

    # --------------------------------------------------------------- writes

    def place_order(self, request: OrderRequest) -> Order:
        """Place an order; the returned order echoes the request with the broker id."""
        creds = self._require_credentials()
        payload = {
            "dhanClientId": creds.client_id,
            "correlationId": f"order_{int(time.time() * 1000)}",
            "transactionType": request.side.value,
            "exchangeSegment": request.exchange_segment or self.config.exchange_segment,
            "productType": request.product_type or self.config.product_type,
            "orderType": request.order_type.value,
            "validity": "DAY",
            "securityId": request.security_id,
            "quantity": request.quantity,
            "disclosedQuantity": 0,
            "price": request.price,
            "triggerPrice": request.trigger_price,
            "afterMarketOrder": False,
        }
        data = self._request("POST", "/orders", payload=payload, write=True)
        if not isinstance(data, dict):
            data = {}
        order_id = data.get("orderId")
        if not order_id:
            raise OrderFailed(f"Order accepted without an order id: {data!r}")
        logger.info(
            "Placed {} {} x{} ({})", request.side.value, request.security_id, request.quantity, order_id,
        )
        return Order(
            order_id=str(order_id),
            symbol=request.symbol or request.security_id,
            side=request.side,
            quantity=request.quantity,
            price=request.price,
            order_type=request.order_type,
            status=normalize_order_status(data.get("orderStatus")),
            timestamp=datetime.now(timezone.utc),
            security_id=request.security_id,
        )

    def modify_order(
        self,
        order_id: str,
        *,
        quantity: int | None = None,
        price: float | None = None,
        order_type: str = "LIMIT",
        trigger_price: float = 0.0,
    ) -> str:
        creds = self._require_credentials()
        payload = {
            "dhanClientId": creds.client_id,
            "orderId": order_id,
            "orderType": order_type,
            "legName": "ENTRY_LEG",
            "quantity": quantity,
            "price": price,
            "disclosedQuantity": 0,
            "triggerPrice": trigger_price,
            "validity": "DAY",
        }
        data = self._request("PUT", f"/orders/{order_id}", payload=payload, write=True) or {}
        logger.info("Modified order {}", order_id)
        return str(data.get("orderId", order_id)) if isinstance(data, dict) else order_id

    def cancel_order(self, order_id: str) -> OrderStatus:
        data = self._request("DELETE", f"/orders/{order_id}", write=True) or {}
        logger.info("Cancelled order {}", order_id)
        status = data.get("orderStatus") if isinstance(data, dict) else None
        return normalize_order_status(status or "CANCELLED")

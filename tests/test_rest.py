"""Tests for DhanRestClient (HTTP mocked with ``responses``)."""

import json

import pytest
import responses

from dhanfeed.config import FeedConfig
from dhanfeed.errors import CredentialsMissing, FeedErrorCode, OrderFailed, RestUnavailable
from dhanfeed.models.instrument import Instrument
from dhanfeed.models.order import OrderRequest, OrderSide, OrderStatus, OrderType
from dhanfeed.rest import DhanRestClient

BASE = "https://api.dhan.co/v2"


@pytest.fixture
def client(credentials) -> DhanRestClient:
    return DhanRestClient(FeedConfig(), credentials)


class TestAuth:
    def test_missing_credentials(self):
        with pytest.raises(CredentialsMissing):
            DhanRestClient().get_fund_limit()

    @responses.activate
    def test_headers(self, client):
        responses.add(responses.GET, f"{BASE}/fundlimit", json={"availabelBalance": 50000.0})
        client.get_fund_limit()
        headers = responses.calls[0].request.headers
        assert headers["access-token"] == "tok-123"
        assert headers["client-id"] == "1000000001"

    @responses.activate
    def test_unauthorized(self, client):
        responses.add(
            responses.GET, f"{BASE}/orders", status=401,
            json={"errorCode": "DH-901", "errorMessage": "Invalid access token"},
        )
        with pytest.raises(RestUnavailable) as exc_info:
            client.get_orders()
        assert exc_info.value.code == FeedErrorCode.AUTH_FAILED
        assert "DH-901: Invalid access token" in str(exc_info.value)
        assert not exc_info.value.retryable


class TestReads:
    @responses.activate
    def test_fund_limit(self, client):
        responses.add(responses.GET, f"{BASE}/fundlimit", json={"availabelBalance": 50000.0})
        assert client.get_fund_limit()["availabelBalance"] == 50000.0

    @responses.activate
    def test_trades(self, client):
        responses.add(responses.GET, f"{BASE}/trades", json=[{"orderId": "1"}])
        assert client.get_trades() == [{"orderId": "1"}]

    @responses.activate
    def test_orders_skip_bad_records(self, client):
        responses.add(responses.GET, f"{BASE}/orders", json=[
            {
                "orderId": "1", "tradingSymbol": "TCS", "transactionType": "SELL",
                "quantity": 2, "price": 3790.0, "orderType": "MARKET",
                "orderStatus": "PENDING", "createTime": "2024-01-15 11:00:00",
            },
            {"orderId": "2"},
        ])
        result = client.get_orders()
        assert [o.order_id for o in result.items] == ["1"]
        assert result.failures[0].key == "2"

    @responses.activate
    def test_empty_body(self, client):
        responses.add(responses.GET, f"{BASE}/positions", body="")
        assert client.get_positions().items == []

    @responses.activate
    def test_rate_limited(self, client):
        responses.add(responses.GET, f"{BASE}/holdings", status=429, json={"message": "Too many requests"})
        with pytest.raises(RestUnavailable) as exc_info:
            client.get_holdings()
        assert exc_info.value.code == FeedErrorCode.RATE_LIMITED
        assert exc_info.value.retryable

    @responses.activate
    def test_server_error_retryable(self, client):
        responses.add(responses.GET, f"{BASE}/trades", status=503, body="maintenance")
        with pytest.raises(RestUnavailable) as exc_info:
            client.get_trades()
        assert exc_info.value.code == FeedErrorCode.REST_UNAVAILABLE
        assert exc_info.value.retryable

    @responses.activate
    def test_network_error(self, client):
        # no registered URL: responses raises ConnectionError
        with pytest.raises(RestUnavailable) as exc_info:
            client.get_trades()
        assert exc_info.value.retryable

    @responses.activate
    def test_non_json_body(self, client):
        responses.add(responses.GET, f"{BASE}/fundlimit", body="<html>oops</html>")
        with pytest.raises(RestUnavailable):
            client.get_fund_limit()


class TestQuotes:
    @responses.activate
    def test_request_body_grouped_by_segment(self, client):
        responses.add(responses.POST, f"{BASE}/marketfeed/quote", json={
            "data": {
                "NSE_EQ": {
                    "2885": {
                        "last_price": 2456.75,
                        "ohlc": {"open": 2445.3, "high": 2478.9, "low": 2434.2, "close": 2433.3},
                    },
                },
            },
        })
        result = client.get_quotes([Instrument("NSE_EQ", "2885"), Instrument("BSE_EQ", "500325")])
        body = json.loads(responses.calls[0].request.body)
        assert body == {"NSE_EQ": [2885], "BSE_EQ": [500325]}
        assert [q.instrument_id for q in result.items] == ["2885"]

    def test_no_instruments(self, client):
        assert client.get_quotes([]).items == []


class TestOrders:
    @responses.activate
    def test_place_order(self, client):
        responses.add(responses.POST, f"{BASE}/orders", json={"orderId": "112111182045", "orderStatus": "TRANSIT"})
        request = OrderRequest(
            security_id="2885", side=OrderSide.BUY, quantity=5,
            order_type=OrderType.LIMIT, price=2450.0, symbol="RELIANCE",
        )
        order = client.place_order(request)

        assert order.order_id == "112111182045"
        assert order.status is OrderStatus.PENDING
        assert order.symbol == "RELIANCE"
        payload = json.loads(responses.calls[0].request.body)
        assert payload["dhanClientId"] == "1000000001"
        assert payload["transactionType"] == "BUY"
        assert payload["exchangeSegment"] == "NSE_EQ"
        assert payload["productType"] == "CNC"
        assert payload["orderType"] == "LIMIT"
        assert payload["validity"] == "DAY"
        assert payload["price"] == 2450.0
        assert payload["correlationId"].startswith("order_")

    @responses.activate
    def test_place_order_rejected(self, client):
        responses.add(
            responses.POST, f"{BASE}/orders", status=400,
            json={"errorCode": "DH-905", "errorMessage": "Insufficient funds"},
        )
        with pytest.raises(OrderFailed) as exc_info:
            client.place_order(OrderRequest("2885", OrderSide.BUY, 5))
        assert "Insufficient funds" in str(exc_info.value)
        assert exc_info.value.code == FeedErrorCode.ORDER_FAILED

    @responses.activate
    def test_place_order_without_id(self, client):
        responses.add(responses.POST, f"{BASE}/orders", json={"status": "ok"})
        with pytest.raises(OrderFailed):
            client.place_order(OrderRequest("2885", OrderSide.SELL, 1))

    @responses.activate
    def test_place_order_network_error(self, client):
        with pytest.raises(OrderFailed):
            client.place_order(OrderRequest("2885", OrderSide.SELL, 1))

    @responses.activate
    def test_modify_order(self, client):
        responses.add(responses.PUT, f"{BASE}/orders/42", json={"orderId": "42", "orderStatus": "PENDING"})
        assert client.modify_order("42", quantity=3, price=2455.0) == "42"
        payload = json.loads(responses.calls[0].request.body)
        assert payload["quantity"] == 3
        assert payload["price"] == 2455.0

    @responses.activate
    def test_cancel_order(self, client):
        responses.add(responses.DELETE, f"{BASE}/orders/42", json={"orderId": "42", "orderStatus": "CANCELLED"})
        assert client.cancel_order("42") is OrderStatus.CANCELLED

    @responses.activate
    def test_cancel_order_empty_body(self, client):
        responses.add(responses.DELETE, f"{BASE}/orders/42", status=202, body="")
        assert client.cancel_order("42") is OrderStatus.CANCELLED

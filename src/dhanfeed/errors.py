"""Feed and broker error types."""

from __future__ import annotations

from enum import Enum


class FeedErrorCode(Enum):
    """Error classification codes."""

    CREDENTIALS_MISSING = "credentials_missing"
    MALFORMED_FRAME = "malformed_frame"
    TRANSPORT_ERROR = "transport_error"
    CONNECTION_EXHAUSTED = "connection_exhausted"
    REST_UNAVAILABLE = "rest_unavailable"
    AUTH_FAILED = "auth_failed"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    ORDER_FAILED = "order_failed"


class FeedError(Exception):
    """Feed exception with error code and retryable flag.

    Attributes:
        message: Human-readable error description.
        code: Structured error code for programmatic handling.
        retryable: Whether the operation may succeed if tried again.
    """

    default_code = FeedErrorCode.TRANSPORT_ERROR

    def __init__(
        self,
        message: str,
        code: FeedErrorCode | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.retryable = retryable


class CredentialsMissing(FeedError):
    """No token/client id was set before ``connect()``."""

    default_code = FeedErrorCode.CREDENTIALS_MISSING


class MalformedFrame(FeedError):
    """A binary frame is too short for its declared response code."""

    default_code = FeedErrorCode.MALFORMED_FRAME


class TransportError(FeedError):
    """Network-level failure opening or reading the feed."""

    default_code = FeedErrorCode.TRANSPORT_ERROR

    def __init__(self, message: str, code: FeedErrorCode | None = None, retryable: bool = True) -> None:
        super().__init__(message, code, retryable)


class ConnectionExhausted(FeedError):
    """Reconnect ceiling hit; only an explicit ``connect()`` restarts the feed."""

    default_code = FeedErrorCode.CONNECTION_EXHAUSTED


class RestUnavailable(FeedError):
    """A REST call failed (network, HTTP status, or unusable body)."""

    default_code = FeedErrorCode.REST_UNAVAILABLE


class OrderFailed(FeedError):
    """The broker rejected an order write (place/modify/cancel)."""

    default_code = FeedErrorCode.ORDER_FAILED

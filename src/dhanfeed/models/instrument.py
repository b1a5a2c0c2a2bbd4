"""Instrument and credentials data models."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Instrument:
    """A tradable security identified by exchange segment + security id."""

    exchange_segment: str
    security_id: str

    def to_wire(self) -> dict[str, str]:
        """Entry of a subscribe message's ``InstrumentList``."""
        return {"ExchangeSegment": self.exchange_segment, "SecurityId": self.security_id}


@dataclass(frozen=True)
class Credentials:
    """Feed/REST credentials. Pass-through only; never persisted."""

    token: str
    client_id: str

    @property
    def complete(self) -> bool:
        return bool(self.token) and bool(self.client_id)

    def __repr__(self) -> str:
        return f"Credentials(token='***', client_id={self.client_id!r})"

"""In-memory TTL cache for live quotes."""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable

from dhanfeed.models.quote import StockQuote


class QuoteCache:
    """Latest quote per instrument with a freshness window.

    Entries older than ``ttl_seconds`` are not returned by ``get`` but stay
    available to ``get_stale`` (last-known value) until LRU eviction when
    ``max_entries`` is exceeded.
    """

    def __init__(
        self,
        ttl_seconds: float = 60,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._store: OrderedDict[str, tuple[float, StockQuote]] = OrderedDict()

    def _evict_lru(self) -> None:
        while len(self._store) > self.max_entries:
            self._store.popitem(last=False)

    def put(self, quote: StockQuote) -> None:
        key = quote.instrument_id
        self._store[key] = (self._clock(), quote)
        self._store.move_to_end(key)
        self._evict_lru()

    def get(self, instrument_id: str) -> StockQuote | None:
        """Return the cached quote if its age is below the TTL."""
        entry = self._store.get(instrument_id)
        if entry is None:
            return None
        ts, quote = entry
        if self._clock() - ts >= self.ttl:
            return None
        self._store.move_to_end(instrument_id)  # refresh LRU position
        return quote

    def get_stale(self, instrument_id: str) -> StockQuote | None:
        """Return the last known quote regardless of age."""
        entry = self._store.get(instrument_id)
        return entry[1] if entry else None

    def age(self, instrument_id: str) -> float | None:
        entry = self._store.get(instrument_id)
        if entry is None:
            return None
        return self._clock() - entry[0]

    def is_fresh(self, instrument_id: str) -> bool:
        age = self.age(instrument_id)
        return age is not None and age < self.ttl

    def clear(self, instrument_id: str) -> None:
        self._store.pop(instrument_id, None)

    def clear_all(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

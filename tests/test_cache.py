"""Tests for QuoteCache — TTL freshness, stale reads, LRU eviction."""

from dataclasses import replace

import pytest

from dhanfeed.cache import QuoteCache


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class TestQuoteCache:
    def test_store_and_retrieve(self, clock, sample_quote):
        cache = QuoteCache(ttl_seconds=60, clock=clock)
        cache.put(sample_quote)
        assert cache.get("2885") == sample_quote
        assert len(cache) == 1

    def test_miss(self, clock):
        cache = QuoteCache(clock=clock)
        assert cache.get("2885") is None
        assert cache.get_stale("2885") is None
        assert cache.age("2885") is None

    def test_ttl_expiry(self, clock, sample_quote):
        cache = QuoteCache(ttl_seconds=60, clock=clock)
        cache.put(sample_quote)
        clock.now += 59
        assert cache.get("2885") is not None
        assert cache.is_fresh("2885")
        clock.now += 1
        assert cache.get("2885") is None
        assert not cache.is_fresh("2885")

    def test_stale_survives_expiry(self, clock, sample_quote):
        cache = QuoteCache(ttl_seconds=60, clock=clock)
        cache.put(sample_quote)
        clock.now += 3600
        assert cache.get_stale("2885") == sample_quote
        assert cache.age("2885") == pytest.approx(3600)

    def test_put_refreshes_entry(self, clock, sample_quote):
        cache = QuoteCache(ttl_seconds=60, clock=clock)
        cache.put(sample_quote)
        clock.now += 90
        cache.put(replace(sample_quote, price=2460.0))
        assert cache.get("2885").price == 2460.0

    def test_lru_eviction(self, clock, sample_quote):
        cache = QuoteCache(max_entries=2, clock=clock)
        cache.put(replace(sample_quote, instrument_id="1"))
        cache.put(replace(sample_quote, instrument_id="2"))
        cache.get("1")  # touch 1, so 2 is least recently used
        cache.put(replace(sample_quote, instrument_id="3"))
        assert cache.get_stale("2") is None
        assert cache.get_stale("1") is not None
        assert cache.get_stale("3") is not None

    def test_clear(self, clock, sample_quote):
        cache = QuoteCache(clock=clock)
        cache.put(sample_quote)
        cache.put(replace(sample_quote, instrument_id="11536"))
        cache.clear("2885")
        assert cache.get_stale("2885") is None
        assert cache.get("11536") is not None
        cache.clear_all()
        assert len(cache) == 0

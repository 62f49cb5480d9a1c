"""Tests for the Redis caching helpers.

Redis itself is replaced by a small in-memory client so the tests run
without a server.
"""

import fnmatch
from datetime import date
from decimal import Decimal

import pytest
import redis.asyncio as redis

from backoffice.schemas.invoice import RevenueResponse, StatusCount
from backoffice.services.invoice_status import InvoiceStatus
from backoffice.utils import cache
from backoffice.utils.cache import cache_key, cached, invalidate_cache


class MemoryRedis:
    def __init__(self):
        self.store: dict[str, str] = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value

    async def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)

    async def scan_iter(self, match="*"):
        for key in list(self.store):
            if fnmatch.fnmatch(key, match):
                yield key


class BrokenRedis(MemoryRedis):
    async def get(self, key):
        raise redis.ConnectionError("connection refused")


@pytest.fixture
def memory_redis(monkeypatch):
    client = MemoryRedis()

    async def fake_get_redis():
        return client

    monkeypatch.setattr(cache.settings, "cache_enabled", True)
    monkeypatch.setattr(cache, "get_redis", fake_get_redis)
    return client


@pytest.mark.unit
class TestCacheKey:

    def test_deterministic(self):
        assert cache_key(limit=50, paid_only=True) == cache_key(paid_only=True, limit=50)
        assert cache_key(limit=50) != cache_key(limit=100)

    def test_no_arguments(self):
        assert cache_key() == "default"

    def test_reference_day_is_part_of_the_key(self):
        assert cache_key(months=12, today=date(2024, 1, 31)) != cache_key(months=12, today=date(2024, 2, 1))


@pytest.mark.unit
class TestCachedDecorator:

    @pytest.mark.asyncio
    async def test_pass_through_when_disabled(self, monkeypatch):
        monkeypatch.setattr(cache.settings, "cache_enabled", False)
        calls = []

        @cached(prefix="test")
        async def compute(db, *, limit: int) -> list[StatusCount]:
            calls.append(limit)
            return []

        await compute(None, limit=1)
        await compute(None, limit=1)
        assert calls == [1, 1]

    @pytest.mark.asyncio
    async def test_hit_rebuilds_models(self, memory_redis):
        calls = []

        @cached(prefix="test")
        async def counts(db, *, limit: int) -> list[StatusCount]:
            calls.append(limit)
            return [StatusCount(status=InvoiceStatus.PAYEE, count=2, total=Decimal("10.50"))]

        first = await counts(object(), limit=5)
        second = await counts(object(), limit=5)

        assert calls == [5]
        assert second == first
        assert isinstance(second[0], StatusCount)
        assert second[0].total == Decimal("10.50")

        await counts(object(), limit=6)
        assert calls == [5, 6]

    @pytest.mark.asyncio
    async def test_single_model_return(self, memory_redis):
        @cached(prefix="test")
        async def revenue(db, *, start_date: date, end_date: date) -> RevenueResponse:
            return RevenueResponse(start_date=start_date, end_date=end_date, revenue=Decimal("1.00"))

        await revenue(None, start_date=date(2024, 1, 1), end_date=date(2024, 1, 31))
        hit = await revenue(None, start_date=date(2024, 1, 1), end_date=date(2024, 1, 31))

        assert hit == RevenueResponse(
            start_date=date(2024, 1, 1), end_date=date(2024, 1, 31), revenue=Decimal("1.00")
        )
        assert list(memory_redis.store)[0].startswith("test:revenue:")

    @pytest.mark.asyncio
    async def test_redis_failure_falls_back(self, monkeypatch):
        client = BrokenRedis()

        async def fake_get_redis():
            return client

        monkeypatch.setattr(cache.settings, "cache_enabled", True)
        monkeypatch.setattr(cache, "get_redis", fake_get_redis)

        @cached(prefix="test")
        async def counts(db) -> list[StatusCount]:
            return []

        assert await counts(None) == []


@pytest.mark.unit
class TestInvalidation:

    @pytest.mark.asyncio
    async def test_pattern(self, memory_redis):
        memory_redis.store.update({
            "invoice-stats:get_statistics:abc": "{}",
            "invoice-stats:top_companies:def": "[]",
            "other:func:xyz": "{}",
        })

        await invalidate_cache("invoice-stats:*")

        assert list(memory_redis.store) == ["other:func:xyz"]

    @pytest.mark.asyncio
    async def test_noop_when_disabled(self, monkeypatch):
        monkeypatch.setattr(cache.settings, "cache_enabled", False)
        await invalidate_cache("invoice-stats:*")

"""
读缓存测试
"""

import json
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import redis.asyncio as redis

from app.services.common_cache import SimpleCache


@pytest.mark.asyncio
class TestSimpleCache:
    """SimpleCache测试类"""

    @pytest.fixture
    def redis_client(self):
        client = MagicMock()
        client.get = AsyncMock(return_value=None)
        client.set = AsyncMock(return_value=True)
        client.delete = AsyncMock(return_value=1)
        return client

    @pytest.fixture
    def cache(self, redis_client):
        return SimpleCache(key_prefix="promotion:", redis_client=redis_client)

    async def test_unbound_cache_is_noop(self):
        cache = SimpleCache(key_prefix="promotion:")

        assert cache.enabled is False
        assert await cache.get("coupon:code:X") is None
        assert await cache.set("coupon:code:X", {"a": 1}, ttl=60) is False
        assert await cache.delete_pattern("coupon:*") == 0

    async def test_set_serializes_decimal(self, cache, redis_client):
        assert await cache.set("coupon:code:SAVE10", {"discount_value": Decimal("10.50")}, ttl=60) is True

        key, data = redis_client.set.call_args.args
        assert key == "promotion:coupon:code:SAVE10"
        assert json.loads(data) == {"discount_value": "10.50"}
        assert redis_client.set.call_args.kwargs["ex"] == 60

    async def test_get_round_trip(self, cache, redis_client):
        redis_client.get.return_value = '{"code": "SAVE10"}'

        assert await cache.get("coupon:code:SAVE10") == {"code": "SAVE10"}
        redis_client.get.assert_awaited_once_with("promotion:coupon:code:SAVE10")

    async def test_corrupt_value_is_dropped(self, cache, redis_client):
        redis_client.get.return_value = "{not json"

        assert await cache.get("coupon:code:BAD") is None
        redis_client.delete.assert_awaited_once_with("promotion:coupon:code:BAD")

    async def test_redis_errors_fall_back(self, cache, redis_client):
        redis_client.get.side_effect = redis.ConnectionError("down")
        redis_client.set.side_effect = redis.ConnectionError("down")

        assert await cache.get("campaign:id:1") is None
        assert await cache.set("campaign:id:1", {}, ttl=60) is False

    async def test_delete_pattern_in_batches(self, cache, redis_client):
        async def scan_iter(match, count):
            assert match == "promotion:coupon:*"
            for index in range(3):
                yield f"promotion:coupon:code:{index}"

        redis_client.scan_iter = scan_iter
        redis_client.delete.return_value = 3

        assert await cache.delete_pattern("coupon:*") == 3
        redis_client.delete.assert_awaited_once_with(
            "promotion:coupon:code:0", "promotion:coupon:code:1", "promotion:coupon:code:2"
        )

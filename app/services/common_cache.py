"""
促销与订单读缓存

值以JSON保存（Decimal、datetime 转字符串），未绑定Redis或Redis出错时
所有操作退化为空操作，调用方直接回源查库。
"""

import json
import logging
from typing import Optional, Any, List
import redis.asyncio as redis

logger = logging.getLogger(__name__)

# 按模式删除时每批删除的key数量
DELETE_BATCH_SIZE = 500


class SimpleCache:
    """带key前缀的JSON缓存"""

    def __init__(self, key_prefix: str, redis_client: Optional[redis.Redis] = None):
        self.key_prefix = key_prefix
        self.redis_client = redis_client

    def bind(self, redis_client: Optional[redis.Redis]) -> None:
        self.redis_client = redis_client

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            data = await self.redis_client.get(self._key(key))
        except redis.RedisError as e:
            logger.warning(f"读取缓存失败 {self._key(key)}: {e}")
            return None
        if data is None:
            return None
        try:
            return json.loads(data)
        except ValueError:
            # 格式损坏的缓存直接丢弃
            logger.warning(f"缓存内容无法解析，已删除: {self._key(key)}")
            await self.delete(key)
            return None

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        if not self.enabled:
            return False
        try:
            data = json.dumps(value, default=str, ensure_ascii=False)
            await self.redis_client.set(self._key(key), data, ex=ttl)
            return True
        except (redis.RedisError, TypeError) as e:
            logger.warning(f"写入缓存失败 {self._key(key)}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        if not self.enabled:
            return False
        try:
            return await self.redis_client.delete(self._key(key)) > 0
        except redis.RedisError as e:
            logger.warning(f"删除缓存失败 {self._key(key)}: {e}")
            return False

    async def delete_pattern(self, pattern: str) -> int:
        """按通配模式删除，促销状态批量刷新后调用"""
        if not self.enabled:
            return 0
        deleted = 0
        batch: List[str] = []
        try:
            async for key in self.redis_client.scan_iter(match=self._key(pattern), count=DELETE_BATCH_SIZE):
                batch.append(key)
                if len(batch) >= DELETE_BATCH_SIZE:
                    deleted += await self.redis_client.delete(*batch)
                    batch = []
            if batch:
                deleted += await self.redis_client.delete(*batch)
        except redis.RedisError as e:
            logger.warning(f"按模式删除缓存失败 {self._key(pattern)}: {e}")
        return deleted


promotion_cache = SimpleCache(key_prefix="promotion:")
order_cache = SimpleCache(key_prefix="order:")


def bind_caches(redis_client: Optional[redis.Redis]) -> None:
    """启动时绑定共享连接，传入None时关闭缓存"""
    for cache in (promotion_cache, order_cache):
        cache.bind(redis_client)
    logger.info("读缓存已启用" if redis_client else "读缓存未启用")

import redis.asyncio as aioredis
from typing import Optional
from app.core.config import settings
import structlog

"redis连接管理器，连接仅供促销与订单读缓存使用"

logger = structlog.get_logger()


class RedisManager:
    """Redis连接管理器"""

    def __init__(self):
        self.redis_pool: Optional[aioredis.Redis] = None

    @property
    def available(self) -> bool:
        return self.redis_pool is not None

    async def init_redis(self) -> Optional[aioredis.Redis]:
        """
        建立连接池并ping一次

        配置关闭或连接失败时返回None，调用方按无缓存模式运行。
        """
        if not settings.redis_enabled:
            logger.info("Redis缓存已在配置中关闭")
            return None

        client = aioredis.from_url(
            settings.redis_url_computed,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.redis_socket_timeout,
            socket_connect_timeout=settings.redis_socket_timeout,
            max_connections=20
        )
        try:
            await client.ping()
        except aioredis.RedisError as e:
            logger.warning("Redis不可用，以无缓存模式运行", url=settings.redis_url_computed, error=str(e))
            await client.close()
            return None

        self.redis_pool = client
        logger.info("Redis连接初始化成功", db=settings.redis_db)
        return client

    async def close_redis(self) -> None:
        if self.redis_pool:
            await self.redis_pool.close()
            self.redis_pool = None
            logger.info("Redis连接已关闭")

    async def health_check(self) -> dict:
        """Redis连接健康检查"""
        if not self.redis_pool:
            return {"status": "not_initialized", "message": "缓存未启用"}
        try:
            await self.redis_pool.ping()
            return {"status": "healthy", "message": "连接正常"}
        except aioredis.RedisError as e:
            logger.error("Redis健康检查失败", error=str(e))
            return {"status": "unhealthy", "message": f"连接失败: {str(e)}"}


redis_manager = RedisManager()

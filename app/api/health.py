from fastapi import APIRouter, HTTPException
import logging

from app.core.config import settings
from app.core.redis import redis_manager
from app.core.database import database_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["健康检查"])


@router.get("")
async def health_check():
    """基础健康检查接口"""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment
    }


@router.get("/database")
async def database_health():
    """
    依赖服务健康检查

    Redis 仅作读缓存，不可用时服务降级为直接查库，不影响整体状态。
    """
    pg_status = await database_service.health_check()
    redis_status = await redis_manager.health_check()

    health_status = {
        "postgresql": pg_status["status"] == "healthy",
        "redis": redis_status["status"] == "healthy",
        "details": {
            "postgresql": pg_status["message"],
            "redis": redis_status["message"]
        }
    }
    health_status["overall"] = health_status["postgresql"]

    if not health_status["overall"]:
        logger.error(f"数据库健康检查失败: {pg_status['message']}")
        raise HTTPException(status_code=503, detail="数据库连接失败")

    if not health_status["redis"]:
        logger.warning(f"Redis不可用，缓存已降级: {redis_status['message']}")
    return health_status

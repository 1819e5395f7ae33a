from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, AsyncEngine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from sqlalchemy import text, inspect
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Optional, List
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()

# 下单与促销核心表，健康检查时确认已创建
REQUIRED_TABLES = (
    "products",
    "orders",
    "stock_movements",
    "sales_campaigns",
    "coupon_codes",
    "bogo_offers",
    "promotion_usage",
)

engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker] = None


async def init_database() -> None:
    """创建引擎与会话工厂，重复调用时直接返回"""
    global engine, async_session_maker

    if engine is not None:
        return

    try:
        if settings.is_testing:
            pool_options = {"poolclass": NullPool}
        else:
            pool_options = {
                "pool_size": settings.db_pool_size,
                "max_overflow": settings.db_max_overflow,
                "pool_pre_ping": True,
            }
        engine = create_async_engine(settings.database_url_computed, echo=settings.db_echo, **pool_options)
        # 提交后对象保持可读，服务层在提交后还要组装返回模型
        async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        logger.info(f"数据库连接初始化成功: {engine.url.render_as_string(hide_password=True)}")
    except Exception as e:
        logger.error(f"数据库连接初始化失败: {e}")
        raise


async def close_database() -> None:
    global engine, async_session_maker

    if engine:
        await engine.dispose()
        engine = None
        async_session_maker = None
        logger.info("数据库连接已关闭")


async def create_all_tables() -> None:
    """根据已注册的模型创建全部数据表"""
    import app.models.database  # noqa: F401

    if not engine:
        raise RuntimeError("数据库未初始化，请先调用 init_database()")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"数据表创建完成，共 {len(Base.metadata.tables)} 张")


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """
    脚本和定时任务使用的会话

    正常退出时提交，出现异常时回滚。
    """
    if not async_session_maker:
        raise RuntimeError("数据库未初始化，请先调用 init_database()")

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    请求级数据库会话

    事务由服务层自行提交；请求结束时仍未提交的修改一律回滚。
    """
    if not async_session_maker:
        raise RuntimeError("数据库未初始化，请先调用 init_database()")

    async with async_session_maker() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()


class DatabaseService:
    """数据库服务类"""

    @property
    def engine(self):
        return engine

    @staticmethod
    def _missing_tables(sync_conn) -> List[str]:
        existing = set(inspect(sync_conn).get_table_names())
        return [name for name in REQUIRED_TABLES if name not in existing]

    async def health_check(self) -> dict:
        """检查连接可用以及核心表是否已创建"""
        if not self.engine:
            return {"status": "error", "message": "数据库引擎未初始化"}

        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
                missing = await conn.run_sync(self._missing_tables)
        except Exception as e:
            return {"status": "error", "message": f"数据库连接失败: {str(e)}"}

        if missing:
            return {
                "status": "error",
                "message": f"缺少数据表: {', '.join(missing)}",
                "missing_tables": missing
            }
        return {"status": "healthy", "message": "数据库连接正常"}


database_service = DatabaseService()

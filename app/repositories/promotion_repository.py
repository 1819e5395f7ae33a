"""
促销数据库操作公共基类
活动、优惠券、买赠共用的关联表读写与使用次数计数
"""

from enum import Enum
from typing import List, Optional, Set, Any

from sqlalchemy import select, update, delete, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession


class PromotionRepository:
    """促销数据库操作基类"""

    # 子类需要指定的表
    model_db: Any = None
    product_link: Any = None
    category_link: Any = None
    link_key: str = ""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, promotion_id: str):
        """根据ID获取促销"""
        result = await self.db.execute(
            select(self.model_db).where(self.model_db.id == promotion_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, promotion_id: str):
        """加行锁获取促销（事务内使用）"""
        result = await self.db.execute(
            select(self.model_db)
            .where(self.model_db.id == promotion_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_product_ids(self, promotion_id: str) -> List[str]:
        if self.product_link is None:
            return []
        key = getattr(self.product_link, self.link_key)
        result = await self.db.execute(
            select(self.product_link.product_id).where(key == promotion_id)
        )
        return list(result.scalars().all())

    async def get_category_ids(self, promotion_id: str) -> List[str]:
        if self.category_link is None:
            return []
        key = getattr(self.category_link, self.link_key)
        result = await self.db.execute(
            select(self.category_link.category_id).where(key == promotion_id)
        )
        return list(result.scalars().all())

    async def set_product_ids(self, promotion_id: str, product_ids: List[str]):
        """覆盖促销适用商品"""
        key = getattr(self.product_link, self.link_key)
        await self.db.execute(delete(self.product_link).where(key == promotion_id))
        for product_id in _unique(product_ids):
            self.db.add(self.product_link(**{self.link_key: promotion_id, "product_id": product_id}))
        await self.db.flush()

    async def set_category_ids(self, promotion_id: str, category_ids: List[str]):
        """覆盖促销适用分类"""
        key = getattr(self.category_link, self.link_key)
        await self.db.execute(delete(self.category_link).where(key == promotion_id))
        for category_id in _unique(category_ids):
            self.db.add(self.category_link(**{self.link_key: promotion_id, "category_id": category_id}))
        await self.db.flush()

    async def increment_usage_count(self, promotion_id: str) -> bool:
        """
        条件递增使用次数

        仅当未达到总使用次数限制时才会更新，返回是否更新成功。
        必须与写入使用记录处于同一事务。
        """
        result = await self.db.execute(
            update(self.model_db)
            .where(
                and_(
                    self.model_db.id == promotion_id,
                    or_(
                        self.model_db.usage_limit.is_(None),
                        self.model_db.usage_count < self.model_db.usage_limit
                    )
                )
            )
            .values(usage_count=self.model_db.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def apply_fields(self, db_obj, values: dict, field_map: dict):
        """按字段映射表更新已加载对象，未映射的字段忽略"""
        for field, value in values.items():
            column = field_map.get(field)
            if column is not None:
                if isinstance(value, Enum):
                    value = value.value
                setattr(db_obj, column, value)
        await self.db.flush()
        return db_obj


def _unique(values: List[str]) -> List[str]:
    seen: Set[str] = set()
    ordered = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered

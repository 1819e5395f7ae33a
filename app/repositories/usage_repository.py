"""
促销使用记录数据库操作层
使用记录只追加不修改，是使用次数统计的唯一依据
"""

import uuid
from typing import List, Optional, Dict, Any
from decimal import Decimal

from sqlalchemy import select, and_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.promotion import PromotionType, UsageRecord
from app.models.database.promotion_db import PromotionUsageDB


class UsageRepository:
    """促销使用记录数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def count_usage(self, promotion_type: PromotionType, promotion_id: str) -> int:
        """统计促销总使用次数"""
        result = await self.db.execute(
            select(func.count(PromotionUsageDB.id)).where(
                and_(
                    PromotionUsageDB.promotion_type == promotion_type.value,
                    PromotionUsageDB.promotion_id == promotion_id
                )
            )
        )
        return result.scalar() or 0

    async def count_user_usage(
        self,
        promotion_type: PromotionType,
        promotion_id: str,
        user_id: str
    ) -> int:
        """统计用户对某促销的使用次数"""
        result = await self.db.execute(
            select(func.count(PromotionUsageDB.id)).where(
                and_(
                    PromotionUsageDB.promotion_type == promotion_type.value,
                    PromotionUsageDB.promotion_id == promotion_id,
                    PromotionUsageDB.user_id == user_id
                )
            )
        )
        return result.scalar() or 0

    async def record_usage(
        self,
        promotion_type: PromotionType,
        promotion_id: str,
        user_id: str,
        order_id: str,
        original_amount: Decimal,
        discount_amount: Decimal,
        final_amount: Decimal,
        promotion_code: Optional[str] = None,
        promotion_name: str = "",
        discount_type: str = "",
        discount_value: Decimal = Decimal("0"),
        free_shipping: bool = False,
        buy_product_id: Optional[str] = None,
        get_product_id: Optional[str] = None,
        buy_quantity: Optional[int] = None,
        get_quantity: Optional[int] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> PromotionUsageDB:
        """追加一条使用记录"""
        db_usage = PromotionUsageDB(
            id=str(uuid.uuid4()),
            promotion_type=promotion_type.value,
            promotion_id=promotion_id,
            promotion_code=promotion_code,
            user_id=user_id,
            order_id=order_id,
            promotion_name=promotion_name,
            discount_type=discount_type,
            discount_value=discount_value,
            free_shipping=free_shipping,
            original_amount=original_amount,
            discount_amount=discount_amount,
            final_amount=final_amount,
            buy_product_id=buy_product_id,
            get_product_id=get_product_id,
            buy_quantity=buy_quantity,
            get_quantity=get_quantity,
            ip_address=ip_address,
            user_agent=user_agent
        )
        self.db.add(db_usage)
        await self.db.flush()
        return db_usage

    async def get_by_order(self, order_id: str) -> List[PromotionUsageDB]:
        result = await self.db.execute(
            select(PromotionUsageDB)
            .where(PromotionUsageDB.order_id == order_id)
            .order_by(PromotionUsageDB.promotion_type)
        )
        return list(result.scalars().all())

    async def get_user_history(
        self,
        user_id: str,
        promotion_type: Optional[PromotionType] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[PromotionUsageDB]:
        """获取用户促销使用历史"""
        conditions = [PromotionUsageDB.user_id == user_id]
        if promotion_type:
            conditions.append(PromotionUsageDB.promotion_type == promotion_type.value)

        result = await self.db.execute(
            select(PromotionUsageDB)
            .where(and_(*conditions))
            .order_by(desc(PromotionUsageDB.used_at))
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def get_usage_stats(self, promotion_type: PromotionType, promotion_id: str) -> Dict[str, Any]:
        """获取促销使用统计"""
        result = await self.db.execute(
            select(
                func.count(PromotionUsageDB.id).label("total_uses"),
                func.count(func.distinct(PromotionUsageDB.user_id)).label("unique_users"),
                func.coalesce(func.sum(PromotionUsageDB.discount_amount), 0).label("total_discount"),
                func.coalesce(func.sum(PromotionUsageDB.final_amount), 0).label("total_revenue"),
                func.min(PromotionUsageDB.used_at).label("first_used_at"),
                func.max(PromotionUsageDB.used_at).label("last_used_at")
            ).where(
                and_(
                    PromotionUsageDB.promotion_type == promotion_type.value,
                    PromotionUsageDB.promotion_id == promotion_id
                )
            )
        )
        row = result.one()
        total_uses = row.total_uses or 0
        total_discount = Decimal(str(row.total_discount or 0))
        return {
            "total_uses": total_uses,
            "unique_users": row.unique_users or 0,
            "total_discount": total_discount,
            "total_revenue": Decimal(str(row.total_revenue or 0)),
            "average_discount": (total_discount / total_uses) if total_uses else Decimal("0"),
            "first_used_at": row.first_used_at,
            "last_used_at": row.last_used_at
        }

    def to_model(self, db_usage: PromotionUsageDB) -> UsageRecord:
        """转换为Pydantic模型"""
        return UsageRecord(
            id=db_usage.id,
            promotion_type=db_usage.promotion_type,
            promotion_id=db_usage.promotion_id,
            promotion_code=db_usage.promotion_code,
            user_id=db_usage.user_id,
            order_id=db_usage.order_id,
            promotion_name=db_usage.promotion_name,
            discount_type=db_usage.discount_type,
            discount_value=db_usage.discount_value,
            free_shipping=bool(db_usage.free_shipping),
            original_amount=db_usage.original_amount,
            discount_amount=db_usage.discount_amount,
            final_amount=db_usage.final_amount,
            buy_product_id=db_usage.buy_product_id,
            get_product_id=db_usage.get_product_id,
            buy_quantity=db_usage.buy_quantity,
            get_quantity=db_usage.get_quantity,
            ip_address=db_usage.ip_address,
            user_agent=db_usage.user_agent,
            used_at=db_usage.used_at
        )

"""
优惠券数据库操作层
"""

import uuid
from typing import List, Optional, Dict, Tuple
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select, update, and_, or_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.promotion import Coupon, CouponCreate, CouponUpdate, CouponStatus, PromotionType
from app.models.database.promotion_db import CouponDB, CouponProductDB, CouponCategoryDB, PromotionUsageDB
from app.repositories.promotion_repository import PromotionRepository


# 可更新字段 -> 数据库列
COUPON_UPDATE_FIELDS = {
    "code": "code",
    "name": "name",
    "description": "description",
    "discount_type": "discount_type",
    "discount_value": "discount_value",
    "max_discount_amount": "max_discount_amount",
    "usage_limit": "usage_limit",
    "usage_limit_per_customer": "usage_limit_per_customer",
    "valid_from": "valid_from",
    "valid_until": "valid_until",
    "minimum_order_amount": "minimum_order_amount",
    "applies_to": "applies_to",
    "status": "status",
}


class CouponRepository(PromotionRepository):
    """优惠券数据库操作类"""

    model_db = CouponDB
    product_link = CouponProductDB
    category_link = CouponCategoryDB
    link_key = "coupon_id"

    def __init__(self, db: AsyncSession):
        super().__init__(db)

    async def get_by_code(self, code: str) -> Optional[CouponDB]:
        """根据优惠券代码获取优惠券（不区分大小写）"""
        result = await self.db.execute(
            select(CouponDB).where(CouponDB.code == code.strip().upper())
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def code_exists(self, code: str, exclude_id: Optional[str] = None) -> bool:
        """检查优惠券代码是否已存在"""
        query = select(CouponDB.id).where(CouponDB.code == code.strip().upper())
        if exclude_id:
            query = query.where(CouponDB.id != exclude_id)
        result = await self.db.execute(query)
        return result.first() is not None

    async def create_coupon(self, coupon_data: CouponCreate, created_by: str) -> CouponDB:
        """创建优惠券"""
        db_coupon = CouponDB(
            id=str(uuid.uuid4()),
            campaign_id=coupon_data.campaign_id,
            code=coupon_data.code.upper(),
            name=coupon_data.name,
            description=coupon_data.description,
            discount_type=coupon_data.discount_type.value,
            discount_value=coupon_data.discount_value,
            max_discount_amount=coupon_data.max_discount_amount,
            usage_limit=coupon_data.usage_limit,
            usage_count=0,
            usage_limit_per_customer=coupon_data.usage_limit_per_customer,
            valid_from=coupon_data.valid_from,
            valid_until=coupon_data.valid_until,
            minimum_order_amount=coupon_data.minimum_order_amount,
            applies_to=coupon_data.applies_to.value,
            status=coupon_data.status.value,
            created_by=created_by
        )
        self.db.add(db_coupon)
        await self.db.flush()

        if coupon_data.product_ids:
            await self.set_product_ids(db_coupon.id, coupon_data.product_ids)
        if coupon_data.category_ids:
            await self.set_category_ids(db_coupon.id, coupon_data.category_ids)

        return db_coupon

    async def update_coupon(
        self,
        coupon_id: str,
        update_data: CouponUpdate,
        updated_by: str
    ) -> Optional[CouponDB]:
        """更新优惠券，只更新提交的字段"""
        db_coupon = await self.get_by_id(coupon_id)
        if not db_coupon:
            return None

        values = update_data.model_dump(exclude_unset=True)
        product_ids = values.pop("product_ids", None)
        category_ids = values.pop("category_ids", None)

        db_coupon.updated_by = updated_by
        await self.apply_fields(db_coupon, values, COUPON_UPDATE_FIELDS)

        if product_ids is not None:
            await self.set_product_ids(coupon_id, product_ids)
        if category_ids is not None:
            await self.set_category_ids(coupon_id, category_ids)

        return db_coupon

    async def get_active_coupons(self, current_time: Optional[datetime] = None) -> List[CouponDB]:
        """获取当前有效期内的启用优惠券"""
        if current_time is None:
            current_time = datetime.now()

        result = await self.db.execute(
            select(CouponDB).where(
                and_(
                    CouponDB.status == CouponStatus.ACTIVE.value,
                    CouponDB.valid_from <= current_time,
                    or_(CouponDB.valid_until.is_(None), CouponDB.valid_until >= current_time)
                )
            ).order_by(desc(CouponDB.discount_value))
        )
        return list(result.scalars().all())

    async def get_expiring_coupons(
        self,
        days: int = 7,
        current_time: Optional[datetime] = None
    ) -> List[CouponDB]:
        """获取即将过期的优惠券"""
        if current_time is None:
            current_time = datetime.now()
        deadline = current_time + timedelta(days=days)

        result = await self.db.execute(
            select(CouponDB).where(
                and_(
                    CouponDB.status == CouponStatus.ACTIVE.value,
                    CouponDB.valid_until.is_not(None),
                    CouponDB.valid_until >= current_time,
                    CouponDB.valid_until <= deadline
                )
            ).order_by(CouponDB.valid_until)
        )
        return list(result.scalars().all())

    async def update_statuses(self, current_time: Optional[datetime] = None) -> Dict[str, int]:
        """
        批量更新优惠券状态

        - 已过有效期的启用优惠券 -> expired
        - 达到总使用次数的启用优惠券 -> used_up
        - 进入有效期的停用优惠券 -> active（已删除的除外）
        """
        if current_time is None:
            current_time = datetime.now()

        expired = await self.db.execute(
            update(CouponDB)
            .where(
                and_(
                    CouponDB.status == CouponStatus.ACTIVE.value,
                    CouponDB.valid_until.is_not(None),
                    CouponDB.valid_until < current_time
                )
            )
            .values(status=CouponStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        used_up = await self.db.execute(
            update(CouponDB)
            .where(
                and_(
                    CouponDB.status == CouponStatus.ACTIVE.value,
                    CouponDB.usage_limit.is_not(None),
                    CouponDB.usage_count >= CouponDB.usage_limit
                )
            )
            .values(status=CouponStatus.USED_UP.value)
            .execution_options(synchronize_session=False)
        )
        activated = await self.db.execute(
            update(CouponDB)
            .where(
                and_(
                    CouponDB.status == CouponStatus.INACTIVE.value,
                    CouponDB.deleted_at.is_(None),
                    CouponDB.valid_from <= current_time,
                    or_(CouponDB.valid_until.is_(None), CouponDB.valid_until >= current_time),
                    or_(CouponDB.usage_limit.is_(None), CouponDB.usage_count < CouponDB.usage_limit)
                )
            )
            .values(status=CouponStatus.ACTIVE.value)
            .execution_options(synchronize_session=False)
        )
        return {
            "expired": expired.rowcount,
            "used_up": used_up.rowcount,
            "activated": activated.rowcount
        }

    async def soft_delete(self, coupon_id: str, deleted_by: str) -> Optional[CouponDB]:
        """停用并标记删除，保留使用记录关联"""
        db_coupon = await self.get_by_id(coupon_id)
        if not db_coupon:
            return None

        db_coupon.status = CouponStatus.INACTIVE.value
        db_coupon.deleted_at = datetime.now()
        db_coupon.updated_by = deleted_by
        await self.db.flush()
        return db_coupon

    async def search(
        self,
        keyword: Optional[str] = None,
        status: Optional[CouponStatus] = None,
        discount_type: Optional[str] = None,
        created_by: Optional[str] = None,
        include_deleted: bool = False,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[CouponDB], int]:
        """按条件分页查询优惠券，返回 (当前页, 总数)"""
        conditions = []
        if keyword:
            pattern = f"%{keyword.strip()}%"
            conditions.append(or_(
                CouponDB.code.ilike(pattern),
                CouponDB.name.ilike(pattern),
                CouponDB.description.ilike(pattern)
            ))
        if status:
            conditions.append(CouponDB.status == status.value)
        if discount_type:
            conditions.append(CouponDB.discount_type == discount_type)
        if created_by:
            conditions.append(CouponDB.created_by == created_by)
        if not include_deleted:
            conditions.append(CouponDB.deleted_at.is_(None))

        total = await self.db.execute(select(func.count(CouponDB.id)).where(*conditions))
        result = await self.db.execute(
            select(CouponDB)
            .where(*conditions)
            .order_by(desc(CouponDB.created_at), CouponDB.code)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total.scalar() or 0

    async def get_most_popular(self, limit: int = 10) -> List[Tuple[CouponDB, int, Decimal]]:
        """按使用记录统计启用优惠券的使用次数，返回 (优惠券, 使用次数, 折扣总额)"""
        uses = func.count(PromotionUsageDB.id).label("total_uses")
        result = await self.db.execute(
            select(
                CouponDB,
                uses,
                func.coalesce(func.sum(PromotionUsageDB.discount_amount), 0).label("total_discount")
            )
            .outerjoin(
                PromotionUsageDB,
                and_(
                    PromotionUsageDB.promotion_type == PromotionType.COUPON.value,
                    PromotionUsageDB.promotion_id == CouponDB.id
                )
            )
            .where(CouponDB.status == CouponStatus.ACTIVE.value)
            .group_by(CouponDB.id)
            .order_by(desc(uses), CouponDB.code)
            .limit(limit)
        )
        return [
            (row[0], row.total_uses or 0, Decimal(str(row.total_discount or 0)))
            for row in result.all()
        ]

    async def get_model_by_code(self, code: str) -> Optional[Coupon]:
        db_coupon = await self.get_by_code(code)
        if not db_coupon:
            return None
        return await self.load_model(db_coupon)

    async def load_model(self, db_coupon: CouponDB) -> Coupon:
        """转换为Pydantic模型并加载适用商品/分类"""
        return self.to_model(
            db_coupon,
            product_ids=await self.get_product_ids(db_coupon.id),
            category_ids=await self.get_category_ids(db_coupon.id)
        )

    def to_model(
        self,
        db_coupon: CouponDB,
        product_ids: Optional[List[str]] = None,
        category_ids: Optional[List[str]] = None
    ) -> Coupon:
        """转换为Pydantic模型"""
        return Coupon(
            id=db_coupon.id,
            code=db_coupon.code,
            campaign_id=db_coupon.campaign_id,
            name=db_coupon.name,
            description=db_coupon.description,
            discount_type=db_coupon.discount_type,
            discount_value=db_coupon.discount_value,
            max_discount_amount=db_coupon.max_discount_amount,
            usage_limit=db_coupon.usage_limit,
            usage_count=db_coupon.usage_count or 0,
            usage_limit_per_customer=db_coupon.usage_limit_per_customer,
            valid_from=db_coupon.valid_from,
            valid_until=db_coupon.valid_until,
            minimum_order_amount=db_coupon.minimum_order_amount,
            applies_to=db_coupon.applies_to,
            product_ids=product_ids or [],
            category_ids=category_ids or [],
            status=db_coupon.status,
            created_by=db_coupon.created_by,
            created_at=db_coupon.created_at,
            updated_at=db_coupon.updated_at
        )

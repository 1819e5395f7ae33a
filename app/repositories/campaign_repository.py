"""
促销活动数据库操作层
"""

import uuid
from typing import List, Optional, Dict
from datetime import datetime

from sqlalchemy import select, update, and_, desc
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.promotion import Campaign, CampaignCreate, CampaignUpdate, CampaignStatus
from app.models.database.promotion_db import SalesCampaignDB, CampaignProductDB, CampaignCategoryDB
from app.repositories.promotion_repository import PromotionRepository


# 可更新字段 -> 数据库列
CAMPAIGN_UPDATE_FIELDS = {
    "name": "name",
    "description": "description",
    "start_date": "start_date",
    "end_date": "end_date",
    "status": "status",
    "discount_value": "discount_value",
    "max_discount_amount": "max_discount_amount",
    "usage_limit": "usage_limit",
    "usage_limit_per_customer": "usage_limit_per_customer",
    "minimum_order_amount": "minimum_order_amount",
    "minimum_quantity": "minimum_quantity",
}


class CampaignRepository(PromotionRepository):
    """促销活动数据库操作类"""

    model_db = SalesCampaignDB
    product_link = CampaignProductDB
    category_link = CampaignCategoryDB
    link_key = "campaign_id"

    def __init__(self, db: AsyncSession):
        super().__init__(db)

    async def create_campaign(self, campaign_data: CampaignCreate, created_by: str) -> SalesCampaignDB:
        """创建活动"""
        db_campaign = SalesCampaignDB(
            id=str(uuid.uuid4()),
            name=campaign_data.name,
            description=campaign_data.description,
            campaign_type=campaign_data.campaign_type.value,
            start_date=campaign_data.start_date,
            end_date=campaign_data.end_date,
            status=campaign_data.status.value,
            discount_type=campaign_data.discount_type.value,
            discount_value=campaign_data.discount_value,
            max_discount_amount=campaign_data.max_discount_amount,
            usage_limit=campaign_data.usage_limit,
            usage_count=0,
            usage_limit_per_customer=campaign_data.usage_limit_per_customer,
            minimum_order_amount=campaign_data.minimum_order_amount,
            minimum_quantity=campaign_data.minimum_quantity,
            applies_to=campaign_data.applies_to.value,
            configuration=(
                campaign_data.configuration.model_dump(mode="json")
                if campaign_data.configuration else None
            ),
            created_by=created_by
        )
        self.db.add(db_campaign)
        await self.db.flush()

        if campaign_data.product_ids:
            await self.set_product_ids(db_campaign.id, campaign_data.product_ids)
        if campaign_data.category_ids:
            await self.set_category_ids(db_campaign.id, campaign_data.category_ids)

        return db_campaign

    async def update_campaign(
        self,
        campaign_id: str,
        update_data: CampaignUpdate,
        updated_by: str
    ) -> Optional[SalesCampaignDB]:
        """更新活动，只更新提交的字段"""
        db_campaign = await self.get_by_id(campaign_id)
        if not db_campaign:
            return None

        values = update_data.model_dump(exclude_unset=True)
        product_ids = values.pop("product_ids", None)
        category_ids = values.pop("category_ids", None)

        db_campaign.updated_by = updated_by
        await self.apply_fields(db_campaign, values, CAMPAIGN_UPDATE_FIELDS)

        if product_ids is not None:
            await self.set_product_ids(campaign_id, product_ids)
        if category_ids is not None:
            await self.set_category_ids(campaign_id, category_ids)

        return db_campaign

    async def get_active_campaigns(self, current_time: Optional[datetime] = None) -> List[SalesCampaignDB]:
        """获取当前生效的活动"""
        if current_time is None:
            current_time = datetime.now()

        result = await self.db.execute(
            select(SalesCampaignDB).where(
                and_(
                    SalesCampaignDB.status == CampaignStatus.ACTIVE.value,
                    SalesCampaignDB.start_date <= current_time,
                    SalesCampaignDB.end_date >= current_time
                )
            ).order_by(desc(SalesCampaignDB.discount_value))
        )
        return list(result.scalars().all())

    async def update_statuses(self, current_time: Optional[datetime] = None) -> Dict[str, int]:
        """批量更新活动状态：到期的预定活动开始，过期的活动结束"""
        if current_time is None:
            current_time = datetime.now()

        activated = await self.db.execute(
            update(SalesCampaignDB)
            .where(
                and_(
                    SalesCampaignDB.status == CampaignStatus.SCHEDULED.value,
                    SalesCampaignDB.start_date <= current_time,
                    SalesCampaignDB.end_date >= current_time
                )
            )
            .values(status=CampaignStatus.ACTIVE.value)
            .execution_options(synchronize_session=False)
        )
        expired = await self.db.execute(
            update(SalesCampaignDB)
            .where(
                and_(
                    SalesCampaignDB.status.in_([CampaignStatus.ACTIVE.value, CampaignStatus.SCHEDULED.value]),
                    SalesCampaignDB.end_date < current_time
                )
            )
            .values(status=CampaignStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        return {"activated": activated.rowcount, "expired": expired.rowcount}

    async def get_model(self, campaign_id: str) -> Optional[Campaign]:
        """获取活动并加载适用商品/分类"""
        db_campaign = await self.get_by_id(campaign_id)
        if not db_campaign:
            return None
        return await self.load_model(db_campaign)

    async def load_model(self, db_campaign: SalesCampaignDB) -> Campaign:
        return self.to_model(
            db_campaign,
            product_ids=await self.get_product_ids(db_campaign.id),
            category_ids=await self.get_category_ids(db_campaign.id)
        )

    def to_model(
        self,
        db_campaign: SalesCampaignDB,
        product_ids: Optional[List[str]] = None,
        category_ids: Optional[List[str]] = None
    ) -> Campaign:
        """转换为Pydantic模型"""
        return Campaign(
            id=db_campaign.id,
            name=db_campaign.name,
            description=db_campaign.description,
            campaign_type=db_campaign.campaign_type,
            start_date=db_campaign.start_date,
            end_date=db_campaign.end_date,
            status=db_campaign.status,
            discount_type=db_campaign.discount_type,
            discount_value=db_campaign.discount_value,
            max_discount_amount=db_campaign.max_discount_amount,
            usage_limit=db_campaign.usage_limit,
            usage_count=db_campaign.usage_count or 0,
            usage_limit_per_customer=db_campaign.usage_limit_per_customer,
            minimum_order_amount=db_campaign.minimum_order_amount,
            minimum_quantity=db_campaign.minimum_quantity,
            applies_to=db_campaign.applies_to,
            product_ids=product_ids or [],
            category_ids=category_ids or [],
            configuration=db_campaign.configuration,
            created_by=db_campaign.created_by,
            created_at=db_campaign.created_at,
            updated_at=db_campaign.updated_at
        )

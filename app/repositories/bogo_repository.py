"""
买赠活动数据库操作层
"""

import uuid
from typing import List, Optional
from datetime import datetime

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.promotion import BogoOffer, BogoOfferCreate, BogoStatus
from app.models.database.promotion_db import BogoOfferDB
from app.repositories.promotion_repository import PromotionRepository


class BogoRepository(PromotionRepository):
    """买赠活动数据库操作类"""

    model_db = BogoOfferDB

    def __init__(self, db: AsyncSession):
        super().__init__(db)

    async def create_offer(self, offer_data: BogoOfferCreate, created_by: str) -> BogoOfferDB:
        """创建买赠活动"""
        db_offer = BogoOfferDB(
            id=str(uuid.uuid4()),
            campaign_id=offer_data.campaign_id,
            name=offer_data.name,
            description=offer_data.description,
            buy_quantity=offer_data.buy_quantity,
            buy_product_id=offer_data.buy_product_id,
            buy_category_id=offer_data.buy_category_id,
            get_quantity=offer_data.get_quantity,
            get_product_id=offer_data.get_product_id,
            get_category_id=offer_data.get_category_id,
            get_discount_type=offer_data.get_discount_type.value,
            get_discount_value=offer_data.get_discount_value,
            start_date=offer_data.start_date,
            end_date=offer_data.end_date,
            status=offer_data.status.value,
            usage_limit=offer_data.usage_limit,
            usage_count=0,
            created_by=created_by
        )
        self.db.add(db_offer)
        await self.db.flush()
        return db_offer

    async def get_active_offers(self, current_time: Optional[datetime] = None) -> List[BogoOfferDB]:
        """获取当前生效的买赠活动"""
        if current_time is None:
            current_time = datetime.now()

        result = await self.db.execute(
            select(BogoOfferDB).where(
                and_(
                    BogoOfferDB.status == BogoStatus.ACTIVE.value,
                    BogoOfferDB.start_date <= current_time,
                    BogoOfferDB.end_date >= current_time
                )
            ).order_by(BogoOfferDB.created_at)
        )
        return list(result.scalars().all())

    async def get_model(self, offer_id: str) -> Optional[BogoOffer]:
        db_offer = await self.get_by_id(offer_id)
        return self.to_model(db_offer) if db_offer else None

    def to_model(self, db_offer: BogoOfferDB) -> BogoOffer:
        """转换为Pydantic模型"""
        return BogoOffer(
            id=db_offer.id,
            campaign_id=db_offer.campaign_id,
            name=db_offer.name,
            description=db_offer.description,
            buy_quantity=db_offer.buy_quantity,
            buy_product_id=db_offer.buy_product_id,
            buy_category_id=db_offer.buy_category_id,
            get_quantity=db_offer.get_quantity,
            get_product_id=db_offer.get_product_id,
            get_category_id=db_offer.get_category_id,
            get_discount_type=db_offer.get_discount_type,
            get_discount_value=db_offer.get_discount_value or 0,
            start_date=db_offer.start_date,
            end_date=db_offer.end_date,
            status=db_offer.status,
            usage_limit=db_offer.usage_limit,
            usage_count=db_offer.usage_count or 0,
            created_by=db_offer.created_by,
            created_at=db_offer.created_at,
            updated_at=db_offer.updated_at
        )

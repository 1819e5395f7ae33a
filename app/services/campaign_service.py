"""
促销活动业务服务层
"""

import logging
from typing import List, Optional, Dict, Any
from decimal import Decimal
from datetime import datetime

from app.core.config import settings
from app.core.exceptions import NotFoundException, EligibilityException
from app.models.promotion import (
    Campaign,
    CampaignCreate,
    CampaignStatus,
    CampaignUpdate,
    EligibilityContext,
    PromotionType
)
from app.repositories.campaign_repository import CampaignRepository
from app.repositories.usage_repository import UsageRepository
from app.services.common_cache import promotion_cache
from app.services.eligibility_service import EligibilityService
from app.services.discount_calculator import DiscountCalculator, discount_calculator

logger = logging.getLogger(__name__)


class CampaignService:
    """促销活动业务服务"""

    def __init__(
        self,
        campaign_repo: CampaignRepository,
        usage_repo: UsageRepository,
        eligibility: Optional[EligibilityService] = None,
        calculator: Optional[DiscountCalculator] = None
    ):
        self.campaign_repo = campaign_repo
        self.usage_repo = usage_repo
        self.eligibility = eligibility or EligibilityService(usage_repo)
        self.calculator = calculator or discount_calculator
        self.cache = promotion_cache
        self.cache_prefix = "campaign"
        self.cache_ttl = settings.promotion_cache_ttl

    async def create_campaign(self, campaign_data: CampaignCreate, created_by: str) -> Campaign:
        """创建活动"""
        db_campaign = await self.campaign_repo.create_campaign(campaign_data, created_by)
        logger.info(f"创建活动: {db_campaign.name} ({db_campaign.id})")
        return await self.campaign_repo.load_model(db_campaign)

    async def update_campaign(self, campaign_id: str, update_data: CampaignUpdate, updated_by: str) -> Campaign:
        """更新活动"""
        db_campaign = await self.campaign_repo.update_campaign(campaign_id, update_data, updated_by)
        if not db_campaign:
            raise NotFoundException(f"Campaign {campaign_id} not found")

        await self.cache.delete(f"{self.cache_prefix}:id:{campaign_id}")
        return await self.campaign_repo.load_model(db_campaign)

    async def delete_campaign(self, campaign_id: str, deleted_by: str) -> Campaign:
        """删除活动：状态改为已取消，定时任务不会再启用"""
        campaign = await self.update_campaign(
            campaign_id, CampaignUpdate(status=CampaignStatus.CANCELLED), deleted_by
        )
        logger.info(f"删除活动: {campaign.name} ({campaign.id}) 操作人 {deleted_by}")
        return campaign

    async def get_campaign(self, campaign_id: str, use_cache: bool = True) -> Optional[Campaign]:
        """获取活动详情"""
        cache_key = f"{self.cache_prefix}:id:{campaign_id}"

        if use_cache:
            cached = await self.cache.get(cache_key)
            if cached:
                return Campaign(**cached)

        campaign = await self.campaign_repo.get_model(campaign_id)
        if campaign and use_cache:
            await self.cache.set(cache_key, campaign.model_dump(mode="json"), ttl=self.cache_ttl)
        return campaign

    async def get_active_campaigns(self, current_time: Optional[datetime] = None) -> List[Campaign]:
        """获取当前生效的活动"""
        db_campaigns = await self.campaign_repo.get_active_campaigns(current_time)
        return [await self.campaign_repo.load_model(db_campaign) for db_campaign in db_campaigns]

    async def calculate_campaign_discount(
        self,
        campaign_id: str,
        order_amount: Decimal,
        user_id: str,
        quantity: int = 0,
        product_ids: Optional[List[str]] = None,
        category_ids: Optional[List[str]] = None,
        current_time: Optional[datetime] = None
    ) -> Decimal:
        """计算活动折扣，活动不存在或不满足条件时抛出异常"""
        campaign = await self.campaign_repo.get_model(campaign_id)
        if not campaign:
            raise NotFoundException(f"Campaign {campaign_id} not found")

        context = EligibilityContext(
            user_id=user_id,
            order_amount=order_amount,
            quantity=quantity,
            product_ids=product_ids or [],
            category_ids=category_ids or [],
            timestamp=current_time or datetime.now()
        )
        result = await self.eligibility.evaluate(campaign, context)
        if not result.is_valid:
            raise EligibilityException(
                result.error_message,
                details={"promotion_type": PromotionType.CAMPAIGN.value, "reason": result.reason.value}
            )

        return self.calculator.calculate(campaign, order_amount)

    async def update_campaign_statuses(self, current_time: Optional[datetime] = None) -> Dict[str, int]:
        """批量刷新活动状态（定时任务调用）"""
        result = await self.campaign_repo.update_statuses(current_time)
        await self.cache.delete_pattern(f"{self.cache_prefix}:*")
        logger.info(f"活动状态更新: {result}")
        return result

    async def get_campaign_analytics(self, campaign_id: str) -> Dict[str, Any]:
        """活动使用统计"""
        campaign = await self.campaign_repo.get_model(campaign_id)
        if not campaign:
            raise NotFoundException(f"Campaign {campaign_id} not found")

        stats = await self.usage_repo.get_usage_stats(PromotionType.CAMPAIGN, campaign_id)
        return {
            "campaign_id": campaign.id,
            "name": campaign.name,
            "status": campaign.status.value,
            "remaining_uses": (
                max(campaign.usage_limit - stats["total_uses"], 0)
                if campaign.usage_limit is not None else None
            ),
            **stats
        }

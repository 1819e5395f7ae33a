"""
优惠券业务服务层
提供优惠券相关的业务逻辑处理
"""

import logging
import secrets
import string
from typing import List, Optional, Dict, Any
from decimal import Decimal
from datetime import datetime

from app.core.config import settings
from app.core.exceptions import ConflictException, NotFoundException, ValidationException, InternalException
from app.models.promotion import (
    Coupon,
    CouponCreate,
    CouponSearchResult,
    CouponStatus,
    CouponUpdate,
    CouponValidation,
    DiscountType,
    EligibilityContext,
    AppliesTo,
    IneligibilityReason,
    PopularCoupon,
    PromotionType,
    UsageRecord
)
from app.repositories.coupon_repository import CouponRepository
from app.repositories.usage_repository import UsageRepository
from app.repositories.order_repository import OrderRepository
from app.services.common_cache import promotion_cache
from app.services.eligibility_service import EligibilityService
from app.services.discount_calculator import DiscountCalculator, discount_calculator

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


class CouponService:
    """优惠券业务服务"""

    def __init__(
        self,
        coupon_repo: CouponRepository,
        usage_repo: UsageRepository,
        order_repo: Optional[OrderRepository] = None,
        eligibility: Optional[EligibilityService] = None,
        calculator: Optional[DiscountCalculator] = None
    ):
        self.coupon_repo = coupon_repo
        self.usage_repo = usage_repo
        self.order_repo = order_repo
        self.eligibility = eligibility or EligibilityService(usage_repo)
        self.calculator = calculator or discount_calculator
        self.cache = promotion_cache
        self.cache_prefix = "coupon"
        self.cache_ttl = settings.promotion_cache_ttl

    async def _invalidate(self, *codes: str):
        for code in codes:
            if code:
                await self.cache.delete(f"{self.cache_prefix}:code:{code.upper()}")

    async def create_coupon(self, coupon_data: CouponCreate, created_by: str) -> Coupon:
        """创建优惠券，代码重复时抛出冲突异常"""
        if await self.coupon_repo.code_exists(coupon_data.code):
            raise ConflictException(f"Coupon code {coupon_data.code} already exists")

        db_coupon = await self.coupon_repo.create_coupon(coupon_data, created_by)
        logger.info(f"创建优惠券: {db_coupon.code}")
        return await self.coupon_repo.load_model(db_coupon)

    async def update_coupon(self, coupon_id: str, update_data: CouponUpdate, updated_by: str) -> Coupon:
        """更新优惠券"""
        db_coupon = await self.coupon_repo.get_by_id(coupon_id)
        if not db_coupon:
            raise NotFoundException(f"Coupon {coupon_id} not found")

        old_code = db_coupon.code
        if update_data.code and update_data.code != old_code:
            if await self.coupon_repo.code_exists(update_data.code, exclude_id=coupon_id):
                raise ConflictException(f"Coupon code {update_data.code} already exists")

        db_coupon = await self.coupon_repo.update_coupon(coupon_id, update_data, updated_by)
        await self._invalidate(old_code, db_coupon.code)
        return await self.coupon_repo.load_model(db_coupon)

    async def get_coupon(self, coupon_id: str) -> Optional[Coupon]:
        db_coupon = await self.coupon_repo.get_by_id(coupon_id)
        if not db_coupon:
            return None
        return await self.coupon_repo.load_model(db_coupon)

    async def get_coupon_by_code(self, code: str, use_cache: bool = True) -> Optional[Coupon]:
        """根据优惠券代码获取优惠券（不区分大小写）"""
        cache_key = f"{self.cache_prefix}:code:{code.strip().upper()}"

        if use_cache:
            cached_coupon = await self.cache.get(cache_key)
            if cached_coupon:
                return Coupon(**cached_coupon)

        coupon = await self.coupon_repo.get_model_by_code(code)
        if not coupon:
            return None

        if use_cache:
            await self.cache.set(cache_key, coupon.model_dump(mode="json"), ttl=self.cache_ttl)

        return coupon

    async def validate_coupon(
        self,
        code: str,
        user_id: str,
        order_amount: Decimal,
        product_ids: Optional[List[str]] = None,
        category_ids: Optional[List[str]] = None,
        quantity: int = 0,
        previous_order_count: Optional[int] = None,
        current_time: Optional[datetime] = None
    ) -> CouponValidation:
        """
        验证用户是否可以使用优惠券

        不满足条件时返回 is_valid=False 及原因，不抛出异常。
        验证不使用缓存，确保实时性。
        """
        normalized = code.strip().upper()
        coupon = await self.coupon_repo.get_model_by_code(normalized)
        if not coupon:
            return CouponValidation(
                code=normalized,
                is_valid=False,
                reason=IneligibilityReason.NOT_FOUND,
                error_message="Coupon not found"
            )

        if previous_order_count is None and coupon.applies_to in (
            AppliesTo.FIRST_ORDER, AppliesTo.RETURNING_CUSTOMERS
        ) and self.order_repo is not None:
            previous_order_count = await self.order_repo.count_user_orders(user_id)

        context = EligibilityContext(
            user_id=user_id,
            order_amount=order_amount,
            quantity=quantity,
            product_ids=product_ids or [],
            category_ids=category_ids or [],
            timestamp=current_time or datetime.now(),
            previous_order_count=previous_order_count
        )

        result = await self.eligibility.evaluate(coupon, context)
        if not result.is_valid:
            return CouponValidation(
                code=coupon.code,
                is_valid=False,
                reason=result.reason,
                error_message=result.error_message,
                coupon_id=coupon.id,
                coupon=coupon
            )

        return CouponValidation(
            code=coupon.code,
            is_valid=True,
            discount_amount=self.calculator.calculate(coupon, order_amount),
            coupon_id=coupon.id,
            coupon=coupon
        )

    async def validate_multiple_coupons(
        self,
        codes: List[str],
        user_id: str,
        order_amount: Decimal,
        product_ids: Optional[List[str]] = None,
        category_ids: Optional[List[str]] = None,
        quantity: int = 0,
        current_time: Optional[datetime] = None
    ) -> List[CouponValidation]:
        """
        逐个校验多个优惠券，结果顺序与传入顺序一致

        每个优惠券独立校验，结果不代表可以在同一订单中叠加使用。
        重复的代码（忽略大小写）只校验一次。
        """
        normalized = []
        for code in codes:
            code = code.strip().upper()
            if code and code not in normalized:
                normalized.append(code)
        if not normalized:
            raise ValidationException("At least one coupon code is required")

        return [
            await self.validate_coupon(
                code,
                user_id,
                order_amount,
                product_ids=product_ids,
                category_ids=category_ids,
                quantity=quantity,
                current_time=current_time
            )
            for code in normalized
        ]

    async def delete_coupon(self, coupon_id: str, deleted_by: str) -> Coupon:
        """删除优惠券（停用并标记删除，使用记录保留）"""
        db_coupon = await self.coupon_repo.soft_delete(coupon_id, deleted_by)
        if not db_coupon:
            raise NotFoundException(f"Coupon {coupon_id} not found")

        await self._invalidate(db_coupon.code)
        logger.info(f"删除优惠券: {db_coupon.code} 操作人 {deleted_by}")
        return await self.coupon_repo.load_model(db_coupon)

    async def search_coupons(
        self,
        keyword: Optional[str] = None,
        status: Optional[CouponStatus] = None,
        discount_type: Optional[DiscountType] = None,
        created_by: Optional[str] = None,
        include_deleted: bool = False,
        limit: int = 20,
        offset: int = 0
    ) -> CouponSearchResult:
        """按代码、名称、描述模糊搜索优惠券"""
        if limit < 1 or offset < 0:
            raise ValidationException("Invalid pagination parameters")

        db_coupons, total = await self.coupon_repo.search(
            keyword=keyword,
            status=status,
            discount_type=discount_type.value if discount_type else None,
            created_by=created_by,
            include_deleted=include_deleted,
            limit=limit,
            offset=offset
        )
        return CouponSearchResult(
            coupons=[await self.coupon_repo.load_model(db_coupon) for db_coupon in db_coupons],
            total=total
        )

    async def get_most_popular_coupons(self, limit: int = 10) -> List[PopularCoupon]:
        """使用次数最多的启用优惠券，次数以使用记录为准"""
        rows = await self.coupon_repo.get_most_popular(limit)
        return [
            PopularCoupon(
                coupon=await self.coupon_repo.load_model(db_coupon),
                total_uses=total_uses,
                total_discount=total_discount
            )
            for db_coupon, total_uses, total_discount in rows
        ]

    async def generate_unique_code(self, prefix: str = "", length: Optional[int] = None, max_attempts: int = 10) -> str:
        """生成唯一优惠券代码"""
        length = length or settings.coupon_code_length
        if length < 4:
            raise ValidationException("Coupon code length must be at least 4")

        prefix = prefix.strip().upper()
        for _ in range(max_attempts):
            code = prefix + "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
            if not await self.coupon_repo.code_exists(code):
                return code

        raise InternalException("Unable to generate a unique coupon code")

    async def generate_bulk_coupons(
        self,
        base_data: CouponCreate,
        count: int,
        created_by: str,
        prefix: str = "",
        length: Optional[int] = None
    ) -> List[Coupon]:
        """按模板批量生成优惠券，代码随机生成"""
        if count < 1 or count > settings.bulk_coupon_max_count:
            raise ValidationException(f"Bulk coupon count must be between 1 and {settings.bulk_coupon_max_count}")

        coupons = []
        for _ in range(count):
            code = await self.generate_unique_code(prefix=prefix, length=length)
            coupon_data = base_data.model_copy(update={"code": code})
            db_coupon = await self.coupon_repo.create_coupon(coupon_data, created_by)
            coupons.append(await self.coupon_repo.load_model(db_coupon))

        logger.info(f"批量生成优惠券 {count} 张")
        return coupons

    async def update_coupon_statuses(self, current_time: Optional[datetime] = None) -> Dict[str, int]:
        """批量刷新优惠券状态（定时任务调用）"""
        result = await self.coupon_repo.update_statuses(current_time)
        await self.cache.delete_pattern(f"{self.cache_prefix}:*")
        logger.info(f"优惠券状态更新: {result}")
        return result

    async def get_expiring_coupons(self, days: Optional[int] = None) -> List[Coupon]:
        """获取即将过期的优惠券"""
        db_coupons = await self.coupon_repo.get_expiring_coupons(days or settings.expiring_window_days)
        return [await self.coupon_repo.load_model(db_coupon) for db_coupon in db_coupons]

    async def get_coupon_analytics(self, coupon_id: str) -> Dict[str, Any]:
        """优惠券使用统计"""
        coupon = await self.get_coupon(coupon_id)
        if not coupon:
            raise NotFoundException(f"Coupon {coupon_id} not found")

        stats = await self.usage_repo.get_usage_stats(PromotionType.COUPON, coupon_id)
        remaining = None
        usage_rate = None
        if coupon.usage_limit is not None:
            remaining = max(coupon.usage_limit - stats["total_uses"], 0)
            usage_rate = stats["total_uses"] / coupon.usage_limit

        return {
            "coupon_id": coupon.id,
            "code": coupon.code,
            "status": coupon.status.value,
            "remaining_uses": remaining,
            "usage_rate": usage_rate,
            **stats
        }

    async def get_user_coupon_history(self, user_id: str, limit: int = 50) -> List[UsageRecord]:
        """获取用户优惠券使用历史"""
        records = await self.usage_repo.get_user_history(user_id, PromotionType.COUPON, limit=limit)
        return [self.usage_repo.to_model(record) for record in records]

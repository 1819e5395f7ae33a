"""
促销资格评估服务

按固定顺序检查促销是否可用于当前购物车/用户/时间，遇到第一个不满足的条件即返回。
评估只读，可用于下单前的"可用优惠"预览。
"""

import logging
from datetime import datetime
from typing import Optional

from app.models.promotion import (
    AppliesTo,
    EligibilityContext,
    EligibilityResult,
    IneligibilityReason,
    Promotion
)
from app.repositories.usage_repository import UsageRepository

logger = logging.getLogger(__name__)


def _aligned(current: datetime, boundary: datetime) -> datetime:
    """统一时区感知，数据库返回带时区时间而当前时间为本地时间时转换"""
    if boundary.tzinfo is not None and current.tzinfo is None:
        return current.astimezone()
    if boundary.tzinfo is None and current.tzinfo is not None:
        return current.astimezone().replace(tzinfo=None)
    return current


class EligibilityService:
    """促销资格评估器，活动/优惠券/买赠共用"""

    def __init__(self, usage_repo: UsageRepository):
        self.usage_repo = usage_repo

    async def evaluate(self, promotion: Promotion, context: EligibilityContext) -> EligibilityResult:
        """评估促销资格"""
        label = promotion.label

        # 1. 状态
        if not promotion.is_active_status():
            return EligibilityResult.fail(
                IneligibilityReason.NOT_ACTIVE, f"{label} is not active"
            )

        # 2. 有效期（无结束时间视为长期有效）
        start = promotion.window_start
        if start is not None and _aligned(context.timestamp, start) < start:
            return EligibilityResult.fail(
                IneligibilityReason.NOT_YET_VALID, f"{label} is not yet valid"
            )
        end = promotion.window_end
        if end is not None and _aligned(context.timestamp, end) > end:
            return EligibilityResult.fail(
                IneligibilityReason.EXPIRED, f"{label} has expired"
            )

        # 3. 总使用次数（以使用记录为准）
        if promotion.usage_limit is not None:
            used = await self.usage_repo.count_usage(promotion.promotion_type, promotion.id)
            if used >= promotion.usage_limit:
                return EligibilityResult.fail(
                    IneligibilityReason.USAGE_LIMIT_REACHED, f"{label} usage limit reached"
                )

        # 4. 单用户使用次数
        if promotion.usage_limit_per_customer is not None:
            user_used = await self.usage_repo.count_user_usage(
                promotion.promotion_type, promotion.id, context.user_id
            )
            if user_used >= promotion.usage_limit_per_customer:
                return EligibilityResult.fail(
                    IneligibilityReason.PER_CUSTOMER_LIMIT_REACHED,
                    f"{label} per-customer limit reached"
                )

        # 5. 最低订单金额
        if promotion.minimum_order_amount is not None and context.order_amount < promotion.minimum_order_amount:
            return EligibilityResult.fail(
                IneligibilityReason.MINIMUM_ORDER_AMOUNT,
                f"Minimum order amount of {promotion.minimum_order_amount:.2f} required"
            )

        # 6. 最低购买数量
        required = promotion.required_quantity
        if required is not None and context.quantity < required:
            return EligibilityResult.fail(
                IneligibilityReason.MINIMUM_QUANTITY,
                f"Minimum quantity of {required} required"
            )

        # 7. 适用范围
        return self._check_applicability(promotion, context)

    def _check_applicability(self, promotion: Promotion, context: EligibilityContext) -> EligibilityResult:
        applies_to, product_ids, category_ids = promotion.applicability()
        label = promotion.label

        if applies_to == AppliesTo.PRODUCTS:
            if not product_ids & set(context.product_ids):
                return EligibilityResult.fail(
                    IneligibilityReason.NOT_APPLICABLE, f"{label} is not applicable to items in cart"
                )
        elif applies_to == AppliesTo.CATEGORIES:
            if not category_ids & set(context.category_ids):
                return EligibilityResult.fail(
                    IneligibilityReason.NOT_APPLICABLE, f"{label} is not applicable to items in cart"
                )
        elif applies_to in (AppliesTo.FIRST_ORDER, AppliesTo.RETURNING_CUSTOMERS):
            previous = context.previous_order_count or 0
            first_order = previous == 0
            if first_order != (applies_to == AppliesTo.FIRST_ORDER):
                return EligibilityResult.fail(
                    IneligibilityReason.CUSTOMER_NOT_ELIGIBLE,
                    f"{label} is not applicable to this customer"
                )

        return EligibilityResult.ok()


def build_context(
    user_id: str,
    cart_items,
    timestamp: Optional[datetime] = None,
    previous_order_count: Optional[int] = None
) -> EligibilityContext:
    """根据购物车商品行构建评估上下文"""
    return EligibilityContext(
        user_id=user_id,
        order_amount=sum((item.line_total for item in cart_items), 0),
        quantity=sum(item.quantity for item in cart_items),
        product_ids=list(dict.fromkeys(item.product_id for item in cart_items)),
        category_ids=list(dict.fromkeys(item.category_id for item in cart_items if item.category_id)),
        timestamp=timestamp or datetime.now(),
        previous_order_count=previous_order_count
    )

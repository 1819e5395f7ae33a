"""
促销编排服务

汇总活动、优惠券、买赠的折扣明细，并在下单事务中写入使用记录。
"""

import logging
from decimal import Decimal
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import EligibilityException, ValidationException
from app.models.order import CartItem
from app.models.promotion import (
    AppliedDiscount,
    ApplicableDiscount,
    BogoRequest,
    Campaign,
    Coupon,
    DiscountType,
    EligibilityContext,
    IneligibilityReason,
    IneligiblePromotion,
    OrderTotals,
    PromotionType
)
from app.repositories.bogo_repository import BogoRepository
from app.repositories.campaign_repository import CampaignRepository
from app.repositories.coupon_repository import CouponRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.product_repository import ProductRepository
from app.repositories.usage_repository import UsageRepository
from app.services.bogo_service import BogoService
from app.services.campaign_service import CampaignService
from app.services.coupon_service import CouponService
from app.services.discount_calculator import DiscountCalculator, discount_calculator, quantize_money, ZERO
from app.services.eligibility_service import EligibilityService, build_context

logger = logging.getLogger(__name__)

# 折扣明细的排列顺序
BREAKDOWN_ORDER = (PromotionType.CAMPAIGN, PromotionType.COUPON, PromotionType.BOGO)


class PromotionService:
    """促销编排服务"""

    def __init__(
        self,
        coupon_service: CouponService,
        campaign_service: CampaignService,
        bogo_service: BogoService,
        usage_repo: UsageRepository,
        order_repo: OrderRepository,
        eligibility: Optional[EligibilityService] = None,
        calculator: Optional[DiscountCalculator] = None
    ):
        self.coupon_service = coupon_service
        self.campaign_service = campaign_service
        self.bogo_service = bogo_service
        self.usage_repo = usage_repo
        self.order_repo = order_repo
        self.eligibility = eligibility or EligibilityService(usage_repo)
        self.calculator = calculator or discount_calculator

    @classmethod
    def from_session(cls, db: AsyncSession) -> "PromotionService":
        """基于同一个数据库会话组装服务"""
        usage_repo = UsageRepository(db)
        order_repo = OrderRepository(db)
        eligibility = EligibilityService(usage_repo)
        return cls(
            coupon_service=CouponService(CouponRepository(db), usage_repo, order_repo, eligibility),
            campaign_service=CampaignService(CampaignRepository(db), usage_repo, eligibility),
            bogo_service=BogoService(BogoRepository(db), usage_repo, ProductRepository(db), eligibility),
            usage_repo=usage_repo,
            order_repo=order_repo,
            eligibility=eligibility
        )

    async def build_context(
        self,
        cart_items: List[CartItem],
        user_id: str,
        current_time: Optional[datetime] = None
    ) -> EligibilityContext:
        previous_order_count = await self.order_repo.count_user_orders(user_id)
        return build_context(user_id, cart_items, timestamp=current_time, previous_order_count=previous_order_count)

    async def _evaluate_simple(
        self,
        promotion: Union[Campaign, Coupon],
        context: EligibilityContext,
        explicitly_requested: bool = True
    ) -> Tuple[Optional[AppliedDiscount], Optional[IneligiblePromotion]]:
        """活动/优惠券：评估资格后按原始小计计算折扣"""
        code = getattr(promotion, "code", None)
        result = await self.eligibility.evaluate(promotion, context)
        if not result.is_valid:
            return None, IneligiblePromotion(
                promotion_type=promotion.promotion_type,
                promotion_id=promotion.id,
                promotion_code=code,
                reason=result.reason,
                error_message=result.error_message,
                explicitly_requested=explicitly_requested
            )

        return AppliedDiscount(
            promotion_type=promotion.promotion_type,
            promotion_id=promotion.id,
            promotion_code=code,
            name=promotion.name,
            discount_type=promotion.discount_type.value,
            discount_value=promotion.discount_value,
            original_amount=context.order_amount,
            discount_amount=self.calculator.calculate(promotion, context.order_amount),
            free_shipping=promotion.discount_type == DiscountType.FREE_SHIPPING
        ), None

    async def calculate_order_totals(
        self,
        cart_items: List[CartItem],
        user_id: str,
        coupon_code: Optional[str] = None,
        campaign_id: Optional[str] = None,
        bogo_offers: Optional[List[BogoRequest]] = None,
        tax_amount: Decimal = ZERO,
        shipping_amount: Decimal = ZERO,
        current_time: Optional[datetime] = None
    ) -> OrderTotals:
        """
        计算订单金额及折扣明细

        活动与优惠券都基于同一原始小计计算后相加，互不叠乘。
        单个促销不可用时记入 ineligible，不影响其他促销。
        """
        if not cart_items:
            raise ValidationException("Cart is empty", code="cart_empty")
        bogo_ids = [request.bogo_id for request in bogo_offers or []]
        if len(set(bogo_ids)) != len(bogo_ids):
            raise ValidationException("Duplicate BOGO offer in request", code="duplicate_bogo_offer")

        context = await self.build_context(cart_items, user_id, current_time)
        subtotal = context.order_amount
        discounts: List[AppliedDiscount] = []
        ineligible: List[IneligiblePromotion] = []

        if campaign_id:
            campaign = await self.campaign_service.get_campaign(campaign_id, use_cache=False)
            if not campaign:
                ineligible.append(IneligiblePromotion(
                    promotion_type=PromotionType.CAMPAIGN,
                    promotion_id=campaign_id,
                    reason=IneligibilityReason.NOT_FOUND,
                    error_message="Campaign not found"
                ))
            else:
                applied, rejected = await self._evaluate_simple(campaign, context)
                discounts.extend([applied] if applied else [])
                ineligible.extend([rejected] if rejected else [])

        if coupon_code:
            coupon = await self.coupon_service.get_coupon_by_code(coupon_code, use_cache=False)
            if not coupon:
                ineligible.append(IneligiblePromotion(
                    promotion_type=PromotionType.COUPON,
                    promotion_code=coupon_code.strip().upper(),
                    reason=IneligibilityReason.NOT_FOUND,
                    error_message="Coupon not found"
                ))
            else:
                applied, rejected = await self._evaluate_simple(coupon, context)
                discounts.extend([applied] if applied else [])
                ineligible.extend([rejected] if rejected else [])

        # 各买赠已占用的赠品数量，同一件赠品不能被两个买赠同时使用
        reserved: Dict[str, int] = {}
        for request in bogo_offers or []:
            offer = await self.bogo_service.get_bogo_offer(request.bogo_id, use_cache=False)
            if not offer:
                ineligible.append(IneligiblePromotion(
                    promotion_type=PromotionType.BOGO,
                    promotion_id=request.bogo_id,
                    reason=IneligibilityReason.NOT_FOUND,
                    error_message="BOGO offer not found"
                ))
                continue
            applied, rejected = await self.bogo_service.apply_offer(
                offer, request, cart_items, context, reserved=reserved
            )
            if applied:
                discounts.append(applied)
                reserved[applied.get_product_id] = reserved.get(applied.get_product_id, 0) + applied.get_quantity
            ineligible.extend([rejected] if rejected else [])

        free_shipping = any(item.free_shipping for item in discounts)
        if free_shipping:
            shipping_amount = ZERO

        total_discount = sum((item.discount_amount for item in discounts), ZERO)
        total = max(subtotal + tax_amount + shipping_amount - total_discount, ZERO)

        return OrderTotals(
            subtotal=subtotal,
            total_quantity=context.quantity,
            discount_breakdown=discounts,
            ineligible=ineligible,
            total_discount=total_discount,
            tax_amount=tax_amount,
            shipping_amount=shipping_amount,
            free_shipping=free_shipping,
            total=total
        )

    async def get_applicable_discounts(
        self,
        cart_items: List[CartItem],
        user_id: str,
        current_time: Optional[datetime] = None
    ) -> List[ApplicableDiscount]:
        """
        列出购物车可用的促销及折扣金额

        活动和买赠同时返回不可用项及原因；优惠券只返回可用项。
        """
        if not cart_items:
            return []

        context = await self.build_context(cart_items, user_id, current_time)
        results: List[ApplicableDiscount] = []

        for campaign in await self.campaign_service.get_active_campaigns(current_time):
            applied, rejected = await self._evaluate_simple(campaign, context, explicitly_requested=False)
            results.append(self._to_applicable(applied, rejected, campaign.name))

        for coupon in await self.coupon_service.coupon_repo.get_active_coupons(current_time):
            model = await self.coupon_service.coupon_repo.load_model(coupon)
            applied, _ = await self._evaluate_simple(model, context, explicitly_requested=False)
            if applied:
                results.append(self._to_applicable(applied, None, model.name))

        for offer in await self.bogo_service.get_active_offers(current_time):
            request = self.bogo_service.build_request(offer, cart_items)
            if request is None:
                results.append(ApplicableDiscount(
                    promotion_type=PromotionType.BOGO,
                    promotion_id=offer.id,
                    name=offer.name,
                    is_valid=False,
                    reason=IneligibilityReason.NOT_APPLICABLE,
                    error_message=f"{offer.label} is not applicable to items in cart"
                ))
                continue
            applied, rejected = await self.bogo_service.apply_offer(
                offer, request, cart_items, context, explicitly_requested=False
            )
            results.append(self._to_applicable(applied, rejected, offer.name))

        return sorted(results, key=lambda item: (not item.is_valid, -item.discount_amount))

    @staticmethod
    def _to_applicable(
        applied: Optional[AppliedDiscount],
        rejected: Optional[IneligiblePromotion],
        name: str
    ) -> ApplicableDiscount:
        if applied:
            return ApplicableDiscount(
                promotion_type=applied.promotion_type,
                promotion_id=applied.promotion_id,
                promotion_code=applied.promotion_code,
                name=name,
                is_valid=True,
                discount_amount=applied.discount_amount
            )
        return ApplicableDiscount(
            promotion_type=rejected.promotion_type,
            promotion_id=rejected.promotion_id,
            promotion_code=rejected.promotion_code,
            name=name,
            is_valid=False,
            reason=rejected.reason,
            error_message=rejected.error_message
        )

    def _repository_for(self, promotion_type: PromotionType):
        return {
            PromotionType.CAMPAIGN: self.campaign_service.campaign_repo,
            PromotionType.COUPON: self.coupon_service.coupon_repo,
            PromotionType.BOGO: self.bogo_service.bogo_repo,
        }[promotion_type]

    async def record_usage(
        self,
        order_id: str,
        user_id: str,
        totals: OrderTotals,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> int:
        """
        为每个已生效折扣写入使用记录并递增使用次数

        必须在下单事务内调用：加锁后按使用记录重新校验次数限制，
        校验失败抛出 EligibilityException，由调用方回滚。
        """
        recorded = 0
        for discount in totals.discount_breakdown:
            repo = self._repository_for(discount.promotion_type)
            db_promotion = await repo.get_for_update(discount.promotion_id)
            if db_promotion is None:
                raise EligibilityException(
                    f"{discount.name} is no longer available",
                    details={"promotion_type": discount.promotion_type.value, "promotion_id": discount.promotion_id}
                )

            per_customer = getattr(db_promotion, "usage_limit_per_customer", None)
            if per_customer is not None:
                user_used = await self.usage_repo.count_user_usage(
                    discount.promotion_type, discount.promotion_id, user_id
                )
                if user_used >= per_customer:
                    raise EligibilityException(
                        f"{discount.name} per-customer limit reached",
                        details={"reason": IneligibilityReason.PER_CUSTOMER_LIMIT_REACHED.value}
                    )

            if db_promotion.usage_limit is not None:
                used = await self.usage_repo.count_usage(discount.promotion_type, discount.promotion_id)
                if used >= db_promotion.usage_limit:
                    raise EligibilityException(
                        f"{discount.name} usage limit reached",
                        details={"reason": IneligibilityReason.USAGE_LIMIT_REACHED.value}
                    )

            if not await repo.increment_usage_count(discount.promotion_id):
                raise EligibilityException(
                    f"{discount.name} usage limit reached",
                    details={"reason": IneligibilityReason.USAGE_LIMIT_REACHED.value}
                )

            original_amount = quantize_money(discount.original_amount)
            discount_amount = quantize_money(discount.discount_amount)
            await self.usage_repo.record_usage(
                promotion_type=discount.promotion_type,
                promotion_id=discount.promotion_id,
                promotion_code=discount.promotion_code,
                user_id=user_id,
                order_id=order_id,
                promotion_name=discount.name,
                discount_type=discount.discount_type,
                discount_value=discount.discount_value,
                free_shipping=discount.free_shipping,
                original_amount=original_amount,
                discount_amount=discount_amount,
                final_amount=max(original_amount - discount_amount, ZERO),
                buy_product_id=discount.buy_product_id,
                get_product_id=discount.get_product_id,
                buy_quantity=discount.buy_quantity,
                get_quantity=discount.get_quantity,
                ip_address=ip_address,
                user_agent=user_agent
            )
            recorded += 1

        if recorded:
            logger.info(f"订单 {order_id} 记录促销使用 {recorded} 条")
        return recorded

    async def get_order_discounts(self, order_id: str) -> List[AppliedDiscount]:
        """从使用记录还原订单折扣明细，顺序与下单时一致（活动、优惠券、买赠）"""
        records = await self.usage_repo.get_by_order(order_id)
        records.sort(key=lambda record: BREAKDOWN_ORDER.index(PromotionType(record.promotion_type)))
        return [
            AppliedDiscount(
                promotion_type=record.promotion_type,
                promotion_id=record.promotion_id,
                promotion_code=record.promotion_code,
                name=record.promotion_name,
                discount_type=record.discount_type,
                discount_value=record.discount_value,
                original_amount=record.original_amount,
                discount_amount=record.discount_amount,
                free_shipping=bool(record.free_shipping),
                buy_product_id=record.buy_product_id,
                get_product_id=record.get_product_id,
                buy_quantity=record.buy_quantity,
                get_quantity=record.get_quantity
            )
            for record in records
        ]

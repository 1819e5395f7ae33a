"""
买赠（BOGO）业务服务层
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Dict, Tuple
from decimal import Decimal
from datetime import datetime

from app.core.config import settings
from app.core.exceptions import NotFoundException, EligibilityException, ValidationException
from app.models.order import CartItem
from app.models.promotion import (
    AppliedDiscount,
    BogoOffer,
    BogoOfferCreate,
    BogoRequest,
    EligibilityContext,
    IneligibilityReason,
    IneligiblePromotion,
    PromotionType
)
from app.repositories.bogo_repository import BogoRepository
from app.repositories.usage_repository import UsageRepository
from app.repositories.product_repository import ProductRepository
from app.services.common_cache import promotion_cache
from app.services.eligibility_service import EligibilityService, build_context
from app.services.discount_calculator import DiscountCalculator, discount_calculator

logger = logging.getLogger(__name__)


@dataclass
class _CartLine:
    """同一商品的购物车行汇总"""
    product_id: str
    category_id: Optional[str]
    quantity: int
    amount: Decimal

    @property
    def unit_price(self) -> Decimal:
        return self.amount / self.quantity


def _aggregate(cart_items: List[CartItem]) -> Dict[str, _CartLine]:
    lines: Dict[str, _CartLine] = {}
    for item in cart_items:
        line = lines.get(item.product_id)
        if line is None:
            lines[item.product_id] = _CartLine(item.product_id, item.category_id, item.quantity, item.line_total)
        else:
            line.quantity += item.quantity
            line.amount += item.line_total
    return lines


class BogoService:
    """买赠业务服务"""

    def __init__(
        self,
        bogo_repo: BogoRepository,
        usage_repo: UsageRepository,
        product_repo: Optional[ProductRepository] = None,
        eligibility: Optional[EligibilityService] = None,
        calculator: Optional[DiscountCalculator] = None
    ):
        self.bogo_repo = bogo_repo
        self.usage_repo = usage_repo
        self.product_repo = product_repo
        self.eligibility = eligibility or EligibilityService(usage_repo)
        self.calculator = calculator or discount_calculator
        self.cache = promotion_cache
        self.cache_prefix = "bogo"
        self.cache_ttl = settings.promotion_cache_ttl

    async def create_bogo_offer(self, offer_data: BogoOfferCreate, created_by: str) -> BogoOffer:
        """创建买赠活动"""
        db_offer = await self.bogo_repo.create_offer(offer_data, created_by)
        logger.info(f"创建买赠活动: {db_offer.name} ({db_offer.id})")
        return self.bogo_repo.to_model(db_offer)

    async def get_bogo_offer(self, offer_id: str, use_cache: bool = True) -> Optional[BogoOffer]:
        cache_key = f"{self.cache_prefix}:id:{offer_id}"

        if use_cache:
            cached = await self.cache.get(cache_key)
            if cached:
                return BogoOffer(**cached)

        offer = await self.bogo_repo.get_model(offer_id)
        if offer and use_cache:
            await self.cache.set(cache_key, offer.model_dump(mode="json"), ttl=self.cache_ttl)
        return offer

    async def get_active_offers(self, current_time: Optional[datetime] = None) -> List[BogoOffer]:
        db_offers = await self.bogo_repo.get_active_offers(current_time)
        return [self.bogo_repo.to_model(db_offer) for db_offer in db_offers]

    def build_request(self, offer: BogoOffer, cart_items: List[CartItem]) -> Optional[BogoRequest]:
        """
        根据购物车为买赠活动自动匹配购买商品和赠品

        购买商品取匹配购买目标且数量最多的商品，赠品优先取活动指定商品，
        否则取匹配赠送分类的最低价商品。
        """
        lines = _aggregate(cart_items)
        buy_lines = [line for line in lines.values() if offer.matches_buy(line.product_id, line.category_id)]
        if not buy_lines:
            return None
        buy_line = max(buy_lines, key=lambda line: line.quantity)

        get_lines = [line for line in lines.values() if offer.matches_get(line.product_id, line.category_id)]
        if not get_lines:
            return None
        get_line = min(get_lines, key=lambda line: line.unit_price)

        buy_quantity = buy_line.quantity
        if get_line.product_id == buy_line.product_id:
            # 买赠同一商品时为赠品预留数量
            applications = max(buy_line.quantity // (offer.buy_quantity + offer.get_quantity), 1)
            buy_quantity = min(applications * offer.buy_quantity, buy_line.quantity)

        return BogoRequest(
            bogo_id=offer.id,
            buy_product_id=buy_line.product_id,
            buy_quantity=buy_quantity,
            get_product_id=get_line.product_id
        )

    async def apply_offer(
        self,
        offer: BogoOffer,
        request: BogoRequest,
        cart_items: List[CartItem],
        context: EligibilityContext,
        explicitly_requested: bool = True,
        reserved: Optional[Dict[str, int]] = None
    ) -> Tuple[Optional[AppliedDiscount], Optional[IneligiblePromotion]]:
        """
        评估并计算单个买赠请求

        返回 (折扣明细, None) 或 (None, 不可用原因)，不抛出异常。
        reserved 记录同一订单中其他买赠已占用的赠品数量（按商品ID）。
        """
        def reject(reason: IneligibilityReason, message: str):
            return None, IneligiblePromotion(
                promotion_type=PromotionType.BOGO,
                promotion_id=offer.id,
                reason=reason,
                error_message=message,
                explicitly_requested=explicitly_requested
            )

        lines = _aggregate(cart_items)
        buy_line = lines.get(request.buy_product_id)
        buy_units = min(request.buy_quantity, buy_line.quantity) if buy_line else 0

        result = await self.eligibility.evaluate(offer, context.model_copy(update={"quantity": buy_units}))
        if not result.is_valid:
            return reject(result.reason, result.error_message)

        not_applicable = f"{offer.label} is not applicable to items in cart"
        if not buy_line or not offer.matches_buy(buy_line.product_id, buy_line.category_id):
            return reject(IneligibilityReason.NOT_APPLICABLE, not_applicable)

        get_product_id = request.get_product_id or offer.get_product_id or request.buy_product_id
        get_line = lines.get(get_product_id)
        if not get_line or not offer.matches_get(get_line.product_id, get_line.category_id):
            return reject(IneligibilityReason.NOT_APPLICABLE, not_applicable)

        # 买赠同一商品时，赠品只能来自购买数量以外的部分
        available = get_line.quantity
        if get_product_id == request.buy_product_id:
            available -= (buy_units // offer.buy_quantity) * offer.buy_quantity
        available -= (reserved or {}).get(get_product_id, 0)

        get_units = self.calculator.bogo_get_quantity(offer, buy_units, available)
        if get_units <= 0:
            return reject(IneligibilityReason.NOT_APPLICABLE, not_applicable)

        discount = self.calculator.calculate_bogo(
            offer,
            buy_quantity=buy_units,
            buy_unit_price=buy_line.unit_price,
            get_unit_price=get_line.unit_price,
            get_quantity=get_units
        )
        return AppliedDiscount(
            promotion_type=PromotionType.BOGO,
            promotion_id=offer.id,
            name=offer.name,
            discount_type=offer.get_discount_type.value,
            discount_value=offer.get_discount_value,
            original_amount=get_line.unit_price * get_units,
            discount_amount=discount,
            buy_product_id=buy_line.product_id,
            get_product_id=get_line.product_id,
            buy_quantity=buy_units,
            get_quantity=get_units
        ), None

    async def check_cart_for_bogo(
        self,
        cart_items: List[CartItem],
        user_id: str,
        current_time: Optional[datetime] = None
    ) -> List[AppliedDiscount]:
        """返回购物车满足条件的所有买赠活动，按折扣金额从高到低排序"""
        context = build_context(user_id, cart_items, timestamp=current_time)
        matches = []
        for offer in await self.get_active_offers(current_time):
            request = self.build_request(offer, cart_items)
            if request is None:
                continue
            applied, _ = await self.apply_offer(offer, request, cart_items, context, explicitly_requested=False)
            if applied:
                matches.append(applied)
        return sorted(matches, key=lambda item: item.discount_amount, reverse=True)

    async def calculate_bogo_discount(
        self,
        bogo_id: str,
        buy_product_id: str,
        buy_quantity: int,
        get_product_id: Optional[str] = None
    ) -> Decimal:
        """按商品当前售价计算买赠折扣，不满足条件时抛出异常"""
        if self.product_repo is None:
            raise ValidationException("Product catalog is not available")

        offer = await self.get_bogo_offer(bogo_id)
        if not offer:
            raise NotFoundException(f"BOGO offer {bogo_id} not found")

        buy_product = await self.product_repo.get_by_id(buy_product_id)
        if not buy_product:
            raise NotFoundException(f"Product {buy_product_id} not found")
        if not offer.matches_buy(buy_product.id, buy_product.category_id):
            raise EligibilityException(f"{offer.label} is not applicable to items in cart")
        if buy_quantity < offer.buy_quantity:
            raise EligibilityException(f"Minimum quantity of {offer.buy_quantity} required")

        get_product = buy_product
        target_id = get_product_id or offer.get_product_id
        if target_id and target_id != buy_product.id:
            get_product = await self.product_repo.get_by_id(target_id)
            if not get_product:
                raise NotFoundException(f"Product {target_id} not found")
        if not offer.matches_get(get_product.id, get_product.category_id):
            raise EligibilityException(f"{offer.label} is not applicable to items in cart")

        return self.calculator.calculate_bogo(
            offer,
            buy_quantity=buy_quantity,
            buy_unit_price=buy_product.effective_price,
            get_unit_price=get_product.effective_price
        )

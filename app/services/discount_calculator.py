"""
折扣计算器

中间计算保持Decimal全精度，只在持久化时保留两位小数。
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from app.models.promotion import BogoOffer, Campaign, Coupon, DiscountType, GetDiscountType

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Union[Decimal, int, float, str, None]) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Union[Decimal, int, float, str, None]) -> Decimal:
    """金额保留两位小数（四舍五入）"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class DiscountCalculator:
    """折扣计算器"""

    def calculate(self, promotion: Union[Campaign, Coupon], order_amount: Decimal) -> Decimal:
        """
        计算活动/优惠券折扣

        - percentage: 金额 × 折扣值 / 100，超过最大折扣时取最大折扣
        - fixed_amount: min(折扣值, 金额)
        - free_shipping: 0（运费减免单独处理）
        """
        amount = to_decimal(order_amount)
        if amount <= ZERO:
            return ZERO

        value = to_decimal(promotion.discount_value)

        if promotion.discount_type == DiscountType.PERCENTAGE:
            discount = amount * value / HUNDRED
            if promotion.max_discount_amount is not None:
                discount = min(discount, to_decimal(promotion.max_discount_amount))
        elif promotion.discount_type == DiscountType.FIXED_AMOUNT:
            discount = min(value, amount)
        else:
            discount = ZERO

        return max(min(discount, amount), ZERO)

    def calculate_bogo(
        self,
        offer: BogoOffer,
        buy_quantity: int,
        buy_unit_price: Decimal,
        get_unit_price: Optional[Decimal] = None,
        get_quantity: Optional[int] = None
    ) -> Decimal:
        """
        计算买赠折扣

        get_quantity 为实际可赠送数量，未指定时按购买数量推算；
        get_unit_price 未指定时赠品按购买商品单价计算。
        """
        if get_quantity is None:
            get_quantity = self.bogo_get_quantity(offer, buy_quantity)
        if get_quantity <= 0:
            return ZERO

        unit_price = to_decimal(get_unit_price if get_unit_price is not None else buy_unit_price)
        get_subtotal = unit_price * get_quantity
        value = to_decimal(offer.get_discount_value)

        if offer.get_discount_type == GetDiscountType.FREE:
            per_unit = unit_price
        elif offer.get_discount_type == GetDiscountType.PERCENTAGE:
            per_unit = unit_price * value / HUNDRED
        else:
            per_unit = min(value, unit_price)

        return max(min(per_unit * get_quantity, get_subtotal), ZERO)

    @staticmethod
    def bogo_get_quantity(offer: BogoOffer, buy_quantity: int, available: Optional[int] = None) -> int:
        """按买赠规则计算可赠送数量，available 为购物车中可作为赠品的数量"""
        applications = buy_quantity // offer.buy_quantity
        quantity = applications * offer.get_quantity
        if available is not None:
            quantity = min(quantity, max(available, 0))
        return quantity


discount_calculator = DiscountCalculator()

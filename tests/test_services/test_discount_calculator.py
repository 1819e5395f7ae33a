"""
折扣计算器测试
"""

import pytest
from decimal import Decimal
from datetime import datetime, timedelta

from app.models.promotion import BogoOffer, Coupon, DiscountType, GetDiscountType
from app.services.discount_calculator import DiscountCalculator, quantize_money


def _coupon(discount_type, value, max_discount=None):
    return Coupon(
        id="c1",
        code="TEST",
        name="测试券",
        discount_type=discount_type,
        discount_value=Decimal(value),
        max_discount_amount=Decimal(max_discount) if max_discount else None,
        valid_from=datetime.now()
    )


def _offer(**overrides):
    now = datetime.now()
    data = {
        "id": "b1",
        "name": "买赠",
        "buy_product_id": "p1",
        "get_product_id": "p1",
        "start_date": now,
        "end_date": now + timedelta(days=1),
    }
    data.update(overrides)
    return BogoOffer(**data)


class TestDiscountCalculator:
    """折扣计算测试类"""

    @pytest.fixture
    def calculator(self):
        return DiscountCalculator()

    def test_percentage_with_cap(self, calculator):
        coupon = _coupon(DiscountType.PERCENTAGE, "10", max_discount="80")
        assert calculator.calculate(coupon, Decimal("1000")) == Decimal("80")
        assert calculator.calculate(coupon, Decimal("500")) == Decimal("50")

    def test_percentage_keeps_precision(self, calculator):
        coupon = _coupon(DiscountType.PERCENTAGE, "15")
        discount = calculator.calculate(coupon, Decimal("33.33"))
        assert discount == Decimal("4.9995")
        assert quantize_money(discount) == Decimal("5.00")

    def test_fixed_amount_never_exceeds_order(self, calculator):
        coupon = _coupon(DiscountType.FIXED_AMOUNT, "50")
        assert calculator.calculate(coupon, Decimal("200")) == Decimal("50")
        assert calculator.calculate(coupon, Decimal("30")) == Decimal("30")

    def test_free_shipping_has_no_item_discount(self, calculator):
        coupon = _coupon(DiscountType.FREE_SHIPPING, "0")
        assert calculator.calculate(coupon, Decimal("99")) == Decimal("0")

    def test_zero_amount(self, calculator):
        coupon = _coupon(DiscountType.PERCENTAGE, "10")
        assert calculator.calculate(coupon, Decimal("0")) == Decimal("0")

    def test_bogo_free(self, calculator):
        offer = _offer()
        assert calculator.calculate_bogo(offer, buy_quantity=1, buy_unit_price=Decimal("20")) == Decimal("20")

    def test_bogo_buy_two_get_one_half_off(self, calculator):
        offer = _offer(
            buy_quantity=2,
            get_quantity=1,
            get_discount_type=GetDiscountType.PERCENTAGE,
            get_discount_value=Decimal("50")
        )
        # 5件可触发2次
        assert calculator.calculate_bogo(offer, buy_quantity=5, buy_unit_price=Decimal("10")) == Decimal("10")

    def test_bogo_fixed_discount_capped_by_price(self, calculator):
        offer = _offer(get_discount_type=GetDiscountType.FIXED_AMOUNT, get_discount_value=Decimal("30"))
        assert calculator.calculate_bogo(
            offer, buy_quantity=1, buy_unit_price=Decimal("50"), get_unit_price=Decimal("20")
        ) == Decimal("20")

    def test_bogo_below_threshold(self, calculator):
        offer = _offer(buy_quantity=3)
        assert calculator.calculate_bogo(offer, buy_quantity=2, buy_unit_price=Decimal("10")) == Decimal("0")

    def test_bogo_get_quantity_limited_by_available(self):
        offer = _offer(buy_quantity=1, get_quantity=2)
        assert DiscountCalculator.bogo_get_quantity(offer, 3) == 6
        assert DiscountCalculator.bogo_get_quantity(offer, 3, available=1) == 1
        assert DiscountCalculator.bogo_get_quantity(offer, 3, available=-1) == 0

    def test_quantize_half_up(self):
        assert quantize_money(Decimal("2.345")) == Decimal("2.35")
        assert quantize_money("2.344") == Decimal("2.34")
        assert quantize_money(None) == Decimal("0.00")

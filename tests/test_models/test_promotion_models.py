"""
促销与订单数据模型测试
"""

import pytest
from decimal import Decimal
from datetime import datetime, timedelta
from pydantic import ValidationError

from app.models.promotion import (
    AppliesTo,
    BogoOffer,
    BogoOfferCreate,
    Campaign,
    CampaignCreate,
    CampaignType,
    Coupon,
    CouponCreate,
    CouponStatus,
    DiscountType,
    IneligibilityReason,
    IneligiblePromotion,
    OrderTotals,
    PromotionType
)
from app.models.order import CartItem, Order, OrderCreate, OrderStatus


class TestCouponModels:
    """优惠券模型测试"""

    def test_code_is_upper_cased(self):
        coupon = CouponCreate(
            code="  save20 ",
            name="满减券",
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal("20")
        )
        assert coupon.code == "SAVE20"

    def test_percentage_over_100_rejected(self):
        with pytest.raises(ValidationError):
            CouponCreate(
                code="BAD",
                name="错误券",
                discount_type=DiscountType.PERCENTAGE,
                discount_value=Decimal("120")
            )

    def test_fixed_amount_over_100_allowed(self):
        coupon = CouponCreate(
            code="BIG",
            name="大额券",
            discount_type=DiscountType.FIXED_AMOUNT,
            discount_value=Decimal("500")
        )
        assert coupon.discount_value == Decimal("500")

    def test_validity_period_must_be_ordered(self):
        now = datetime.now()
        with pytest.raises(ValidationError):
            CouponCreate(
                code="WINDOW",
                name="时间错误",
                discount_type=DiscountType.FIXED_AMOUNT,
                discount_value=Decimal("10"),
                valid_from=now,
                valid_until=now - timedelta(days=1)
            )

    def test_coupon_window_and_status(self):
        now = datetime.now()
        coupon = Coupon(
            id="c1",
            code="FOREVER",
            name="长期券",
            discount_type=DiscountType.FIXED_AMOUNT,
            discount_value=Decimal("5"),
            valid_from=now
        )
        assert coupon.window_start == now
        assert coupon.window_end is None
        assert coupon.is_active_status()
        assert coupon.promotion_type == PromotionType.COUPON

        inactive = coupon.model_copy(update={"status": CouponStatus.INACTIVE})
        assert not inactive.is_active_status()


class TestCampaignModels:
    """活动模型测试"""

    def _create(self, **overrides):
        now = datetime.now()
        data = {
            "name": "夏季促销",
            "start_date": now,
            "end_date": now + timedelta(days=3),
            "discount_type": DiscountType.PERCENTAGE,
            "discount_value": Decimal("15"),
        }
        data.update(overrides)
        return CampaignCreate(**data)

    def test_valid_campaign(self):
        campaign = self._create()
        assert campaign.campaign_type == CampaignType.DISCOUNT
        assert campaign.applies_to == AppliesTo.ALL

    def test_end_before_start_rejected(self):
        now = datetime.now()
        with pytest.raises(ValidationError):
            self._create(start_date=now, end_date=now - timedelta(hours=1))

    def test_free_shipping_rejected(self):
        with pytest.raises(ValidationError):
            self._create(discount_type=DiscountType.FREE_SHIPPING)

    def test_customer_segment_rejected(self):
        with pytest.raises(ValidationError):
            self._create(applies_to=AppliesTo.FIRST_ORDER)

    def test_configuration_matches_campaign_type(self):
        campaign = self._create(
            campaign_type=CampaignType.FLASH_SALE,
            configuration={"campaign_type": "flash_sale", "max_units_per_order": 2}
        )
        assert campaign.configuration.max_units_per_order == 2

        with pytest.raises(ValidationError):
            self._create(
                campaign_type=CampaignType.DISCOUNT,
                configuration={"campaign_type": "flash_sale"}
            )

    def test_campaign_required_quantity(self):
        now = datetime.now()
        campaign = Campaign(
            id="camp1",
            name="满件减",
            start_date=now,
            end_date=now + timedelta(days=1),
            discount_type=DiscountType.FIXED_AMOUNT,
            discount_value=Decimal("10"),
            minimum_quantity=3
        )
        assert campaign.required_quantity == 3
        assert campaign.window_start == now
        assert campaign.window_end == now + timedelta(days=1)
        # 默认状态为草稿，不可用
        assert not campaign.is_active_status()


class TestBogoModels:
    """买赠模型测试"""

    def test_targets_required(self):
        now = datetime.now()
        with pytest.raises(ValidationError):
            BogoOfferCreate(name="缺少购买目标", get_product_id="p2", start_date=now, end_date=now + timedelta(days=1))
        with pytest.raises(ValidationError):
            BogoOfferCreate(name="缺少赠品", buy_product_id="p1", start_date=now, end_date=now + timedelta(days=1))

    def test_matching_and_applicability(self):
        now = datetime.now()
        offer = BogoOffer(
            id="b1",
            name="买鞋送袜",
            buy_category_id="shoes",
            get_product_id="socks",
            start_date=now,
            end_date=now + timedelta(days=1),
            buy_quantity=2
        )
        assert offer.matches_buy("any", "shoes")
        assert not offer.matches_buy("socks", "accessories")
        assert offer.matches_get("socks", None)
        assert offer.required_quantity == 2
        assert offer.window_start == now
        assert offer.window_end == now + timedelta(days=1)

        applies_to, products, categories = offer.applicability()
        assert applies_to == AppliesTo.CATEGORIES
        assert categories == {"shoes"}
        assert products == set()


@pytest.mark.parametrize("model", [Campaign, Coupon, BogoOffer])
def test_window_fields_are_declared(model):
    start_field, end_field = model.window_fields
    assert start_field in model.model_fields
    assert end_field in model.model_fields


class TestOrderModels:
    """订单模型测试"""

    def test_cart_item_line_total(self):
        item = CartItem(product_id="p1", price=Decimal("19.99"), quantity=3)
        assert item.line_total == Decimal("59.97")

    def test_cart_item_requires_positive_quantity(self):
        with pytest.raises(ValidationError):
            CartItem(product_id="p1", price=Decimal("1"), quantity=0)

    def test_order_create_normalizes_coupon(self):
        assert OrderCreate(coupon_code=" save20 ").coupon_code == "SAVE20"
        assert OrderCreate(coupon_code="   ").coupon_code is None

    @pytest.mark.parametrize("current,target,allowed", [
        (OrderStatus.PENDING, OrderStatus.CONFIRMED, True),
        (OrderStatus.PENDING, OrderStatus.CANCELLED, True),
        (OrderStatus.CONFIRMED, OrderStatus.CANCELLED, True),
        (OrderStatus.PROCESSING, OrderStatus.CANCELLED, False),
        (OrderStatus.SHIPPED, OrderStatus.DELIVERED, True),
        (OrderStatus.DELIVERED, OrderStatus.PENDING, False),
        (OrderStatus.CANCELLED, OrderStatus.CONFIRMED, False),
        (OrderStatus.PENDING, OrderStatus.SHIPPED, False),
    ])
    def test_status_transitions(self, current, target, allowed):
        order = Order(
            id="o1",
            order_number="ORD_1",
            user_id="u1",
            subtotal=Decimal("10"),
            total_amount=Decimal("10"),
            status=current
        )
        assert order.can_transition_to(target) is allowed

    def test_rejected_explicit_skips_bogo(self):
        totals = OrderTotals(
            subtotal=Decimal("100"),
            total_quantity=1,
            total=Decimal("100"),
            ineligible=[
                IneligiblePromotion(
                    promotion_type=PromotionType.BOGO,
                    promotion_id="b1",
                    reason=IneligibilityReason.NOT_APPLICABLE,
                    error_message="BOGO offer is not applicable to items in cart"
                ),
                IneligiblePromotion(
                    promotion_type=PromotionType.COUPON,
                    promotion_code="SAVE20",
                    reason=IneligibilityReason.EXPIRED,
                    error_message="Coupon has expired"
                ),
                IneligiblePromotion(
                    promotion_type=PromotionType.CAMPAIGN,
                    promotion_id="c1",
                    reason=IneligibilityReason.EXPIRED,
                    error_message="Campaign has expired",
                    explicitly_requested=False
                ),
            ]
        )
        rejected = totals.rejected_explicit()
        assert [item.promotion_code for item in rejected] == ["SAVE20"]

"""
促销资格评估测试
"""

import pytest
from decimal import Decimal
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from app.models.promotion import (
    AppliesTo,
    BogoOffer,
    Campaign,
    CampaignStatus,
    Coupon,
    CouponStatus,
    DiscountType,
    EligibilityContext,
    IneligibilityReason
)
from app.repositories.usage_repository import UsageRepository
from app.services.eligibility_service import EligibilityService, build_context


@pytest.mark.asyncio
class TestEligibilityService:
    """资格评估测试类"""

    @pytest.fixture
    def mock_usage_repo(self):
        repo = AsyncMock(spec=UsageRepository)
        repo.count_usage.return_value = 0
        repo.count_user_usage.return_value = 0
        return repo

    @pytest.fixture
    def service(self, mock_usage_repo):
        return EligibilityService(mock_usage_repo)

    @pytest.fixture
    def coupon(self):
        now = datetime.now()
        return Coupon(
            id="coupon_1",
            code="SAVE20",
            name="满500减20%",
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal("20"),
            minimum_order_amount=Decimal("500"),
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=1)
        )

    def _context(self, amount="600", **overrides):
        data = {"user_id": "user_1", "order_amount": Decimal(amount), "quantity": 1, "product_ids": ["p1"]}
        data.update(overrides)
        return EligibilityContext(**data)

    async def test_valid(self, service, coupon):
        result = await service.evaluate(coupon, self._context())
        assert result.is_valid
        assert result.reason is None

    async def test_minimum_order_amount(self, service, coupon):
        result = await service.evaluate(coupon, self._context("400"))
        assert not result.is_valid
        assert result.reason == IneligibilityReason.MINIMUM_ORDER_AMOUNT
        assert "minimum order amount" in result.error_message.lower()
        assert "500.00" in result.error_message

    async def test_inactive_checked_first(self, service, coupon, mock_usage_repo):
        inactive = coupon.model_copy(update={"status": CouponStatus.INACTIVE})
        result = await service.evaluate(inactive, self._context("10"))
        assert result.reason == IneligibilityReason.NOT_ACTIVE
        mock_usage_repo.count_usage.assert_not_called()

    async def test_not_yet_valid_and_expired(self, service, coupon):
        early = self._context(timestamp=coupon.valid_from - timedelta(minutes=1))
        late = self._context(timestamp=coupon.valid_until + timedelta(minutes=1))

        assert (await service.evaluate(coupon, early)).reason == IneligibilityReason.NOT_YET_VALID
        assert (await service.evaluate(coupon, late)).reason == IneligibilityReason.EXPIRED

    async def test_window_is_inclusive(self, service, coupon):
        at_end = self._context(timestamp=coupon.valid_until)
        assert (await service.evaluate(coupon, at_end)).is_valid

    async def test_unbounded_end(self, service, coupon):
        forever = coupon.model_copy(update={"valid_until": None})
        far_future = self._context(timestamp=datetime.now() + timedelta(days=3650))
        assert (await service.evaluate(forever, far_future)).is_valid

    async def test_timezone_aware_window(self, service, coupon):
        aware = coupon.model_copy(update={
            "valid_from": datetime.now(timezone.utc) - timedelta(hours=1),
            "valid_until": datetime.now(timezone.utc) + timedelta(hours=1)
        })
        assert (await service.evaluate(aware, self._context())).is_valid

    async def test_usage_limit_reached(self, service, coupon, mock_usage_repo):
        limited = coupon.model_copy(update={"usage_limit": 5})
        mock_usage_repo.count_usage.return_value = 5

        result = await service.evaluate(limited, self._context())
        assert result.reason == IneligibilityReason.USAGE_LIMIT_REACHED
        assert result.error_message == "Coupon usage limit reached"

    async def test_per_customer_limit(self, service, coupon, mock_usage_repo):
        limited = coupon.model_copy(update={"usage_limit_per_customer": 1})
        mock_usage_repo.count_user_usage.return_value = 1

        result = await service.evaluate(limited, self._context())
        assert result.reason == IneligibilityReason.PER_CUSTOMER_LIMIT_REACHED
        mock_usage_repo.count_user_usage.assert_awaited_once()

    async def test_product_applicability(self, service, coupon):
        scoped = coupon.model_copy(update={"applies_to": AppliesTo.PRODUCTS, "product_ids": ["p9"]})
        result = await service.evaluate(scoped, self._context())
        assert result.reason == IneligibilityReason.NOT_APPLICABLE
        assert result.error_message == "Coupon is not applicable to items in cart"

        matching = self._context(product_ids=["p1", "p9"])
        assert (await service.evaluate(scoped, matching)).is_valid

    async def test_category_applicability(self, service, coupon):
        scoped = coupon.model_copy(update={"applies_to": AppliesTo.CATEGORIES, "category_ids": ["books"]})
        assert not (await service.evaluate(scoped, self._context(category_ids=["toys"]))).is_valid
        assert (await service.evaluate(scoped, self._context(category_ids=["books"]))).is_valid

    async def test_first_order_segment(self, service, coupon):
        first_order = coupon.model_copy(update={"applies_to": AppliesTo.FIRST_ORDER})

        assert (await service.evaluate(first_order, self._context(previous_order_count=0))).is_valid
        assert (await service.evaluate(first_order, self._context(previous_order_count=None))).is_valid
        result = await service.evaluate(first_order, self._context(previous_order_count=2))
        assert result.reason == IneligibilityReason.CUSTOMER_NOT_ELIGIBLE

    async def test_returning_customer_segment(self, service, coupon):
        returning = coupon.model_copy(update={"applies_to": AppliesTo.RETURNING_CUSTOMERS})
        assert not (await service.evaluate(returning, self._context(previous_order_count=0))).is_valid
        assert (await service.evaluate(returning, self._context(previous_order_count=3))).is_valid

    async def test_campaign_minimum_quantity(self, service):
        now = datetime.now()
        campaign = Campaign(
            id="camp_1",
            name="三件起",
            start_date=now - timedelta(days=1),
            end_date=now + timedelta(days=1),
            status=CampaignStatus.ACTIVE,
            discount_type=DiscountType.FIXED_AMOUNT,
            discount_value=Decimal("10"),
            minimum_quantity=3
        )
        result = await service.evaluate(campaign, self._context(quantity=2))
        assert result.reason == IneligibilityReason.MINIMUM_QUANTITY
        assert result.error_message == "Minimum quantity of 3 required"
        assert (await service.evaluate(campaign, self._context(quantity=3))).is_valid

    async def test_bogo_applicability_uses_buy_target(self, service):
        now = datetime.now()
        offer = BogoOffer(
            id="bogo_1",
            name="买一送一",
            buy_product_id="p1",
            get_product_id="p1",
            start_date=now - timedelta(days=1),
            end_date=now + timedelta(days=1)
        )
        assert (await service.evaluate(offer, self._context(product_ids=["p1"]))).is_valid
        result = await service.evaluate(offer, self._context(product_ids=["p2"]))
        assert result.error_message == "BOGO offer is not applicable to items in cart"


def test_build_context(cart_item):
    items = [
        cart_item("p1", "10.00", 2, "books"),
        cart_item("p2", "5.50", 1, "books"),
        cart_item("p1", "10.00", 1, "books"),
    ]
    context = build_context("user_1", items, previous_order_count=4)

    assert context.order_amount == Decimal("35.50")
    assert context.quantity == 4
    assert context.product_ids == ["p1", "p2"]
    assert context.category_ids == ["books"]
    assert context.previous_order_count == 4

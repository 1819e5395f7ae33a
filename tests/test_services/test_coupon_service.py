"""
CouponService业务逻辑测试
"""

import pytest
from decimal import Decimal
from datetime import timedelta
from unittest.mock import AsyncMock

from app.core.exceptions import ConflictException, NotFoundException, ValidationException
from app.models.promotion import (
    AppliesTo,
    CouponCreate,
    CouponStatus,
    CouponUpdate,
    DiscountType,
    IneligibilityReason,
    PromotionType
)
from app.repositories.coupon_repository import CouponRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.usage_repository import UsageRepository
from app.services.coupon_service import CouponService


@pytest.mark.asyncio
class TestCouponService:
    """CouponService业务逻辑测试类"""

    @pytest.fixture
    def mock_cache(self):
        """模拟缓存"""
        cache = AsyncMock()
        cache.get = AsyncMock(return_value=None)
        cache.set = AsyncMock()
        cache.delete = AsyncMock()
        cache.delete_pattern = AsyncMock()
        return cache

    @pytest.fixture
    def coupon_service(self, db_session, mock_cache):
        """创建CouponService实例"""
        service = CouponService(
            CouponRepository(db_session),
            UsageRepository(db_session),
            OrderRepository(db_session)
        )
        service.cache = mock_cache
        return service

    @pytest.fixture
    def coupon_data(self, now):
        return CouponCreate(
            code="save20",
            name="满500减20%",
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal("20"),
            minimum_order_amount=Decimal("500"),
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=10)
        )

    async def test_create_coupon(self, coupon_service, coupon_data):
        coupon = await coupon_service.create_coupon(coupon_data, created_by="admin")
        assert coupon.code == "SAVE20"
        assert coupon.status == CouponStatus.ACTIVE

    async def test_create_duplicate_code(self, coupon_service, coupon_data):
        await coupon_service.create_coupon(coupon_data, created_by="admin")
        with pytest.raises(ConflictException):
            await coupon_service.create_coupon(coupon_data, created_by="admin")

    async def test_validate_below_minimum(self, coupon_service, coupon_data):
        """满减门槛未达到时返回不可用而不是抛异常"""
        await coupon_service.create_coupon(coupon_data, created_by="admin")

        result = await coupon_service.validate_coupon("SAVE20", "user_1", Decimal("400"))

        assert result.is_valid is False
        assert result.reason == IneligibilityReason.MINIMUM_ORDER_AMOUNT
        assert "minimum order amount" in result.error_message.lower()
        assert result.discount_amount == Decimal("0")

    async def test_validate_success(self, coupon_service, coupon_data):
        await coupon_service.create_coupon(coupon_data, created_by="admin")

        result = await coupon_service.validate_coupon("save20", "user_1", Decimal("600"))

        assert result.is_valid is True
        assert result.discount_amount == Decimal("120")
        assert result.coupon.code == "SAVE20"

    async def test_validate_unknown_code(self, coupon_service):
        result = await coupon_service.validate_coupon("NOPE", "user_1", Decimal("100"))
        assert result.is_valid is False
        assert result.reason == IneligibilityReason.NOT_FOUND
        assert result.error_message == "Coupon not found"

    async def test_validate_first_order_uses_order_history(self, coupon_service, make_coupon, db_session):
        await make_coupon("FIRST", applies_to=AppliesTo.FIRST_ORDER)
        await OrderRepository(db_session).create_order(
            order_number="ORD_HIST",
            user_id="repeat_user",
            subtotal=Decimal("10"),
            tax_amount=Decimal("0"),
            shipping_amount=Decimal("0"),
            discount_amount=Decimal("0"),
            total_amount=Decimal("10")
        )

        new_user = await coupon_service.validate_coupon("FIRST", "new_user", Decimal("100"))
        repeat_user = await coupon_service.validate_coupon("FIRST", "repeat_user", Decimal("100"))

        assert new_user.is_valid
        assert not repeat_user.is_valid
        assert repeat_user.reason == IneligibilityReason.CUSTOMER_NOT_ELIGIBLE

    async def test_get_coupon_by_code_cache_hit(self, coupon_service, mock_cache, make_coupon):
        """测试从缓存获取优惠券详情"""
        coupon = await make_coupon("CACHED")
        mock_cache.get.return_value = coupon.model_dump(mode="json")

        result = await coupon_service.get_coupon_by_code("cached")

        assert result.id == coupon.id
        mock_cache.get.assert_called_once_with("coupon:code:CACHED")
        mock_cache.set.assert_not_called()

    async def test_get_coupon_by_code_cache_miss(self, coupon_service, mock_cache, make_coupon):
        """测试缓存未命中时查库并写入缓存"""
        coupon = await make_coupon("MISS")

        result = await coupon_service.get_coupon_by_code("MISS")

        assert result.id == coupon.id
        mock_cache.set.assert_called_once()
        assert mock_cache.set.call_args.args[0] == "coupon:code:MISS"

    async def test_update_coupon_invalidates_cache(self, coupon_service, mock_cache, make_coupon):
        coupon = await make_coupon("RENAME")
        await make_coupon("TAKEN")

        updated = await coupon_service.update_coupon(coupon.id, CouponUpdate(code="renamed"), updated_by="admin")
        assert updated.code == "RENAMED"
        mock_cache.delete.assert_any_call("coupon:code:RENAME")
        mock_cache.delete.assert_any_call("coupon:code:RENAMED")

        with pytest.raises(ConflictException):
            await coupon_service.update_coupon(coupon.id, CouponUpdate(code="TAKEN"), updated_by="admin")
        with pytest.raises(NotFoundException):
            await coupon_service.update_coupon("missing", CouponUpdate(name="x"), updated_by="admin")

    async def test_generate_bulk_coupons(self, coupon_service, coupon_data):
        coupons = await coupon_service.generate_bulk_coupons(
            coupon_data, count=5, created_by="admin", prefix="vip", length=6
        )

        codes = {coupon.code for coupon in coupons}
        assert len(codes) == 5
        assert all(code.startswith("VIP") and len(code) == 9 for code in codes)

    async def test_generate_bulk_coupons_count_bounds(self, coupon_service, coupon_data):
        with pytest.raises(ValidationException):
            await coupon_service.generate_bulk_coupons(coupon_data, count=0, created_by="admin")
        with pytest.raises(ValidationException):
            await coupon_service.generate_bulk_coupons(coupon_data, count=1001, created_by="admin")
        with pytest.raises(ValidationException):
            await coupon_service.generate_unique_code(length=3)

    async def test_analytics_and_history(self, coupon_service, make_coupon, db_session):
        coupon = await make_coupon("STATS", usage_limit=4)
        usage_repo = UsageRepository(db_session)
        for index in range(2):
            await usage_repo.record_usage(
                promotion_type=PromotionType.COUPON,
                promotion_id=coupon.id,
                promotion_code=coupon.code,
                user_id="stats_user",
                order_id=f"order_{index}",
                original_amount=Decimal("100.00"),
                discount_amount=Decimal("10.00"),
                final_amount=Decimal("90.00")
            )

        analytics = await coupon_service.get_coupon_analytics(coupon.id)
        assert analytics["total_uses"] == 2
        assert analytics["remaining_uses"] == 2
        assert analytics["usage_rate"] == 0.5

        history = await coupon_service.get_user_coupon_history("stats_user")
        assert len(history) == 2
        assert history[0].promotion_code == "STATS"

        with pytest.raises(NotFoundException):
            await coupon_service.get_coupon_analytics("missing")

    async def test_update_statuses_clears_cache(self, coupon_service, mock_cache, make_coupon, now):
        await make_coupon("GONE", valid_from=now - timedelta(days=5), valid_until=now - timedelta(days=1))

        result = await coupon_service.update_coupon_statuses(now)

        assert result["expired"] == 1
        mock_cache.delete_pattern.assert_called_once_with("coupon:*")

    async def test_delete_coupon_stays_inactive(self, coupon_service, mock_cache, make_coupon, now):
        """删除后的优惠券不会被状态刷新重新启用"""
        coupon = await make_coupon("OLDDEAL")

        deleted = await coupon_service.delete_coupon(coupon.id, deleted_by="admin")
        assert deleted.status == CouponStatus.INACTIVE
        mock_cache.delete.assert_any_call("coupon:code:OLDDEAL")

        result = await coupon_service.update_coupon_statuses(now)
        assert result["activated"] == 0
        assert (await coupon_service.get_coupon(coupon.id)).status == CouponStatus.INACTIVE

        validation = await coupon_service.validate_coupon("OLDDEAL", "user_1", Decimal("100"))
        assert validation.reason == IneligibilityReason.NOT_ACTIVE

        with pytest.raises(NotFoundException):
            await coupon_service.delete_coupon("missing", deleted_by="admin")

    async def test_search_coupons(self, coupon_service, make_coupon):
        await make_coupon("SUMMER10", description="夏季清仓")
        await make_coupon("SUMMER20", status=CouponStatus.INACTIVE)
        winter = await make_coupon("WINTER5", discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal("5"))

        result = await coupon_service.search_coupons(keyword="summer")
        assert result.total == 2
        assert {coupon.code for coupon in result.coupons} == {"SUMMER10", "SUMMER20"}

        result = await coupon_service.search_coupons(keyword="清仓")
        assert [coupon.code for coupon in result.coupons] == ["SUMMER10"]

        result = await coupon_service.search_coupons(keyword="summer", status=CouponStatus.ACTIVE)
        assert [coupon.code for coupon in result.coupons] == ["SUMMER10"]

        result = await coupon_service.search_coupons(discount_type=DiscountType.FIXED_AMOUNT)
        assert [coupon.code for coupon in result.coupons] == ["WINTER5"]

        page = await coupon_service.search_coupons(limit=1, offset=1)
        assert page.total == 3
        assert len(page.coupons) == 1

        await coupon_service.delete_coupon(winter.id, deleted_by="admin")
        assert (await coupon_service.search_coupons()).total == 2
        assert (await coupon_service.search_coupons(include_deleted=True)).total == 3

        with pytest.raises(ValidationException):
            await coupon_service.search_coupons(limit=0)

    async def test_most_popular_coupons(self, coupon_service, make_coupon, db_session):
        """按使用记录统计，停用的优惠券不参与排行"""
        usage_repo = UsageRepository(db_session)
        uses = {"ALPHA": 1, "BRAVO": 2, "CHARLIE": 3, "DELTA": 0}
        for code, count in uses.items():
            status = CouponStatus.INACTIVE if code == "CHARLIE" else CouponStatus.ACTIVE
            coupon = await make_coupon(code, status=status)
            for index in range(count):
                await usage_repo.record_usage(
                    promotion_type=PromotionType.COUPON,
                    promotion_id=coupon.id,
                    promotion_code=code,
                    user_id="user_1",
                    order_id=f"order_{code}_{index}",
                    original_amount=Decimal("100.00"),
                    discount_amount=Decimal("10.00"),
                    final_amount=Decimal("90.00")
                )

        popular = await coupon_service.get_most_popular_coupons()
        assert [(item.coupon.code, item.total_uses) for item in popular] == [
            ("BRAVO", 2), ("ALPHA", 1), ("DELTA", 0)
        ]
        assert popular[0].total_discount == Decimal("20.00")
        assert popular[2].total_discount == Decimal("0")

        top = await coupon_service.get_most_popular_coupons(limit=1)
        assert [item.coupon.code for item in top] == ["BRAVO"]

    async def test_validate_multiple_coupons(self, coupon_service, make_coupon):
        await make_coupon("TENOFF")
        await make_coupon("BIGSPEND", minimum_order_amount=Decimal("500"))

        results = await coupon_service.validate_multiple_coupons(
            ["tenoff", "GHOST", "bigspend", " TENOFF "], "user_1", Decimal("100")
        )

        assert [result.code for result in results] == ["TENOFF", "GHOST", "BIGSPEND"]
        assert [result.is_valid for result in results] == [True, False, False]
        assert results[0].discount_amount == Decimal("10")
        assert results[1].reason == IneligibilityReason.NOT_FOUND
        assert results[2].reason == IneligibilityReason.MINIMUM_ORDER_AMOUNT

        with pytest.raises(ValidationException):
            await coupon_service.validate_multiple_coupons(["  "], "user_1", Decimal("100"))

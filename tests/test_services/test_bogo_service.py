"""
BogoService业务逻辑测试
"""

import pytest
from decimal import Decimal

from app.core.exceptions import EligibilityException, NotFoundException
from app.models.promotion import BogoRequest, GetDiscountType, IneligibilityReason
from app.repositories.bogo_repository import BogoRepository
from app.repositories.product_repository import ProductRepository
from app.repositories.usage_repository import UsageRepository
from app.services.bogo_service import BogoService
from app.services.eligibility_service import build_context


@pytest.mark.asyncio
class TestBogoService:
    """BogoService业务逻辑测试类"""

    @pytest.fixture
    def bogo_service(self, db_session):
        return BogoService(BogoRepository(db_session), UsageRepository(db_session), ProductRepository(db_session))

    async def test_same_product_buy_one_get_one(self, bogo_service, make_bogo, cart_item):
        offer = await make_bogo(buy_product_id="shirt", get_product_id="shirt")
        items = [cart_item("shirt", "30.00", 2)]
        request = BogoRequest(bogo_id=offer.id, buy_product_id="shirt", buy_quantity=1)

        applied, rejected = await bogo_service.apply_offer(offer, request, items, build_context("u1", items))

        assert rejected is None
        assert applied.discount_amount == Decimal("30.00")
        assert applied.buy_quantity == 1
        assert applied.get_quantity == 1

    async def test_same_product_needs_extra_unit(self, bogo_service, make_bogo, cart_item):
        """买赠同一商品时只买一件无法同时作为赠品"""
        offer = await make_bogo(buy_product_id="shirt", get_product_id="shirt")
        items = [cart_item("shirt", "30.00", 1)]
        request = BogoRequest(bogo_id=offer.id, buy_product_id="shirt", buy_quantity=1)

        applied, rejected = await bogo_service.apply_offer(offer, request, items, build_context("u1", items))

        assert applied is None
        assert rejected.reason == IneligibilityReason.NOT_APPLICABLE

    async def test_get_product_must_be_in_cart(self, bogo_service, make_bogo, cart_item):
        offer = await make_bogo(buy_product_id="shoes", get_product_id="socks")
        items = [cart_item("shoes", "80.00", 1)]
        request = BogoRequest(bogo_id=offer.id, buy_product_id="shoes", buy_quantity=1)

        applied, rejected = await bogo_service.apply_offer(offer, request, items, build_context("u1", items))

        assert applied is None
        assert rejected.error_message == "BOGO offer is not applicable to items in cart"

    async def test_buy_quantity_threshold(self, bogo_service, make_bogo, cart_item):
        offer = await make_bogo(
            buy_product_id="shoes",
            get_product_id="socks",
            buy_quantity=2,
            get_discount_type=GetDiscountType.PERCENTAGE,
            get_discount_value=Decimal("50")
        )
        items = [cart_item("shoes", "80.00", 1), cart_item("socks", "10.00", 1)]
        request = BogoRequest(bogo_id=offer.id, buy_product_id="shoes", buy_quantity=1)

        applied, rejected = await bogo_service.apply_offer(offer, request, items, build_context("u1", items))

        assert applied is None
        assert rejected.reason == IneligibilityReason.MINIMUM_QUANTITY

        items[0] = cart_item("shoes", "80.00", 2)
        request = BogoRequest(bogo_id=offer.id, buy_product_id="shoes", buy_quantity=2)
        applied, _ = await bogo_service.apply_offer(offer, request, items, build_context("u1", items))
        assert applied.discount_amount == Decimal("5.00")
        assert applied.get_product_id == "socks"

    async def test_category_targets(self, bogo_service, make_bogo, cart_item):
        offer = await make_bogo(buy_category_id="shoes", get_category_id="accessories")
        items = [
            cart_item("sneaker", "100.00", 1, "shoes"),
            cart_item("belt", "25.00", 1, "accessories"),
            cart_item("cap", "15.00", 1, "accessories"),
        ]

        request = bogo_service.build_request(offer, items)
        assert request.buy_product_id == "sneaker"
        assert request.get_product_id == "cap"

        applied, _ = await bogo_service.apply_offer(offer, request, items, build_context("u1", items))
        assert applied.discount_amount == Decimal("15.00")

    async def test_check_cart_for_bogo(self, bogo_service, make_bogo, cart_item, now):
        cheap = await make_bogo(name="送袜子", buy_product_id="shoes", get_product_id="socks")
        rich = await make_bogo(name="送鞋", buy_product_id="shoes", get_product_id="shoes")
        await make_bogo(name="不相关", buy_product_id="hat", get_product_id="hat")
        items = [cart_item("shoes", "80.00", 2), cart_item("socks", "10.00", 1)]

        matches = await bogo_service.check_cart_for_bogo(items, "u1", now)

        assert [item.promotion_id for item in matches] == [rich.id, cheap.id]

    async def test_calculate_bogo_discount_uses_catalog_price(self, bogo_service, make_bogo, make_product):
        await make_product("tea", price="12.00", sale_price="10.00")
        offer = await make_bogo(buy_product_id="tea", get_product_id="tea", buy_quantity=2)

        assert await bogo_service.calculate_bogo_discount(offer.id, "tea", 4) == Decimal("20.00")

        with pytest.raises(EligibilityException):
            await bogo_service.calculate_bogo_discount(offer.id, "tea", 1)
        with pytest.raises(NotFoundException):
            await bogo_service.calculate_bogo_discount("missing", "tea", 2)
        with pytest.raises(NotFoundException):
            await bogo_service.calculate_bogo_discount(offer.id, "ghost", 2)

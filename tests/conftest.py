"""
测试配置文件 - pytest fixtures和共用配置
"""

import uuid
import pytest
import pytest_asyncio
from decimal import Decimal
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import app.models.database  # noqa: F401
from app.core.database import Base
from app.models.database.catalog_db import ProductDB, ProductVariantDB
from app.models.database.cart_db import ShoppingCartDB, CartItemDB
from app.models.order import CartItem
from app.models.promotion import (
    AppliesTo,
    BogoOfferCreate,
    CampaignCreate,
    CampaignStatus,
    CouponCreate,
    DiscountType
)
from app.repositories.bogo_repository import BogoRepository
from app.repositories.campaign_repository import CampaignRepository
from app.repositories.coupon_repository import CouponRepository
from app.services.common_cache import bind_caches


# 配置pytest-asyncio
pytest_plugins = ('pytest_asyncio',)

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def no_redis_cache():
    """测试默认不使用Redis缓存"""
    bind_caches(None)
    yield
    bind_caches(None)


@pytest_asyncio.fixture(scope="function")
async def test_db_engine():
    """测试数据库引擎 - 内存SQLite，所有会话共享同一连接"""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,  # 设为True可以看到SQL语句
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(test_db_engine):
    return async_sessionmaker(test_db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncSession:
    """测试数据库会话"""
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


@pytest.fixture
def now():
    return datetime.now()


@pytest.fixture
def make_product(db_session):
    """创建测试商品"""
    async def _make(
        product_id: str = None,
        price: str = "100.00",
        quantity: int = 10,
        category_id: str = "cat_default",
        sale_price: str = None,
        track_quantity: bool = True,
        allow_backorders: bool = False
    ) -> ProductDB:
        product_id = product_id or f"prod_{uuid.uuid4().hex[:8]}"
        product = ProductDB(
            id=product_id,
            name=f"商品 {product_id}",
            sku=f"SKU-{product_id}",
            category_id=category_id,
            price=Decimal(price),
            sale_price=Decimal(sale_price) if sale_price else None,
            quantity=quantity,
            track_quantity=track_quantity,
            allow_backorders=allow_backorders,
            is_active=True
        )
        db_session.add(product)
        await db_session.flush()
        return product

    return _make


@pytest.fixture
def make_variant(db_session):
    """创建测试商品规格"""
    async def _make(product_id: str, quantity: int = 5, variant_id: str = None) -> ProductVariantDB:
        variant_id = variant_id or f"var_{uuid.uuid4().hex[:8]}"
        variant = ProductVariantDB(
            id=variant_id,
            product_id=product_id,
            name=f"规格 {variant_id}",
            sku=f"SKU-{variant_id}",
            quantity=quantity,
            is_active=True
        )
        db_session.add(variant)
        await db_session.flush()
        return variant

    return _make


@pytest.fixture
def make_cart(db_session):
    """创建测试购物车，lines 为 (商品, 数量[, 规格ID]) 列表"""
    async def _make(user_id: str, lines) -> ShoppingCartDB:
        cart = ShoppingCartDB(id=f"cart_{uuid.uuid4().hex[:8]}", user_id=user_id, status="active")
        db_session.add(cart)
        await db_session.flush()
        for line in lines:
            product, quantity = line[0], line[1]
            variant_id = line[2] if len(line) > 2 else None
            db_session.add(CartItemDB(
                id=f"ci_{uuid.uuid4().hex[:8]}",
                cart_id=cart.id,
                product_id=product.id,
                variant_id=variant_id,
                quantity=quantity,
                price=product.effective_price
            ))
        await db_session.flush()
        return cart

    return _make


@pytest.fixture
def make_coupon(db_session, now):
    """创建测试优惠券"""
    async def _make(code: str = "SAVE10", **overrides):
        data = {
            "code": code,
            "name": f"优惠券 {code}",
            "discount_type": DiscountType.PERCENTAGE,
            "discount_value": Decimal("10"),
            "valid_from": now - timedelta(days=1),
            "valid_until": now + timedelta(days=30),
        }
        data.update(overrides)
        repo = CouponRepository(db_session)
        db_coupon = await repo.create_coupon(CouponCreate(**data), created_by="admin")
        return await repo.load_model(db_coupon)

    return _make


@pytest.fixture
def make_campaign(db_session, now):
    """创建测试活动"""
    async def _make(**overrides):
        data = {
            "name": "双十一满减",
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=7),
            "status": CampaignStatus.ACTIVE,
            "discount_type": DiscountType.FIXED_AMOUNT,
            "discount_value": Decimal("50"),
            "applies_to": AppliesTo.ALL,
        }
        data.update(overrides)
        repo = CampaignRepository(db_session)
        db_campaign = await repo.create_campaign(CampaignCreate(**data), created_by="admin")
        return await repo.load_model(db_campaign)

    return _make


@pytest.fixture
def make_bogo(db_session, now):
    """创建测试买赠活动"""
    async def _make(**overrides):
        data = {
            "name": "买一送一",
            "buy_quantity": 1,
            "get_quantity": 1,
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=7),
        }
        data.update(overrides)
        repo = BogoRepository(db_session)
        db_offer = await repo.create_offer(BogoOfferCreate(**data), created_by="admin")
        return repo.to_model(db_offer)

    return _make


@pytest.fixture
def cart_item():
    """构造购物车商品行"""
    def _make(product_id: str, price: str, quantity: int = 1, category_id: str = None) -> CartItem:
        return CartItem(product_id=product_id, price=Decimal(price), quantity=quantity, category_id=category_id)

    return _make

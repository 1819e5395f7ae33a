"""
订单业务服务层
下单、取消、状态流转，下单在单个数据库事务内完成
"""

import logging
import uuid
from typing import List, Optional, Callable, Awaitable
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    BusinessException,
    EligibilityException,
    InsufficientStockException,
    InternalException,
    NotFoundException,
    ValidationException
)
from app.models.order import (
    CANCELLABLE_STATUSES,
    CartItem,
    MovementType,
    Order,
    OrderCreate,
    OrderStatus
)
from app.models.promotion import IneligibilityReason, OrderTotals
from app.models.database.catalog_db import ProductDB
from app.repositories.cart_repository import CartRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.product_repository import ProductRepository
from app.services.common_cache import order_cache
from app.services.discount_calculator import quantize_money
from app.services.promotion_service import PromotionService

logger = logging.getLogger(__name__)

OrderNotifier = Callable[[Order], Awaitable[None]]


class OrderService:
    """订单业务服务"""

    def __init__(
        self,
        db: AsyncSession,
        order_repo: OrderRepository,
        product_repo: ProductRepository,
        cart_repo: CartRepository,
        promotion_service: PromotionService,
        notifier: Optional[OrderNotifier] = None
    ):
        self.db = db
        self.order_repo = order_repo
        self.product_repo = product_repo
        self.cart_repo = cart_repo
        self.promotion_service = promotion_service
        self.notifier = notifier
        self.cache = order_cache
        self.cache_prefix = "order"
        self.cache_ttl = settings.order_cache_ttl

    @classmethod
    def from_session(cls, db: AsyncSession, notifier: Optional[OrderNotifier] = None) -> "OrderService":
        """基于同一个数据库会话组装服务"""
        return cls(
            db=db,
            order_repo=OrderRepository(db),
            product_repo=ProductRepository(db),
            cart_repo=CartRepository(db),
            promotion_service=PromotionService.from_session(db),
            notifier=notifier
        )

    @staticmethod
    def _generate_order_number() -> str:
        return f"{settings.order_number_prefix}_{datetime.now().strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:8].upper()}"

    async def get_order_by_id(self, order_id: str, use_cache: bool = True) -> Optional[Order]:
        """获取订单详情"""
        cache_key = f"{self.cache_prefix}:detail:{order_id}"

        if use_cache:
            cached_order = await self.cache.get(cache_key)
            if cached_order:
                return Order(**cached_order)

        db_order = await self.order_repo.get_by_id(order_id)
        if not db_order:
            return None

        order = self.order_repo.to_model(db_order)
        order.discount_breakdown = await self.promotion_service.get_order_discounts(order_id)

        if use_cache:
            await self.cache.set(cache_key, order.model_dump(mode="json"), ttl=self.cache_ttl)

        return order

    async def get_user_orders(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
        status_filter: Optional[str] = None
    ) -> List[Order]:
        """获取用户订单列表"""
        db_orders = await self.order_repo.get_user_orders(
            user_id=user_id,
            limit=limit,
            offset=offset,
            status_filter=status_filter
        )
        return [self.order_repo.to_model(db_order) for db_order in db_orders]

    async def _load_cart(self, user_id: str):
        """读取购物车并校验商品与库存，返回 (购物车, 商品行, 商品映射)"""
        cart = await self.cart_repo.get_active_cart(user_id)
        if not cart or not cart.items:
            raise ValidationException("Cart is empty", code="cart_empty")

        products = await self.product_repo.get_by_ids([item.product_id for item in cart.items])
        cart_items: List[CartItem] = []

        for item in cart.items:
            product = products.get(item.product_id)
            if not product or not product.is_active:
                raise NotFoundException(f"Product {item.product_id} not found")

            available = product.quantity
            if item.variant_id:
                variant = await self.product_repo.get_variant(item.variant_id)
                if not variant or not variant.is_active:
                    raise NotFoundException(f"Product variant {item.variant_id} not found")
                available = variant.quantity

            if product.track_quantity and not product.allow_backorders and available < item.quantity:
                raise InsufficientStockException(f"Insufficient stock for {product.name}")

            cart_items.append(CartItem(
                product_id=item.product_id,
                variant_id=item.variant_id,
                quantity=item.quantity,
                price=item.price,
                category_id=product.category_id
            ))

        return cart, cart_items, products

    @staticmethod
    def _raise_for_rejected(totals: OrderTotals):
        """用户明确选择的优惠券/活动不可用时中止下单"""
        rejected = totals.rejected_explicit()
        if not rejected:
            return

        first = rejected[0]
        details = {
            "promotion_type": first.promotion_type.value,
            "promotion_id": first.promotion_id,
            "promotion_code": first.promotion_code,
            "reason": first.reason.value
        }
        logger.warning(f"下单时促销不可用: {details}")
        if first.reason == IneligibilityReason.NOT_FOUND:
            raise NotFoundException(first.error_message, details=details)
        raise EligibilityException(first.error_message, details=details)

    async def _deduct_stock(self, item: CartItem, product: ProductDB, order_id: str, order_number: str, user_id: str):
        """加锁后原子扣减库存并记录变动"""
        if not product.track_quantity:
            return

        if item.variant_id:
            await self.product_repo.lock_variant(item.variant_id)
        else:
            await self.product_repo.lock_product(item.product_id)

        quantities = await self.product_repo.decrement_stock(
            product_id=item.product_id,
            quantity=item.quantity,
            variant_id=item.variant_id,
            allow_backorders=bool(product.allow_backorders)
        )
        if quantities is None:
            logger.warning(f"库存扣减失败: 商品 {item.product_id} 数量 {item.quantity}")
            raise InsufficientStockException(f"Insufficient stock for {product.name}")

        before, after = quantities
        await self.product_repo.add_stock_movement(
            product_id=item.product_id,
            variant_id=item.variant_id,
            movement_type=MovementType.SALE,
            quantity_change=-item.quantity,
            quantity_before=before,
            quantity_after=after,
            reference_type="order",
            reference_id=order_id,
            reason=f"Order {order_number}",
            performed_by=user_id
        )

    async def create_order_from_cart(self, user_id: str, order_data: OrderCreate) -> Order:
        """
        从购物车创建订单

        订单、订单项、库存扣减、促销使用记录、购物车状态在同一事务中提交，
        任一步骤失败全部回滚。
        """
        try:
            cart, cart_items, products = await self._load_cart(user_id)

            totals = await self.promotion_service.calculate_order_totals(
                cart_items=cart_items,
                user_id=user_id,
                coupon_code=order_data.coupon_code,
                campaign_id=order_data.campaign_id,
                bogo_offers=order_data.bogo_offers,
                tax_amount=order_data.tax_amount,
                shipping_amount=order_data.shipping_amount
            )
            self._raise_for_rejected(totals)
            for item in totals.ineligible:
                logger.info(f"买赠未生效 {item.promotion_id}: {item.error_message}")

            order_number = self._generate_order_number()
            db_order = await self.order_repo.create_order(
                order_number=order_number,
                user_id=user_id,
                subtotal=quantize_money(totals.subtotal),
                tax_amount=quantize_money(totals.tax_amount),
                shipping_amount=quantize_money(totals.shipping_amount),
                discount_amount=quantize_money(totals.total_discount),
                total_amount=quantize_money(totals.total),
                shipping_address=order_data.shipping_address,
                billing_address=order_data.billing_address,
                shipping_method=order_data.shipping_method,
                notes=order_data.notes
            )

            for item in cart_items:
                product = products[item.product_id]
                await self.order_repo.add_order_item(
                    order_id=db_order.id,
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    product_name=product.name,
                    product_sku=product.sku,
                    quantity=item.quantity,
                    unit_price=quantize_money(item.price),
                    total_price=quantize_money(item.line_total),
                    product_snapshot={
                        "name": product.name,
                        "sku": product.sku,
                        "category_id": product.category_id,
                        "price": str(product.price),
                        "sale_price": str(product.sale_price) if product.sale_price is not None else None
                    }
                )
                await self._deduct_stock(item, product, db_order.id, order_number, user_id)

            await self.promotion_service.record_usage(
                order_id=db_order.id,
                user_id=user_id,
                totals=totals,
                ip_address=order_data.ip_address,
                user_agent=order_data.user_agent
            )
            await self.cart_repo.mark_converted(cart.id)

            order_id = db_order.id
            await self.db.commit()

        except BusinessException:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception(f"创建订单失败，事务已回滚: user={user_id}")
            raise InternalException("Failed to create order") from e

        logger.info(f"订单创建成功: {order_number} 用户 {user_id} 金额 {totals.total}")

        order = self.order_repo.to_model(await self.order_repo.get_by_id(order_id))
        order.discount_breakdown = totals.discount_breakdown
        await self._clear_user_order_caches(user_id)
        await self._notify(order)
        return order

    async def _notify(self, order: Order):
        """发送下单通知，失败不影响订单"""
        if not self.notifier:
            return
        try:
            await self.notifier(order)
        except Exception:
            logger.exception(f"订单通知发送失败: {order.order_number}")

    async def cancel_order(self, order_id: str, reason: str, actor_id: str) -> Order:
        """
        取消订单并回补库存

        仅待处理/已确认订单可取消；促销使用记录和使用次数不回退。
        """
        try:
            db_order = await self.order_repo.get_by_id(order_id)
            if not db_order:
                raise NotFoundException(f"Order {order_id} not found")

            if OrderStatus(db_order.status) not in CANCELLABLE_STATUSES:
                raise ValidationException(
                    f"Order cannot be cancelled in status {db_order.status}",
                    code="invalid_status"
                )

            products = await self.product_repo.get_by_ids([item.product_id for item in db_order.order_items])
            for item in db_order.order_items:
                product = products.get(item.product_id)
                if not product:
                    logger.warning(f"取消订单时商品不存在，跳过库存回补: {item.product_id}")
                    continue
                if not product.track_quantity:
                    continue

                quantities = await self.product_repo.increment_stock(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    variant_id=item.variant_id
                )
                if quantities is None:
                    continue
                before, after = quantities
                await self.product_repo.add_stock_movement(
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    movement_type=MovementType.RETURN,
                    quantity_change=item.quantity,
                    quantity_before=before,
                    quantity_after=after,
                    reference_type="order_cancel",
                    reference_id=db_order.id,
                    reason=reason,
                    performed_by=actor_id
                )

            await self.order_repo.update_status(
                db_order,
                OrderStatus.CANCELLED,
                cancel_reason=reason,
                cancelled_by=actor_id
            )
            user_id = db_order.user_id
            await self.db.commit()

        except BusinessException:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception(f"取消订单失败，事务已回滚: {order_id}")
            raise InternalException("Failed to cancel order") from e

        logger.info(f"订单已取消: {order_id} 操作人 {actor_id} 原因 {reason}")
        await self._clear_order_caches(order_id, user_id)
        return await self.get_order_by_id(order_id, use_cache=False)

    async def update_order_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        actor_id: str,
        reason: Optional[str] = None
    ) -> Order:
        """按状态机更新订单状态，取消走 cancel_order"""
        if new_status == OrderStatus.CANCELLED:
            return await self.cancel_order(order_id, reason or "", actor_id)

        db_order = await self.order_repo.get_by_id(order_id)
        if not db_order:
            raise NotFoundException(f"Order {order_id} not found")

        order = self.order_repo.to_model(db_order)
        if not order.can_transition_to(new_status):
            raise ValidationException(
                f"Cannot change order status from {order.status.value} to {new_status.value}",
                code="invalid_status"
            )

        try:
            await self.order_repo.update_status(db_order, new_status)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception(f"更新订单状态失败: {order_id}")
            raise InternalException("Failed to update order status") from e

        logger.info(f"订单 {order_id} 状态 {order.status.value} -> {new_status.value}")
        await self._clear_order_caches(order_id, order.user_id)
        return await self.get_order_by_id(order_id, use_cache=False)

    async def _clear_order_caches(self, order_id: str, user_id: str):
        """清除订单相关缓存"""
        await self.cache.delete(f"{self.cache_prefix}:detail:{order_id}")
        await self._clear_user_order_caches(user_id)

    async def _clear_user_order_caches(self, user_id: str):
        """清除用户订单相关缓存"""
        await self.cache.delete_pattern(f"{self.cache_prefix}:user:{user_id}:*")

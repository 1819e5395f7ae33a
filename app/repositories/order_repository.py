"""
订单数据库操作层
"""

import uuid
from typing import List, Optional, Dict, Any
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, and_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.order import Order, OrderItem, OrderStatus
from app.models.database.order_db import OrderDB, OrderItemDB


class OrderRepository:
    """订单数据库操作层"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, order_id: str) -> Optional[OrderDB]:
        """根据订单ID获取订单（包含订单项）"""
        result = await self.db.execute(
            select(OrderDB)
            .options(selectinload(OrderDB.order_items))
            .where(OrderDB.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_order_number(self, order_number: str) -> Optional[OrderDB]:
        result = await self.db.execute(
            select(OrderDB)
            .options(selectinload(OrderDB.order_items))
            .where(OrderDB.order_number == order_number)
        )
        return result.scalar_one_or_none()

    async def get_user_orders(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
        status_filter: Optional[str] = None
    ) -> List[OrderDB]:
        """获取用户订单列表"""
        conditions = [OrderDB.user_id == user_id]

        if status_filter:
            conditions.append(OrderDB.status == status_filter)

        query = select(OrderDB).options(
            selectinload(OrderDB.order_items)
        ).where(
            and_(*conditions)
        ).order_by(desc(OrderDB.created_at)).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_user_orders(self, user_id: str) -> int:
        """统计用户未取消的历史订单数"""
        result = await self.db.execute(
            select(func.count(OrderDB.id)).where(
                and_(
                    OrderDB.user_id == user_id,
                    OrderDB.status != OrderStatus.CANCELLED.value
                )
            )
        )
        return result.scalar() or 0

    async def create_order(
        self,
        order_number: str,
        user_id: str,
        subtotal: Decimal,
        tax_amount: Decimal,
        shipping_amount: Decimal,
        discount_amount: Decimal,
        total_amount: Decimal,
        shipping_address: Optional[Dict[str, Any]] = None,
        billing_address: Optional[Dict[str, Any]] = None,
        shipping_method: Optional[str] = None,
        notes: Optional[str] = None
    ) -> OrderDB:
        """创建订单主记录"""
        db_order = OrderDB(
            id=str(uuid.uuid4()),
            order_number=order_number,
            user_id=user_id,
            subtotal=subtotal,
            tax_amount=tax_amount,
            shipping_amount=shipping_amount,
            discount_amount=discount_amount,
            total_amount=total_amount,
            status=OrderStatus.PENDING.value,
            payment_status="pending",
            shipping_address=shipping_address,
            billing_address=billing_address,
            shipping_method=shipping_method,
            notes=notes
        )
        self.db.add(db_order)
        await self.db.flush()
        return db_order

    async def add_order_item(
        self,
        order_id: str,
        product_id: str,
        product_name: str,
        product_sku: str,
        quantity: int,
        unit_price: Decimal,
        total_price: Decimal,
        variant_id: Optional[str] = None,
        product_snapshot: Optional[Dict[str, Any]] = None
    ) -> OrderItemDB:
        """添加订单项（商品信息快照）"""
        db_item = OrderItemDB(
            id=str(uuid.uuid4()),
            order_id=order_id,
            product_id=product_id,
            variant_id=variant_id,
            product_name=product_name,
            product_sku=product_sku,
            product_snapshot=product_snapshot,
            quantity=quantity,
            unit_price=unit_price,
            total_price=total_price
        )
        self.db.add(db_item)
        await self.db.flush()
        return db_item

    async def update_status(
        self,
        db_order: OrderDB,
        status: OrderStatus,
        cancel_reason: Optional[str] = None,
        cancelled_by: Optional[str] = None
    ) -> OrderDB:
        """更新订单状态"""
        now = datetime.now()
        db_order.status = status.value
        if status == OrderStatus.CANCELLED:
            db_order.cancel_reason = cancel_reason
            db_order.cancelled_by = cancelled_by
            db_order.cancelled_at = now
        elif status == OrderStatus.SHIPPED:
            db_order.shipped_at = now
        elif status == OrderStatus.DELIVERED:
            db_order.delivered_at = now
        await self.db.flush()
        return db_order

    def to_model(self, db_order: OrderDB) -> Order:
        """转换为Pydantic模型"""
        return Order(
            id=db_order.id,
            order_number=db_order.order_number,
            user_id=db_order.user_id,
            items=[
                OrderItem(
                    id=item.id,
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    product_name=item.product_name,
                    product_sku=item.product_sku,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price
                )
                for item in db_order.order_items
            ],
            subtotal=db_order.subtotal,
            tax_amount=db_order.tax_amount or 0,
            shipping_amount=db_order.shipping_amount or 0,
            discount_amount=db_order.discount_amount or 0,
            total_amount=db_order.total_amount,
            status=db_order.status,
            payment_status=db_order.payment_status,
            shipping_address=db_order.shipping_address,
            billing_address=db_order.billing_address,
            shipping_method=db_order.shipping_method,
            notes=db_order.notes,
            cancel_reason=db_order.cancel_reason,
            created_at=db_order.created_at,
            updated_at=db_order.updated_at,
            cancelled_at=db_order.cancelled_at
        )

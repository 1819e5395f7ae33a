"""
购物车数据库操作层
"""

from typing import Optional

from sqlalchemy import select, update, and_, desc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.database.cart_db import ShoppingCartDB


class CartRepository:
    """购物车数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_active_cart(self, user_id: str) -> Optional[ShoppingCartDB]:
        """获取用户当前购物车（包含商品行）"""
        result = await self.db.execute(
            select(ShoppingCartDB)
            .options(selectinload(ShoppingCartDB.items))
            .where(
                and_(
                    ShoppingCartDB.user_id == user_id,
                    ShoppingCartDB.status == "active"
                )
            )
            .order_by(desc(ShoppingCartDB.updated_at))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def mark_converted(self, cart_id: str) -> bool:
        """标记购物车已转为订单"""
        result = await self.db.execute(
            update(ShoppingCartDB)
            .where(
                and_(
                    ShoppingCartDB.id == cart_id,
                    ShoppingCartDB.status == "active"
                )
            )
            .values(status="converted")
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

"""
商品与库存数据库操作层
"""

import uuid
from typing import List, Optional, Dict, Tuple

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.order import MovementType
from app.models.database.catalog_db import ProductDB, ProductVariantDB
from app.models.database.order_db import StockMovementDB


class ProductRepository:
    """商品与库存数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, product_id: str) -> Optional[ProductDB]:
        result = await self.db.execute(
            select(ProductDB).where(ProductDB.id == product_id)
        )
        return result.scalar_one_or_none()

    async def get_by_ids(self, product_ids: List[str]) -> Dict[str, ProductDB]:
        """批量获取商品，返回 {商品ID: 商品}"""
        if not product_ids:
            return {}
        result = await self.db.execute(
            select(ProductDB).where(ProductDB.id.in_(set(product_ids)))
        )
        return {product.id: product for product in result.scalars().all()}

    async def get_variant(self, variant_id: str) -> Optional[ProductVariantDB]:
        result = await self.db.execute(
            select(ProductVariantDB).where(ProductVariantDB.id == variant_id)
        )
        return result.scalar_one_or_none()

    async def lock_product(self, product_id: str) -> Optional[ProductDB]:
        """加行锁读取商品（SQLite下为普通读取）"""
        result = await self.db.execute(
            select(ProductDB)
            .where(ProductDB.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def lock_variant(self, variant_id: str) -> Optional[ProductVariantDB]:
        result = await self.db.execute(
            select(ProductVariantDB)
            .where(ProductVariantDB.id == variant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def decrement_stock(
        self,
        product_id: str,
        quantity: int,
        variant_id: Optional[str] = None,
        allow_backorders: bool = False
    ) -> Optional[Tuple[int, int]]:
        """
        原子扣减库存

        不允许缺货下单时仅在库存充足的情况下扣减，库存不足返回None。
        成功时返回 (扣减前数量, 扣减后数量)。
        """
        table = ProductVariantDB if variant_id else ProductDB
        row_id = variant_id or product_id

        conditions = [table.id == row_id]
        if not allow_backorders:
            conditions.append(table.quantity >= quantity)

        result = await self.db.execute(
            update(table)
            .where(and_(*conditions))
            .values(quantity=table.quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        after = await self._current_quantity(table, row_id)
        return after + quantity, after

    async def increment_stock(
        self,
        product_id: str,
        quantity: int,
        variant_id: Optional[str] = None
    ) -> Optional[Tuple[int, int]]:
        """回补库存，返回 (回补前数量, 回补后数量)"""
        table = ProductVariantDB if variant_id else ProductDB
        row_id = variant_id or product_id

        result = await self.db.execute(
            update(table)
            .where(table.id == row_id)
            .values(quantity=table.quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        after = await self._current_quantity(table, row_id)
        return after - quantity, after

    async def _current_quantity(self, table, row_id: str) -> int:
        result = await self.db.execute(select(table.quantity).where(table.id == row_id))
        return result.scalar_one()

    async def add_stock_movement(
        self,
        product_id: str,
        movement_type: MovementType,
        quantity_change: int,
        quantity_before: int,
        quantity_after: int,
        performed_by: str,
        variant_id: Optional[str] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        reason: Optional[str] = None
    ) -> StockMovementDB:
        """记录库存变动"""
        db_movement = StockMovementDB(
            id=str(uuid.uuid4()),
            product_id=product_id,
            variant_id=variant_id,
            movement_type=movement_type.value,
            quantity_change=quantity_change,
            quantity_before=quantity_before,
            quantity_after=quantity_after,
            reference_type=reference_type,
            reference_id=reference_id,
            reason=reason,
            performed_by=performed_by
        )
        self.db.add(db_movement)
        await self.db.flush()
        return db_movement

    async def get_stock_movements(
        self,
        product_id: Optional[str] = None,
        reference_id: Optional[str] = None
    ) -> List[StockMovementDB]:
        """查询库存变动记录"""
        conditions = []
        if product_id:
            conditions.append(StockMovementDB.product_id == product_id)
        if reference_id:
            conditions.append(StockMovementDB.reference_id == reference_id)

        query = select(StockMovementDB).order_by(StockMovementDB.created_at)
        if conditions:
            query = query.where(and_(*conditions))
        result = await self.db.execute(query)
        return list(result.scalars().all())

"""
购物车数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base


class ShoppingCartDB(Base):
    """购物车数据库表"""

    __tablename__ = "shopping_carts"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(String(50), primary_key=True, comment="购物车ID")
    user_id = Column(String(50), nullable=False, index=True, comment="用户ID")
    status = Column(String(20), nullable=False, default="active", index=True, comment="购物车状态")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    items = relationship("CartItemDB", back_populates="cart", cascade="all, delete-orphan")

    __table_args__ = (
        {'comment': '购物车表'}
    )


class CartItemDB(Base):
    """购物车商品数据库表"""

    __tablename__ = "cart_items"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(String(50), primary_key=True, comment="购物车项ID")
    cart_id = Column(String(50), ForeignKey("shopping_carts.id", ondelete="CASCADE"), nullable=False, index=True, comment="购物车ID")
    product_id = Column(String(50), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, comment="商品ID")
    variant_id = Column(String(50), ForeignKey("product_variants.id", ondelete="CASCADE"), comment="规格ID")
    quantity = Column(Integer, nullable=False, comment="数量")
    price = Column(Numeric(12, 2), nullable=False, comment="加入购物车时的单价")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")

    cart = relationship("ShoppingCartDB", back_populates="items")

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", "variant_id", name="uq_cart_item_product"),
        {'comment': '购物车商品表'}
    )

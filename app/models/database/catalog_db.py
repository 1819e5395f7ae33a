"""
商品目录数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base


class ProductDB(Base):
    """商品数据库表"""

    __tablename__ = "products"
    __mapper_args__ = {"eager_defaults": True}

    # 主键和基本信息
    id = Column(String(50), primary_key=True, comment="商品ID")
    name = Column(String(255), nullable=False, comment="商品名称")
    sku = Column(String(100), nullable=False, unique=True, comment="商品SKU")
    category_id = Column(String(50), index=True, comment="所属分类ID")

    # 价格信息
    price = Column(Numeric(12, 2), nullable=False, comment="标价")
    sale_price = Column(Numeric(12, 2), comment="促销价")

    # 库存信息
    quantity = Column(Integer, nullable=False, default=0, comment="库存数量")
    track_quantity = Column(Boolean, default=True, comment="是否跟踪库存")
    allow_backorders = Column(Boolean, default=False, comment="是否允许缺货下单")

    is_active = Column(Boolean, default=True, index=True, comment="是否上架")

    # 时间戳
    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    # 关系映射
    variants = relationship("ProductVariantDB", back_populates="product", cascade="all, delete-orphan")

    __table_args__ = (
        {'comment': '商品信息表'}
    )

    @property
    def effective_price(self):
        """当前售价（促销价优先）"""
        return self.sale_price if self.sale_price is not None else self.price


class ProductVariantDB(Base):
    """商品规格数据库表"""

    __tablename__ = "product_variants"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(String(50), primary_key=True, comment="规格ID")
    product_id = Column(String(50), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True, comment="商品ID")
    name = Column(String(255), nullable=False, comment="规格名称")
    sku = Column(String(100), nullable=False, unique=True, comment="规格SKU")
    price = Column(Numeric(12, 2), comment="规格价格")
    quantity = Column(Integer, nullable=False, default=0, comment="库存数量")
    is_active = Column(Boolean, default=True, comment="是否可售")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    product = relationship("ProductDB", back_populates="variants")

    __table_args__ = (
        {'comment': '商品规格表'}
    )

"""
订单相关数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, Text, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base


class OrderDB(Base):
    """订单数据库表"""

    __tablename__ = "orders"
    __mapper_args__ = {"eager_defaults": True}

    # 主键和用户信息
    id = Column(String(50), primary_key=True, comment="订单ID")
    order_number = Column(String(50), nullable=False, unique=True, comment="订单编号")
    user_id = Column(String(50), nullable=False, index=True, comment="用户ID")

    # 金额信息
    subtotal = Column(Numeric(12, 2), nullable=False, comment="商品小计")
    tax_amount = Column(Numeric(12, 2), default=0, comment="税费")
    shipping_amount = Column(Numeric(12, 2), default=0, comment="运费")
    discount_amount = Column(Numeric(12, 2), default=0, comment="优惠总额")
    total_amount = Column(Numeric(12, 2), nullable=False, comment="应付总额")

    # 订单状态
    status = Column(String(20), default="pending", index=True, comment="订单状态")
    payment_status = Column(String(20), default="pending", index=True, comment="支付状态")

    # 配送信息
    shipping_address = Column(JSON, comment="收货地址")
    billing_address = Column(JSON, comment="账单地址")
    shipping_method = Column(String(100), comment="配送方式")

    # 备注
    notes = Column(Text, comment="订单备注")
    internal_notes = Column(Text, comment="内部备注")
    cancel_reason = Column(Text, comment="取消原因")
    cancelled_by = Column(String(50), comment="取消操作人")

    # 时间戳
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")
    cancelled_at = Column(DateTime(timezone=True), comment="取消时间")
    shipped_at = Column(DateTime(timezone=True), comment="发货时间")
    delivered_at = Column(DateTime(timezone=True), comment="送达时间")

    # 关系映射
    order_items = relationship("OrderItemDB", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        {'comment': '订单主表'}
    )


class OrderItemDB(Base):
    """订单商品数据库表（下单时快照）"""

    __tablename__ = "order_items"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(String(50), primary_key=True, comment="订单项ID")
    order_id = Column(String(50), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True, comment="订单ID")

    # 商品快照
    product_id = Column(String(50), nullable=False, comment="商品ID")
    variant_id = Column(String(50), comment="规格ID")
    product_name = Column(String(255), nullable=False, comment="商品名称快照")
    product_sku = Column(String(100), nullable=False, comment="SKU快照")
    product_snapshot = Column(JSON, comment="下单时完整商品信息")

    # 价格信息
    quantity = Column(Integer, nullable=False, comment="数量")
    unit_price = Column(Numeric(12, 2), nullable=False, comment="成交单价")
    total_price = Column(Numeric(12, 2), nullable=False, comment="小计")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")

    order = relationship("OrderDB", back_populates="order_items")

    __table_args__ = (
        {'comment': '订单商品表'}
    )


class StockMovementDB(Base):
    """库存变动记录表"""

    __tablename__ = "stock_movements"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(String(50), primary_key=True, comment="变动记录ID")
    product_id = Column(String(50), nullable=False, index=True, comment="商品ID")
    variant_id = Column(String(50), index=True, comment="规格ID")
    movement_type = Column(String(20), nullable=False, index=True, comment="变动类型")

    quantity_change = Column(Integer, nullable=False, comment="变动数量（正增负减）")
    quantity_before = Column(Integer, nullable=False, comment="变动前数量")
    quantity_after = Column(Integer, nullable=False, comment="变动后数量")

    reference_type = Column(String(50), comment="关联类型")
    reference_id = Column(String(50), comment="关联ID")
    reason = Column(Text, comment="变动原因")
    performed_by = Column(String(50), nullable=False, comment="操作人")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")

    __table_args__ = (
        {'comment': '库存变动记录表'}
    )

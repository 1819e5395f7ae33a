"""
订单相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, validator
from enum import Enum

from app.models.promotion import AppliedDiscount, BogoRequest


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING = "pending"  # 待处理
    CONFIRMED = "confirmed"  # 已确认
    PROCESSING = "processing"  # 处理中
    SHIPPED = "shipped"  # 已发货
    DELIVERED = "delivered"  # 已送达
    CANCELLED = "cancelled"  # 已取消
    REFUNDED = "refunded"  # 已退款


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"  # 待支付
    PAID = "paid"  # 已支付
    FAILED = "failed"  # 支付失败
    REFUNDED = "refunded"  # 已退款
    PARTIAL_REFUNDED = "partial_refunded"  # 部分退款


class MovementType(str, Enum):
    """库存变动类型"""
    STOCK_IN = "stock_in"  # 入库
    STOCK_OUT = "stock_out"  # 出库
    ADJUSTMENT = "adjustment"  # 人工调整
    SALE = "sale"  # 销售出库
    RETURN = "return"  # 退货/取消回库
    DAMAGED = "damaged"  # 报损
    TRANSFER = "transfer"  # 调拨


# 订单状态流转表，终态不可再变更
ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, List[OrderStatus]] = {
    OrderStatus.PENDING: [OrderStatus.CONFIRMED, OrderStatus.CANCELLED],
    OrderStatus.CONFIRMED: [OrderStatus.PROCESSING, OrderStatus.CANCELLED],
    OrderStatus.PROCESSING: [OrderStatus.SHIPPED],
    OrderStatus.SHIPPED: [OrderStatus.DELIVERED],
    OrderStatus.DELIVERED: [],
    OrderStatus.CANCELLED: [],
    OrderStatus.REFUNDED: [],
}

# 允许用户取消的状态
CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.CONFIRMED)


class CartItem(BaseModel):
    """购物车商品行"""

    product_id: str = Field(..., description="商品ID")
    variant_id: Optional[str] = Field(None, description="规格ID")
    quantity: int = Field(..., ge=1, description="数量")
    price: Decimal = Field(..., ge=0, description="加入购物车时的单价")
    category_id: Optional[str] = Field(None, description="商品分类ID")

    @property
    def line_total(self) -> Decimal:
        """行小计"""
        return self.price * self.quantity


class OrderItem(BaseModel):
    """订单项目模型"""

    id: str = Field(..., description="订单项ID")
    product_id: str = Field(..., description="商品ID")
    variant_id: Optional[str] = None
    product_name: str = Field(..., description="商品名称快照")
    product_sku: str = Field(..., description="SKU快照")
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0)
    total_price: Decimal = Field(..., ge=0)


class Order(BaseModel):
    """订单模型"""

    id: str = Field(..., description="订单ID")
    order_number: str = Field(..., description="订单编号")
    user_id: str = Field(..., description="用户ID")
    items: List[OrderItem] = Field(default_factory=list, description="订单项目列表")
    subtotal: Decimal = Field(..., ge=0, description="商品小计")
    tax_amount: Decimal = Field(default=Decimal('0'), ge=0)
    shipping_amount: Decimal = Field(default=Decimal('0'), ge=0)
    discount_amount: Decimal = Field(default=Decimal('0'), ge=0, description="优惠总额")
    total_amount: Decimal = Field(..., ge=0, description="应付总额")
    status: OrderStatus = Field(default=OrderStatus.PENDING)
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    shipping_address: Optional[Dict[str, Any]] = None
    billing_address: Optional[Dict[str, Any]] = None
    shipping_method: Optional[str] = None
    notes: Optional[str] = None
    cancel_reason: Optional[str] = None
    discount_breakdown: List[AppliedDiscount] = Field(default_factory=list, description="促销明细（来自使用记录）")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    def is_cancelled(self) -> bool:
        """检查是否已取消"""
        return self.status == OrderStatus.CANCELLED

    def can_transition_to(self, new_status: OrderStatus) -> bool:
        return new_status in ORDER_STATUS_TRANSITIONS.get(self.status, [])


class OrderCreate(BaseModel):
    """创建订单请求模型"""

    coupon_code: Optional[str] = Field(None, description="使用的优惠券代码")
    campaign_id: Optional[str] = Field(None, description="参与的活动ID")
    bogo_offers: List[BogoRequest] = Field(default_factory=list, description="买赠组合")
    tax_amount: Decimal = Field(default=Decimal('0'), ge=0)
    shipping_amount: Decimal = Field(default=Decimal('0'), ge=0)
    shipping_address: Optional[Dict[str, Any]] = None
    billing_address: Optional[Dict[str, Any]] = None
    shipping_method: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000, description="订单备注")
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @validator('coupon_code')
    def normalize_coupon_code(cls, v):
        if v is None:
            return v
        v = v.strip()
        return v.upper() if v else None


class OrderStatusUpdate(BaseModel):
    """更新订单状态模型"""

    status: OrderStatus
    reason: Optional[str] = Field(None, max_length=1000)


class OrderCancel(BaseModel):
    """取消订单请求模型"""

    reason: str = Field(..., min_length=1, max_length=1000, description="取消原因")


class CartRequest(BaseModel):
    """购物车请求模型"""

    items: List[CartItem] = Field(default_factory=list, description="购物车商品行")


class OrderCalculateRequest(CartRequest):
    """订单试算请求模型"""

    coupon_code: Optional[str] = None
    campaign_id: Optional[str] = None
    bogo_offers: List[BogoRequest] = Field(default_factory=list)
    tax_amount: Decimal = Field(default=Decimal('0'), ge=0)
    shipping_amount: Decimal = Field(default=Decimal('0'), ge=0)

    @validator('coupon_code')
    def normalize_coupon_code(cls, v):
        if v is None:
            return v
        v = v.strip()
        return v.upper() if v else None

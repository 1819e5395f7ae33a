"""
数据模型包初始化文件
"""

from .promotion import (
    PromotionType,
    DiscountType,
    GetDiscountType,
    CampaignType,
    CampaignStatus,
    CouponStatus,
    BogoStatus,
    AppliesTo,
    IneligibilityReason,
    Promotion,
    Campaign,
    Coupon,
    BogoOffer,
    EligibilityContext,
    EligibilityResult,
    CouponValidation,
    BogoRequest,
    AppliedDiscount,
    IneligiblePromotion,
    OrderTotals,
    ApplicableDiscount,
    UsageRecord,
    CouponCreate,
    CouponUpdate,
    CampaignCreate,
    CampaignUpdate,
    BogoOfferCreate,
    CouponValidateRequest
)
from .order import (
    OrderStatus,
    PaymentStatus,
    MovementType,
    CartItem,
    OrderItem,
    Order,
    OrderCreate,
    OrderStatusUpdate,
    OrderCancel,
    CartRequest,
    OrderCalculateRequest
)

__all__ = [
    "PromotionType",
    "DiscountType",
    "GetDiscountType",
    "CampaignType",
    "CampaignStatus",
    "CouponStatus",
    "BogoStatus",
    "AppliesTo",
    "IneligibilityReason",
    "Promotion",
    "Campaign",
    "Coupon",
    "BogoOffer",
    "EligibilityContext",
    "EligibilityResult",
    "CouponValidation",
    "BogoRequest",
    "AppliedDiscount",
    "IneligiblePromotion",
    "OrderTotals",
    "ApplicableDiscount",
    "UsageRecord",
    "CouponCreate",
    "CouponUpdate",
    "CampaignCreate",
    "CampaignUpdate",
    "BogoOfferCreate",
    "CouponValidateRequest",
    "OrderStatus",
    "PaymentStatus",
    "MovementType",
    "CartItem",
    "OrderItem",
    "Order",
    "OrderCreate",
    "OrderStatusUpdate",
    "OrderCancel",
    "CartRequest",
    "OrderCalculateRequest"
]

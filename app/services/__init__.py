"""
服务包初始化文件
"""

from .common_cache import SimpleCache, promotion_cache, order_cache, bind_caches
from .eligibility_service import EligibilityService
from .discount_calculator import DiscountCalculator, discount_calculator
from .coupon_service import CouponService
from .campaign_service import CampaignService
from .bogo_service import BogoService
from .promotion_service import PromotionService
from .order_service import OrderService

__all__ = [
    "SimpleCache",
    "promotion_cache",
    "order_cache",
    "bind_caches",
    "EligibilityService",
    "DiscountCalculator",
    "discount_calculator",
    "CouponService",
    "CampaignService",
    "BogoService",
    "PromotionService",
    "OrderService"
]

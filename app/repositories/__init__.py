"""
仓库包初始化文件 - 数据库访问层
"""

from .promotion_repository import PromotionRepository
from .campaign_repository import CampaignRepository
from .coupon_repository import CouponRepository
from .bogo_repository import BogoRepository
from .usage_repository import UsageRepository
from .product_repository import ProductRepository
from .cart_repository import CartRepository
from .order_repository import OrderRepository

__all__ = [
    "PromotionRepository",
    "CampaignRepository",
    "CouponRepository",
    "BogoRepository",
    "UsageRepository",
    "ProductRepository",
    "CartRepository",
    "OrderRepository"
]

"""
数据库模型包初始化文件
"""

from .catalog_db import ProductDB, ProductVariantDB
from .cart_db import ShoppingCartDB, CartItemDB
from .order_db import OrderDB, OrderItemDB, StockMovementDB
from .promotion_db import (
    SalesCampaignDB,
    CampaignProductDB,
    CampaignCategoryDB,
    CouponDB,
    CouponProductDB,
    CouponCategoryDB,
    BogoOfferDB,
    PromotionUsageDB
)

__all__ = [
    "ProductDB",
    "ProductVariantDB",
    "ShoppingCartDB",
    "CartItemDB",
    "OrderDB",
    "OrderItemDB",
    "StockMovementDB",
    "SalesCampaignDB",
    "CampaignProductDB",
    "CampaignCategoryDB",
    "CouponDB",
    "CouponProductDB",
    "CouponCategoryDB",
    "BogoOfferDB",
    "PromotionUsageDB"
]

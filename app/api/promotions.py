from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging

from app.core.database import get_db_session
from app.models.order import CartRequest
from app.models.promotion import (
    ApplicableDiscount,
    AppliedDiscount,
    CouponBatchValidateRequest,
    CouponValidation,
    CouponValidateRequest
)
from app.services.promotion_service import PromotionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/promotions", tags=["促销"])


def get_promotion_service(db: AsyncSession = Depends(get_db_session)) -> PromotionService:
    return PromotionService.from_session(db)


@router.post("/coupons/validate", response_model=CouponValidation)
async def validate_coupon(
    request: CouponValidateRequest,
    user_id: str = Header(..., alias="X-User-Id"),
    service: PromotionService = Depends(get_promotion_service)
):
    """校验优惠券是否可用，不可用时返回原因而非错误"""
    return await service.coupon_service.validate_coupon(
        code=request.code,
        user_id=user_id,
        order_amount=request.order_amount,
        product_ids=request.product_ids,
        category_ids=request.category_ids,
        quantity=request.quantity
    )


@router.post("/coupons/validate-batch", response_model=List[CouponValidation])
async def validate_coupons(
    request: CouponBatchValidateRequest,
    user_id: str = Header(..., alias="X-User-Id"),
    service: PromotionService = Depends(get_promotion_service)
):
    """逐个校验多个优惠券，结果顺序与请求一致"""
    return await service.coupon_service.validate_multiple_coupons(
        codes=request.codes,
        user_id=user_id,
        order_amount=request.order_amount,
        product_ids=request.product_ids,
        category_ids=request.category_ids,
        quantity=request.quantity
    )


@router.post("/applicable", response_model=List[ApplicableDiscount])
async def applicable_discounts(
    request: CartRequest,
    user_id: str = Header(..., alias="X-User-Id"),
    service: PromotionService = Depends(get_promotion_service)
):
    """列出购物车可用的促销"""
    return await service.get_applicable_discounts(request.items, user_id)


@router.post("/bogo/check", response_model=List[AppliedDiscount])
async def check_bogo(
    request: CartRequest,
    user_id: str = Header(..., alias="X-User-Id"),
    service: PromotionService = Depends(get_promotion_service)
):
    """检查购物车满足的买赠活动"""
    return await service.bogo_service.check_cart_for_bogo(request.items, user_id)

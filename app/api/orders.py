from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import logging

from app.core.database import get_db_session
from app.core.exceptions import NotFoundException
from app.models.order import Order, OrderCalculateRequest, OrderCancel, OrderCreate, OrderStatusUpdate
from app.models.promotion import OrderTotals
from app.services.order_service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["订单"])


def get_order_service(db: AsyncSession = Depends(get_db_session)) -> OrderService:
    return OrderService.from_session(db)


async def _get_owned_order(service: OrderService, order_id: str, user_id: str) -> Order:
    """非本人订单按不存在处理"""
    order = await service.get_order_by_id(order_id, use_cache=False)
    if not order or order.user_id != user_id:
        raise NotFoundException(f"Order {order_id} not found")
    return order


@router.post("/calculate", response_model=OrderTotals)
async def calculate_order(
    request: OrderCalculateRequest,
    user_id: str = Header(..., alias="X-User-Id"),
    service: OrderService = Depends(get_order_service)
):
    """订单试算，不可用的促销在 ineligible 中返回"""
    return await service.promotion_service.calculate_order_totals(
        cart_items=request.items,
        user_id=user_id,
        coupon_code=request.coupon_code,
        campaign_id=request.campaign_id,
        bogo_offers=request.bogo_offers,
        tax_amount=request.tax_amount,
        shipping_amount=request.shipping_amount
    )


@router.post("", response_model=Order, status_code=status.HTTP_201_CREATED)
async def create_order(
    order_data: OrderCreate,
    user_id: str = Header(..., alias="X-User-Id"),
    user_agent: Optional[str] = Header(None, alias="User-Agent"),
    service: OrderService = Depends(get_order_service)
):
    """从当前购物车下单"""
    if user_agent and not order_data.user_agent:
        order_data = order_data.model_copy(update={"user_agent": user_agent})
    return await service.create_order_from_cart(user_id, order_data)


@router.get("", response_model=List[Order])
async def list_orders(
    user_id: str = Header(..., alias="X-User-Id"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status_filter: Optional[str] = Query(None, alias="status"),
    service: OrderService = Depends(get_order_service)
):
    return await service.get_user_orders(user_id, limit=limit, offset=offset, status_filter=status_filter)


@router.get("/{order_id}", response_model=Order)
async def get_order(
    order_id: str,
    user_id: str = Header(..., alias="X-User-Id"),
    service: OrderService = Depends(get_order_service)
):
    return await _get_owned_order(service, order_id, user_id)


@router.post("/{order_id}/cancel", response_model=Order)
async def cancel_order(
    order_id: str,
    request: OrderCancel,
    user_id: str = Header(..., alias="X-User-Id"),
    service: OrderService = Depends(get_order_service)
):
    """取消订单并回补库存"""
    await _get_owned_order(service, order_id, user_id)
    return await service.cancel_order(order_id, request.reason, actor_id=user_id)


@router.patch("/{order_id}/status", response_model=Order)
async def update_order_status(
    order_id: str,
    request: OrderStatusUpdate,
    user_id: str = Header(..., alias="X-User-Id"),
    service: OrderService = Depends(get_order_service)
):
    """后台更新订单状态"""
    return await service.update_order_status(order_id, request.status, actor_id=user_id, reason=request.reason)

"""
Admin endpoints: order status management, cancellation requests and
coupon management. Every route requires an admin token.
"""

from math import ceil
from typing import Optional
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status

from fabricstore.api.deps import DB, AdminUser, require_admin
from fabricstore.models.coupon import Coupon
from fabricstore.models.order import OrderStatus
from fabricstore.schemas.coupon import (
    CouponCreate,
    CouponUpdate,
    CouponResponse,
    CouponListResponse,
)
from fabricstore.schemas.order import (
    OrderStatusUpdate,
    OrderDetailResponse,
    OrderSummaryResponse,
    OrderListResponse,
    CancellationRequestResolve,
    CancellationRequestResponse,
)
from fabricstore.services.coupon_service import CouponService
from fabricstore.services.order_service import OrderService
from fabricstore.services.order_lifecycle import OrderLifecycleService


router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
)


# ==================== Orders ====================

@router.get("/orders", response_model=OrderListResponse)
async def list_orders(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
):
    """Get paginated list of orders, optionally filtered by status."""
    orders, total = await OrderService(db).list_orders(
        status=order_status.value if order_status else None,
        page=page,
        size=size,
    )
    return OrderListResponse(
        items=[OrderSummaryResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.put("/orders/{order_id}/status", response_model=OrderDetailResponse)
async def update_order_status(
    order_id: uuid.UUID,
    data: OrderStatusUpdate,
    db: DB,
    current_user: AdminUser,
):
    """
    Move an order through its lifecycle.

    Shipping stamps shipped_at, delivery stamps delivered_at and marks the
    order paid, cancelling restores stock.
    """
    await OrderLifecycleService(db).update_status(
        order_id,
        data.status.value,
        tracking_number=data.tracking_number,
        note=data.note,
        changed_by=current_user.id,
    )
    order = await OrderService(db).get_order(order_id, is_admin=True)
    return OrderDetailResponse.model_validate(order)


@router.put(
    "/orders/{order_id}/cancellation-request",
    response_model=CancellationRequestResponse,
)
async def resolve_cancellation_request(
    order_id: uuid.UUID,
    data: CancellationRequestResolve,
    db: DB,
    current_user: AdminUser,
):
    """Approve (cancels the order and restores stock) or reject a request."""
    request = await OrderLifecycleService(db).resolve_cancellation_request(
        order_id, data.status.value, changed_by=current_user.id
    )
    return CancellationRequestResponse.model_validate(request)


# ==================== Coupons ====================

def _coupon_response(coupon: Coupon) -> CouponResponse:
    return CouponResponse.model_validate(coupon).model_copy(
        update={"is_expired": CouponService.is_expired(coupon)}
    )


@router.get("/coupons", response_model=CouponListResponse)
async def list_coupons(
    db: DB,
    coupon_status: str = Query("all", alias="status", pattern="^(all|active|inactive|expired)$"),
):
    coupons, total = await CouponService(db).list_coupons(coupon_status)
    return CouponListResponse(items=[_coupon_response(c) for c in coupons], total=total)


@router.get("/coupons/{coupon_id}", response_model=CouponResponse)
async def get_coupon(coupon_id: uuid.UUID, db: DB):
    coupon = await CouponService(db).get_coupon(coupon_id)
    if not coupon:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Coupon not found"
        )
    return _coupon_response(coupon)


@router.post("/coupons", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
async def create_coupon(data: CouponCreate, db: DB):
    coupon = await CouponService(db).create_coupon(data)
    return _coupon_response(coupon)


@router.put("/coupons/{coupon_id}", response_model=CouponResponse)
async def update_coupon(coupon_id: uuid.UUID, data: CouponUpdate, db: DB):
    coupon = await CouponService(db).update_coupon(coupon_id, data)
    return _coupon_response(coupon)


@router.post("/coupons/{coupon_id}/toggle", response_model=CouponResponse)
async def toggle_coupon(coupon_id: uuid.UUID, db: DB):
    coupon = await CouponService(db).toggle_active(coupon_id)
    return _coupon_response(coupon)


@router.delete("/coupons/{coupon_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_coupon(coupon_id: uuid.UUID, db: DB):
    await CouponService(db).delete_coupon(coupon_id)

"""
Customer order endpoints: quote, place, read, cancel and request a
cancellation.
"""

from typing import Optional
import uuid

from fastapi import APIRouter, Header, HTTPException, Query, Response, status

from fabricstore.api.deps import DB, CurrentUser
from fabricstore.schemas.order import (
    OrderCreate,
    OrderQuoteRequest,
    OrderQuoteResponse,
    OrderPlacementResponse,
    OrderTotalsResponse,
    PricedLineResponse,
    OrderDetailResponse,
    OrderSummaryResponse,
    OrderCursorPage,
    OrderCountResponse,
    OrderTrackingResponse,
    CancellationRequestCreate,
    CancellationRequestResponse,
)
from fabricstore.services.order_service import OrderService
from fabricstore.services.order_lifecycle import OrderLifecycleService


router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("/quote", response_model=OrderQuoteResponse)
async def quote_order(
    data: OrderQuoteRequest,
    db: DB,
    current_user: CurrentUser,
):
    """
    Price a cart on the server without placing an order.

    The checkout shows these totals instead of its own.
    """
    quote = await OrderService(db).quote_order(data)
    return OrderQuoteResponse(
        items=[PricedLineResponse.model_validate(line) for line in quote.lines],
        totals=OrderTotalsResponse.model_validate(quote.totals),
        coupon_code=quote.coupon_code,
    )


@router.post(
    "",
    response_model=OrderPlacementResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_order(
    data: OrderCreate,
    db: DB,
    current_user: CurrentUser,
    response: Response,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=255),
):
    """
    Place an order.

    Returns the authoritative totals. Resubmitting with the same
    Idempotency-Key returns the original order with status 200.
    """
    placement = await OrderService(db).create_order(
        current_user.id, data, idempotency_key=idempotency_key
    )
    if placement.duplicate:
        response.status_code = status.HTTP_200_OK
    return OrderPlacementResponse.model_validate(placement)


@router.get("", response_model=OrderCursorPage)
async def list_my_orders(
    db: DB,
    current_user: CurrentUser,
    limit: int = Query(10, ge=1, le=50),
    cursor: Optional[uuid.UUID] = Query(None),
):
    """Get the caller's orders, newest first."""
    orders, next_cursor = await OrderService(db).list_user_orders(
        current_user.id, limit=limit, cursor=cursor
    )
    return OrderCursorPage(
        items=[OrderSummaryResponse.model_validate(o) for o in orders],
        next_cursor=next_cursor,
    )


@router.get("/count", response_model=OrderCountResponse)
async def count_my_orders(db: DB, current_user: CurrentUser):
    count = await OrderService(db).count_user_orders(current_user.id)
    return OrderCountResponse(count=count)


@router.get("/track/{order_number}", response_model=OrderTrackingResponse)
async def track_order(order_number: str, db: DB):
    """Public tracking by order number."""
    order = await OrderService(db).get_order_by_number(order_number)
    if not order:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found"
        )
    return OrderTrackingResponse.model_validate(order)


@router.get("/{order_id}", response_model=OrderDetailResponse)
async def get_order(
    order_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    """Get order details. Owners and admins only."""
    order = await OrderService(db).get_order(
        order_id, user_id=current_user.id, is_admin=current_user.is_admin
    )
    if not order:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found"
        )
    return OrderDetailResponse.model_validate(order)


@router.post("/{order_id}/cancel", response_model=OrderDetailResponse)
async def cancel_order(
    order_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    """Cancel the caller's own pending, unpaid order. Stock is restored."""
    await OrderLifecycleService(db).cancel_order(current_user.id, order_id)
    order = await OrderService(db).get_order(order_id, user_id=current_user.id)
    return OrderDetailResponse.model_validate(order)


@router.post(
    "/{order_id}/cancellation-request",
    response_model=CancellationRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def request_cancellation(
    order_id: uuid.UUID,
    data: CancellationRequestCreate,
    db: DB,
    current_user: CurrentUser,
):
    """Ask an admin to cancel a paid order."""
    request = await OrderLifecycleService(db).request_cancellation(
        current_user.id, order_id, reason=data.reason
    )
    return CancellationRequestResponse.model_validate(request)

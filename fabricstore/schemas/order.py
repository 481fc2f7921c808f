from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from fabricstore.models.order import OrderStatus, PaymentMethod, CancellationRequestStatus
from fabricstore.schemas.base import BaseResponseSchema, BaseCreateSchema


# ==================== INPUT ====================

class OrderItemInput(BaseCreateSchema):
    """
    Cart line as sent by the checkout.

    Only product_id and quantity are trusted. Name and price hints from
    the client are accepted but never used.
    """
    product_id: UUID
    quantity: Decimal = Field(..., description="Fractional quantities allowed, e.g. 2.5 meters")
    unit: Optional[str] = Field(None, max_length=50)
    name: Optional[str] = Field(None, description="Ignored; resolved from the catalog")
    price: Optional[Decimal] = Field(None, description="Ignored; resolved from the catalog")


class ShippingAddressInput(BaseCreateSchema):
    name: str = Field(..., min_length=2, max_length=255)
    phone: str = Field(..., min_length=10, max_length=20)
    address_line1: str = Field(..., min_length=1, max_length=500)
    address_line2: Optional[str] = Field(None, max_length=500)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    pincode: str = Field(..., pattern=r"^\d{6}$", description="6-digit pincode")


class OrderQuoteRequest(BaseCreateSchema):
    items: List[OrderItemInput] = Field(..., min_length=1)
    coupon_code: Optional[str] = Field(None, max_length=100)


class OrderCreate(BaseCreateSchema):
    items: List[OrderItemInput] = Field(..., min_length=1)
    shipping_address: ShippingAddressInput
    payment_method: PaymentMethod = PaymentMethod.COD
    customer_note: Optional[str] = Field(None, max_length=2000)
    coupon_code: Optional[str] = Field(None, max_length=100)
    idempotency_key: Optional[str] = Field(
        None,
        max_length=255,
        description="Client-generated token; resubmitting with the same key returns the original order"
    )


class OrderStatusUpdate(BaseCreateSchema):
    status: OrderStatus
    tracking_number: Optional[str] = Field(None, max_length=255)
    note: Optional[str] = None


class CancellationRequestCreate(BaseCreateSchema):
    reason: Optional[str] = Field(None, max_length=2000)


class CancellationRequestResolve(BaseCreateSchema):
    status: CancellationRequestStatus

    @field_validator("status")
    @classmethod
    def must_resolve(cls, v):
        if v == CancellationRequestStatus.PENDING:
            raise ValueError("status must be approved or rejected")
        return v


# ==================== OUTPUT ====================

class OrderTotalsResponse(BaseResponseSchema):
    subtotal: Decimal
    shipping_cost: Decimal
    discount: Decimal
    total: Decimal


class PricedLineResponse(BaseResponseSchema):
    product_id: UUID
    product_name: str
    product_sku: Optional[str] = None
    price: Decimal
    quantity: Decimal
    unit: str
    total: Decimal


class OrderQuoteResponse(BaseModel):
    items: List[PricedLineResponse]
    totals: OrderTotalsResponse
    coupon_code: Optional[str] = None


class OrderPlacementResponse(BaseResponseSchema):
    order_id: UUID
    order_number: str
    totals: OrderTotalsResponse
    coupon_code: Optional[str] = None
    duplicate: bool = False


class OrderItemResponse(BaseResponseSchema):
    id: UUID
    product_id: UUID
    product_name: str
    product_sku: Optional[str] = None
    price: Decimal
    quantity: Decimal
    unit: str
    total: Decimal


class StatusHistoryResponse(BaseResponseSchema):
    from_status: Optional[str] = None
    to_status: str
    changed_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class CancellationRequestResponse(BaseResponseSchema):
    id: UUID
    order_id: UUID
    status: str
    reason: Optional[str] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None


class OrderResponse(BaseResponseSchema):
    id: UUID
    order_number: str
    user_id: str
    status: str
    payment_status: str
    payment_method: str
    subtotal: Decimal
    shipping_cost: Decimal
    discount: Decimal
    total: Decimal
    coupon_code: Optional[str] = None
    shipping_name: str
    shipping_phone: str
    shipping_address_line1: str
    shipping_address_line2: Optional[str] = None
    shipping_city: str
    shipping_state: str
    shipping_pincode: str
    tracking_number: Optional[str] = None
    customer_note: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class OrderDetailResponse(OrderResponse):
    items: List[OrderItemResponse] = []
    status_history: List[StatusHistoryResponse] = []
    cancellation_request: Optional[CancellationRequestResponse] = None


class OrderSummaryResponse(OrderResponse):
    items: List[OrderItemResponse] = []


class OrderCursorPage(BaseModel):
    """Customer order history, newest first."""
    items: List[OrderSummaryResponse]
    next_cursor: Optional[UUID] = None


class OrderListResponse(BaseModel):
    """Paginated admin order list."""
    items: List[OrderSummaryResponse]
    total: int
    page: int
    size: int
    pages: int


class OrderCountResponse(BaseModel):
    count: int


class TrackingItemResponse(BaseResponseSchema):
    product_name: str
    quantity: Decimal
    unit: str
    total: Decimal


class OrderTrackingResponse(BaseResponseSchema):
    """Public tracking view; carries no contact details."""
    order_number: str
    status: str
    payment_status: str
    total: Decimal
    shipping_city: str
    shipping_state: str
    tracking_number: Optional[str] = None
    created_at: datetime
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    items: List[TrackingItemResponse] = []

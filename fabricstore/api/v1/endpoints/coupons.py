"""
Coupon API Endpoints for the storefront checkout.

Validation here is a preview only; usage is consumed when an order is
placed.
"""

from fastapi import APIRouter

from fabricstore.api.deps import DB, CurrentUser
from fabricstore.schemas.coupon import ValidateCouponRequest, CouponValidationResponse
from fabricstore.services.coupon_service import CouponService


router = APIRouter(prefix="/coupons", tags=["Coupons"])


@router.post("/validate", response_model=CouponValidationResponse)
async def validate_coupon(
    request: ValidateCouponRequest,
    db: DB,
    current_user: CurrentUser,
):
    """Validate a coupon code and return the discount it would give."""
    quote = await CouponService(db).resolve(request.code, request.subtotal)
    return CouponValidationResponse(
        valid=True,
        coupon_id=quote.coupon_id,
        code=quote.code,
        discount_type=quote.discount_type,
        discount_value=quote.discount_value,
        discount=quote.discount,
        description=quote.description,
    )

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from fabricstore.models.coupon import DiscountType
from fabricstore.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema


class ValidateCouponRequest(BaseCreateSchema):
    """Preview a coupon against a cart subtotal."""
    code: str = Field(..., min_length=1, max_length=100)
    subtotal: Decimal = Field(..., gt=0)


class CouponValidationResponse(BaseModel):
    valid: bool
    coupon_id: UUID
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    discount: Decimal
    description: Optional[str] = None


class CouponCreate(BaseCreateSchema):
    code: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal = Field(..., gt=0)
    min_purchase: Optional[Decimal] = Field(None, ge=0)
    max_discount: Optional[Decimal] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    start_date: datetime
    end_date: datetime
    is_active: bool = True

    @model_validator(mode="after")
    def check_percentage(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self


class CouponUpdate(BaseUpdateSchema):
    code: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(None, gt=0)
    min_purchase: Optional[Decimal] = Field(None, ge=0)
    max_discount: Optional[Decimal] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None


class CouponResponse(BaseResponseSchema):
    id: UUID
    code: str
    description: Optional[str] = None
    discount_type: str
    discount_value: Decimal
    min_purchase: Optional[Decimal] = None
    max_discount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    usage_count: int
    start_date: datetime
    end_date: datetime
    is_active: bool
    is_usage_limit_reached: bool
    is_expired: bool = False
    created_at: datetime
    updated_at: datetime


class CouponListResponse(BaseModel):
    items: List[CouponResponse]
    total: int

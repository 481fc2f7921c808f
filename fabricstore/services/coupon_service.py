"""
Coupon resolver and coupon administration.

Validation has no side effects. Usage is consumed only by the order
commit, inside the order's transaction, through ``consume``.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from fabricstore.core.exceptions import ValidationFailed, ResourceNotFound, CommitFailed
from fabricstore.core.money import to_money, ZERO
from fabricstore.models.coupon import Coupon, DiscountType
from fabricstore.schemas.coupon import CouponCreate, CouponUpdate

logger = logging.getLogger(__name__)


CODE_MIN_LENGTH = 3
CODE_MAX_LENGTH = 20
INVALID_COUPON_MESSAGE = "Invalid or expired coupon code"
USAGE_LIMIT_MESSAGE = "This coupon has reached its usage limit"
# Columns an update may change but never clear
REQUIRED_COUPON_FIELDS = ("code", "discount_type", "discount_value", "start_date", "end_date", "is_active")

_WHITESPACE = re.compile(r"\s+")


def normalize_coupon_code(code: Optional[str]) -> str:
    """Canonical coupon code: uppercase with all whitespace removed."""
    if not code:
        return ""
    return _WHITESPACE.sub("", code).upper()


def calculate_discount(
    discount_type: str,
    discount_value: Decimal,
    subtotal: Decimal,
    max_discount: Optional[Decimal] = None,
) -> Decimal:
    """
    Discount for a subtotal, clamped to [0, subtotal].

    Percentage discounts are capped at max_discount when it is set and
    positive. The result is rounded half up to 2 places.
    """
    subtotal = Decimal(subtotal)
    value = Decimal(discount_value)

    if discount_type == DiscountType.PERCENTAGE.value:
        discount = subtotal * value / Decimal("100")
        if max_discount is not None and Decimal(max_discount) > 0:
            discount = min(discount, Decimal(max_discount))
    elif discount_type == DiscountType.FIXED.value:
        discount = value
    else:
        discount = ZERO

    discount = max(ZERO, min(discount, subtotal))
    return to_money(discount)


def _as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything is stored in UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class CouponQuote:
    coupon_id: uuid.UUID
    code: str
    discount_type: str
    discount_value: Decimal
    discount: Decimal
    description: Optional[str] = None


class CouponService:
    """Coupon validation, consumption and admin management."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== RESOLVER ====================

    async def resolve(self, code: str, subtotal: Decimal) -> CouponQuote:
        """
        Validate a code against a server-computed subtotal.

        Checks fail fast in this order: unknown, inactive or outside its
        date window (reported identically), usage limit, minimum purchase.
        """
        normalized = normalize_coupon_code(code)
        if not normalized:
            raise ResourceNotFound(INVALID_COUPON_MESSAGE)

        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            select(Coupon).where(
                Coupon.code == normalized,
                Coupon.is_active == True,  # noqa: E712
                Coupon.start_date <= now,
                Coupon.end_date >= now,
            )
        )
        coupon = result.scalar_one_or_none()
        if coupon is None:
            raise ResourceNotFound(INVALID_COUPON_MESSAGE, details={"code": normalized})

        if coupon.is_usage_limit_reached:
            raise ValidationFailed(USAGE_LIMIT_MESSAGE, details={"code": normalized})

        min_purchase = coupon.min_purchase or ZERO
        if Decimal(subtotal) < min_purchase:
            raise ValidationFailed(
                f"Minimum purchase of ₹{to_money(min_purchase)} required for this coupon",
                details={"code": normalized, "min_purchase": str(to_money(min_purchase))},
            )

        return CouponQuote(
            coupon_id=coupon.id,
            code=coupon.code,
            discount_type=coupon.discount_type,
            discount_value=to_money(coupon.discount_value),
            discount=calculate_discount(
                coupon.discount_type,
                coupon.discount_value,
                subtotal,
                coupon.max_discount,
            ),
            description=coupon.description,
        )

    async def consume(self, coupon_id: uuid.UUID) -> None:
        """
        Count one use of a coupon. Does not commit.

        The increment is conditional on the limit, so two orders racing for
        the last use cannot both succeed.
        """
        result = await self.db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                or_(
                    Coupon.usage_limit == None,  # noqa: E711
                    Coupon.usage_count < Coupon.usage_limit,
                ),
            )
            .values(usage_count=Coupon.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(f"Coupon {coupon_id} usage limit reached during order commit")
            raise ValidationFailed(USAGE_LIMIT_MESSAGE, details={"coupon_id": str(coupon_id)})
        logger.info(f"Consumed one use of coupon {coupon_id}")

    # ==================== ADMIN ====================

    @staticmethod
    def is_expired(coupon: Coupon) -> bool:
        return _as_utc(coupon.end_date) < datetime.now(timezone.utc)

    async def list_coupons(self, status: str = "all") -> Tuple[List[Coupon], int]:
        """List coupons filtered by all, active, inactive or expired."""
        now = datetime.now(timezone.utc)
        query = select(Coupon)

        if status == "active":
            query = query.where(
                Coupon.is_active == True,  # noqa: E712
                Coupon.start_date <= now,
                Coupon.end_date >= now,
            )
        elif status == "inactive":
            query = query.where(Coupon.is_active == False)  # noqa: E712
        elif status == "expired":
            query = query.where(Coupon.end_date < now)
        elif status != "all":
            raise ValidationFailed(f"Unknown coupon status filter '{status}'")

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        result = await self.db.execute(query.order_by(Coupon.created_at.desc()))
        return list(result.scalars().all()), total

    async def get_coupon(self, coupon_id: uuid.UUID) -> Optional[Coupon]:
        result = await self.db.execute(select(Coupon).where(Coupon.id == coupon_id))
        return result.scalar_one_or_none()

    async def _get_or_404(self, coupon_id: uuid.UUID) -> Coupon:
        coupon = await self.get_coupon(coupon_id)
        if coupon is None:
            raise ResourceNotFound("Coupon not found", details={"coupon_id": str(coupon_id)})
        return coupon

    async def _ensure_code_available(self, code: str, exclude_id: Optional[uuid.UUID] = None) -> None:
        query = select(Coupon.id).where(Coupon.code == code)
        if exclude_id is not None:
            query = query.where(Coupon.id != exclude_id)
        if (await self.db.execute(query)).first() is not None:
            raise ValidationFailed("A coupon with this code already exists", details={"code": code})

    @staticmethod
    def _validated_code(raw: str) -> str:
        code = normalize_coupon_code(raw)
        if not CODE_MIN_LENGTH <= len(code) <= CODE_MAX_LENGTH:
            raise ValidationFailed(
                f"Coupon code must be between {CODE_MIN_LENGTH} and {CODE_MAX_LENGTH} characters"
            )
        return code

    @staticmethod
    def _check_rules(
        discount_type: str,
        discount_value: Decimal,
        start_date: datetime,
        end_date: datetime,
    ) -> None:
        if _as_utc(end_date) <= _as_utc(start_date):
            raise ValidationFailed("End date must be after start date")
        if discount_type == DiscountType.PERCENTAGE.value and Decimal(discount_value) > 100:
            raise ValidationFailed("Percentage discount cannot exceed 100")

    async def create_coupon(self, data: CouponCreate) -> Coupon:
        code = self._validated_code(data.code)
        self._check_rules(data.discount_type.value, data.discount_value, data.start_date, data.end_date)
        await self._ensure_code_available(code)

        coupon = Coupon(
            code=code,
            description=data.description,
            discount_type=data.discount_type.value,
            discount_value=data.discount_value,
            min_purchase=data.min_purchase,
            max_discount=data.max_discount,
            usage_limit=data.usage_limit,
            usage_count=0,
            start_date=_as_utc(data.start_date),
            end_date=_as_utc(data.end_date),
            is_active=data.is_active,
        )
        self.db.add(coupon)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ValidationFailed("A coupon with this code already exists", details={"code": code})

        await self.db.refresh(coupon)
        logger.info(f"Created coupon {coupon.code}")
        return coupon

    async def update_coupon(self, coupon_id: uuid.UUID, data: CouponUpdate) -> Coupon:
        coupon = await self._get_or_404(coupon_id)
        update_data = data.model_dump(exclude_unset=True)

        for field in REQUIRED_COUPON_FIELDS:
            if field in update_data and update_data[field] is None:
                raise ValidationFailed(f"{field} cannot be empty", details={"field": field})

        code_changed = False
        if "code" in update_data:
            update_data["code"] = self._validated_code(update_data["code"])
            code_changed = update_data["code"] != coupon.code
            if code_changed:
                await self._ensure_code_available(update_data["code"], exclude_id=coupon.id)
        if isinstance(update_data.get("discount_type"), DiscountType):
            update_data["discount_type"] = update_data["discount_type"].value
        for field in ("start_date", "end_date"):
            if field in update_data:
                update_data[field] = _as_utc(update_data[field])

        self._check_rules(
            update_data.get("discount_type", coupon.discount_type),
            update_data.get("discount_value", coupon.discount_value),
            update_data.get("start_date", coupon.start_date),
            update_data.get("end_date", coupon.end_date),
        )

        for field, value in update_data.items():
            setattr(coupon, field, value)

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if code_changed:
                raise ValidationFailed(
                    "A coupon with this code already exists",
                    details={"code": update_data["code"]},
                )
            logger.error(f"Database integrity error updating coupon {coupon_id}: {e}")
            raise CommitFailed("Could not update coupon")

        await self.db.refresh(coupon)
        logger.info(f"Updated coupon {coupon.code}")
        return coupon

    async def delete_coupon(self, coupon_id: uuid.UUID) -> None:
        coupon = await self._get_or_404(coupon_id)
        await self.db.delete(coupon)
        await self.db.commit()
        logger.info(f"Deleted coupon {coupon.code}")

    async def toggle_active(self, coupon_id: uuid.UUID) -> Coupon:
        coupon = await self._get_or_404(coupon_id)
        coupon.is_active = not coupon.is_active
        await self.db.commit()
        await self.db.refresh(coupon)
        return coupon

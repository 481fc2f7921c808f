from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
import secrets
import uuid
import logging

from sqlalchemy import select, func, and_, or_
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from fabricstore.config import settings as app_settings
from fabricstore.core.exceptions import ValidationFailed, CommitFailed
from fabricstore.models.order import (
    Order, OrderItem, OrderStatus, OrderStatusHistory, PaymentStatus
)
from fabricstore.schemas.order import OrderCreate
from fabricstore.services.coupon_service import CouponService
from fabricstore.services.inventory_service import InventoryService
from fabricstore.services.pricing_service import OrderPricingService, OrderTotals, OrderQuote
from fabricstore.services.settings_service import StoreSettingsService

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5


@dataclass(frozen=True)
class OrderPlacement:
    """Authoritative result of placing an order."""
    order_id: uuid.UUID
    order_number: str
    totals: OrderTotals
    coupon_code: Optional[str] = None
    duplicate: bool = False

    @classmethod
    def from_order(cls, order: Order, duplicate: bool = False) -> "OrderPlacement":
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            totals=OrderTotals(
                subtotal=order.subtotal,
                shipping_cost=order.shipping_cost,
                discount=order.discount,
                total=order.total,
            ),
            coupon_code=order.coupon_code,
            duplicate=duplicate,
        )


class OrderService:
    """Order placement and order reads."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.pricing = OrderPricingService(db)
        self.inventory = InventoryService(db)
        self.coupons = CouponService(db)
        self.store_settings = StoreSettingsService(db)

    # ==================== ORDER NUMBER GENERATION ====================

    async def generate_order_number(self) -> str:
        """Generate unique order number: NT-YYYYMMDD-XXXXXXXX"""
        today = datetime.now(timezone.utc).strftime("%Y%m%d")

        for _ in range(ORDER_NUMBER_ATTEMPTS):
            candidate = f"{app_settings.ORDER_NUMBER_PREFIX}-{today}-{secrets.token_hex(4).upper()}"
            exists = await self.db.execute(
                select(Order.id).where(Order.order_number == candidate)
            )
            if exists.first() is None:
                return candidate

        raise CommitFailed("Could not allocate an order number, please retry")

    # ==================== ORDER PLACEMENT ====================

    async def _find_by_idempotency_key(self, user_id: str, key: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order).where(
                Order.user_id == user_id,
                Order.idempotency_key == key,
            )
        )
        return result.scalar_one_or_none()

    async def quote_order(self, data) -> OrderQuote:
        """Price a cart without writing anything."""
        return await self.pricing.price_order(data.items, data.coupon_code)

    async def create_order(
        self,
        user_id: str,
        data: OrderCreate,
        idempotency_key: Optional[str] = None,
    ) -> OrderPlacement:
        """
        Place an order.

        Pricing runs first and writes nothing. The header, lines, stock
        decrements, coupon usage and first history row then commit together;
        any failure rolls all of them back.
        """
        key = idempotency_key or data.idempotency_key

        if key:
            existing = await self._find_by_idempotency_key(user_id, key)
            if existing is not None:
                logger.info(f"Duplicate submission for key {key}, returning order {existing.order_number}")
                return OrderPlacement.from_order(existing, duplicate=True)

        checkout_settings = await self.store_settings.get_checkout_settings()
        payment_method = data.payment_method.value
        if not checkout_settings.is_payment_method_enabled(payment_method):
            raise ValidationFailed(
                f"Payment method '{payment_method}' is not available",
                details={"payment_method": payment_method},
            )

        quote = await self.pricing.price_order(
            data.items, data.coupon_code, settings=checkout_settings
        )
        order_number = await self.generate_order_number()
        address = data.shipping_address

        try:
            order = Order(
                order_number=order_number,
                idempotency_key=key,
                user_id=user_id,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                payment_method=payment_method,
                subtotal=quote.totals.subtotal,
                shipping_cost=quote.totals.shipping_cost,
                discount=quote.totals.discount,
                total=quote.totals.total,
                coupon_code=quote.coupon_code,
                shipping_name=address.name,
                shipping_phone=address.phone,
                shipping_address_line1=address.address_line1,
                shipping_address_line2=address.address_line2,
                shipping_city=address.city,
                shipping_state=address.state,
                shipping_pincode=address.pincode,
                customer_note=data.customer_note,
            )
            self.db.add(order)
            await self.db.flush()

            for line in quote.lines:
                self.db.add(OrderItem(
                    order_id=order.id,
                    product_id=line.product_id,
                    product_name=line.product_name,
                    product_sku=line.product_sku,
                    price=line.price,
                    quantity=line.quantity,
                    unit=line.unit,
                    total=line.total,
                ))

            await self._reserve_stock(quote)

            if quote.coupon is not None:
                await self.coupons.consume(quote.coupon.coupon_id)

            self.db.add(OrderStatusHistory(
                order_id=order.id,
                from_status=None,
                to_status=OrderStatus.PENDING.value,
                changed_by=user_id,
                notes="Order placed",
            ))

            await self.db.commit()

        except ValidationFailed:
            await self.db.rollback()
            raise
        except IntegrityError as e:
            await self.db.rollback()
            if key:
                existing = await self._find_by_idempotency_key(user_id, key)
                if existing is not None:
                    logger.info(f"Concurrent duplicate for key {key}, returning order {existing.order_number}")
                    return OrderPlacement.from_order(existing, duplicate=True)
            logger.error(f"Database integrity error creating order: {e}")
            raise CommitFailed("Order creation failed: conflicting data, please retry")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error creating order: {e}")
            raise CommitFailed("Order creation failed: database error")

        logger.info(
            f"Order {order_number} placed by user {user_id}: "
            f"subtotal={quote.totals.subtotal} shipping={quote.totals.shipping_cost} "
            f"discount={quote.totals.discount} total={quote.totals.total}"
        )
        return OrderPlacement(
            order_id=order.id,
            order_number=order_number,
            totals=quote.totals,
            coupon_code=quote.coupon_code,
        )

    async def _reserve_stock(self, quote: OrderQuote) -> None:
        """Decrement tracked stock, one statement per product in id order."""
        per_product: Dict[uuid.UUID, Tuple[Decimal, bool, str]] = {}
        for line in quote.lines:
            if not line.track_quantity:
                continue
            quantity, _, _ = per_product.get(line.product_id, (Decimal("0"), False, ""))
            per_product[line.product_id] = (
                quantity + line.quantity, line.allow_backorder, line.product_name
            )

        for product_id in sorted(per_product, key=str):
            quantity, allow_backorder, name = per_product[product_id]
            try:
                await self.inventory.reserve_stock(product_id, quantity, allow_backorder)
            except ValidationFailed as e:
                raise ValidationFailed(
                    f"Insufficient stock for: {name}, it may have just sold out",
                    details=e.details,
                )

    # ==================== READS ====================

    async def get_order(
        self,
        order_id: uuid.UUID,
        user_id: Optional[str] = None,
        is_admin: bool = False,
    ) -> Optional[Order]:
        """Order with lines, history and cancellation request, if visible to the caller."""
        result = await self.db.execute(
            select(Order)
            .options(
                selectinload(Order.items),
                selectinload(Order.status_history),
                selectinload(Order.cancellation_request),
            )
            .where(Order.id == order_id)
        )
        order = result.scalar_one_or_none()
        if order is None:
            return None
        if not is_admin and order.user_id != user_id:
            return None
        return order

    async def get_order_by_number(self, order_number: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.order_number == order_number.strip().upper())
        )
        return result.scalar_one_or_none()

    async def list_user_orders(
        self,
        user_id: str,
        limit: int = 10,
        cursor: Optional[uuid.UUID] = None,
    ) -> Tuple[List[Order], Optional[uuid.UUID]]:
        """Newest first. Returns the page and the cursor for the next page."""
        query = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.user_id == user_id)
        )

        if cursor is not None:
            anchor = (await self.db.execute(
                select(Order.created_at, Order.id).where(
                    Order.id == cursor,
                    Order.user_id == user_id,
                )
            )).first()
            if anchor is not None:
                query = query.where(
                    or_(
                        Order.created_at < anchor.created_at,
                        and_(Order.created_at == anchor.created_at, Order.id < anchor.id),
                    )
                )

        query = query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit + 1)
        orders = list((await self.db.execute(query)).scalars().all())

        next_cursor = None
        if len(orders) > limit:
            orders = orders[:limit]
            next_cursor = orders[-1].id
        return orders, next_cursor

    async def count_user_orders(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(Order.id)).where(Order.user_id == user_id)
        )
        return result.scalar() or 0

    async def list_orders(
        self,
        status: Optional[str] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[Order], int]:
        """Admin order list, newest first."""
        query = select(Order).options(selectinload(Order.items))
        count_query = select(func.count(Order.id))

        if status:
            query = query.where(Order.status == status)
            count_query = count_query.where(Order.status == status)

        total = (await self.db.execute(count_query)).scalar() or 0

        query = query.order_by(Order.created_at.desc()).offset((page - 1) * size).limit(size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

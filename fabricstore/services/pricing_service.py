"""
Order pricing engine.

Turns a cart (product ids and quantities) into validated lines and
authoritative totals using only server-side state: catalog prices, stock,
store settings and the coupon resolver. Never writes.
"""

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from fabricstore.core.exceptions import ValidationFailed
from fabricstore.core.money import to_money, ZERO
from fabricstore.schemas.order import OrderItemInput
from fabricstore.services.coupon_service import CouponService, CouponQuote, normalize_coupon_code
from fabricstore.services.inventory_service import InventoryService, ProductSnapshot
from fabricstore.services.settings_service import StoreSettingsService, CheckoutSettings

logger = logging.getLogger(__name__)

# Quantities are stored as Numeric(10, 2)
MAX_QUANTITY_DIGITS = 8


@dataclass(frozen=True)
class PricedLine:
    """A cart line with catalog name, sku and price baked in."""
    product_id: uuid.UUID
    product_name: str
    product_sku: Optional[str]
    price: Decimal
    quantity: Decimal
    unit: str
    total: Decimal
    track_quantity: bool
    allow_backorder: bool


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    shipping_cost: Decimal
    discount: Decimal
    total: Decimal


@dataclass
class OrderQuote:
    lines: List[PricedLine]
    totals: OrderTotals
    settings: CheckoutSettings
    coupon: Optional[CouponQuote] = None

    @property
    def coupon_code(self) -> Optional[str]:
        return self.coupon.code if self.coupon else None


def _fmt_qty(value: Decimal) -> str:
    """2.50 -> 2.5, 3.00 -> 3"""
    normalized = value.normalize()
    if normalized == normalized.to_integral():
        return str(normalized.quantize(Decimal("1")))
    return str(normalized)


def _item_problem(item: OrderItemInput, product: Optional[ProductSnapshot]) -> Optional[str]:
    """Describe why a line cannot be ordered, or None when it is fine."""
    if product is None:
        return f"Product {item.product_id} is not available"

    quantity = item.quantity
    if not quantity.is_finite() or quantity <= 0:
        return f"{product.name}: quantity must be greater than 0"

    if quantity.adjusted() >= MAX_QUANTITY_DIGITS:
        return f"{product.name}: quantity is too large"

    if quantity != quantity.quantize(Decimal("0.01")):
        return f"{product.name}: quantity supports at most 2 decimal places"

    if quantity < product.min_order_quantity:
        return (
            f"{product.name}: minimum order quantity is "
            f"{_fmt_qty(product.min_order_quantity)} {product.unit}"
        )

    if product.max_order_quantity is not None and quantity > product.max_order_quantity:
        return (
            f"{product.name}: maximum order quantity is "
            f"{_fmt_qty(product.max_order_quantity)} {product.unit}"
        )

    step = product.quantity_step
    if step is not None and step > 0:
        if (quantity - product.min_order_quantity) % step != 0:
            return (
                f"{product.name}: quantity must be in steps of "
                f"{_fmt_qty(step)} {product.unit} from {_fmt_qty(product.min_order_quantity)}"
            )

    return None


class OrderPricingService:
    """Server-side pricing for a cart."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings_service = StoreSettingsService(db)
        self.inventory = InventoryService(db)
        self.coupons = CouponService(db)

    async def price_order(
        self,
        items: Sequence[OrderItemInput],
        coupon_code: Optional[str] = None,
        settings: Optional[CheckoutSettings] = None,
    ) -> OrderQuote:
        """
        Validate a cart and compute its totals.

        All invalid lines are reported together in one ValidationFailed, then
        all stock shortfalls together in another. The coupon is resolved
        against the subtotal computed here, never one supplied by a client.
        """
        if not items:
            raise ValidationFailed("Order must contain at least one item")

        if settings is None:
            settings = await self.settings_service.get_checkout_settings()
        snapshot = await self.inventory.get_snapshot(item.product_id for item in items)

        # Line validation
        problems: List[str] = []
        for item in items:
            problem = _item_problem(item, snapshot.get(item.product_id))
            if problem:
                problems.append(problem)
        if problems:
            raise ValidationFailed(
                f"Invalid items in order: {'; '.join(problems)}",
                details={"items": problems},
            )

        # Stock sufficiency, summing repeated products
        requested: Dict[uuid.UUID, Decimal] = defaultdict(lambda: Decimal("0"))
        for item in items:
            requested[item.product_id] += item.quantity

        shortages: List[str] = []
        for product_id, quantity in requested.items():
            product = snapshot[product_id]
            if product.enforces_stock and product.stock_quantity < quantity:
                shortages.append(
                    f"{product.name} (requested: {_fmt_qty(quantity)}, "
                    f"available: {_fmt_qty(product.stock_quantity)})"
                )
        if shortages:
            raise ValidationFailed(
                f"Insufficient stock for: {', '.join(shortages)}",
                details={"items": shortages},
            )

        # Lines and subtotal
        lines: List[PricedLine] = []
        for item in items:
            product = snapshot[item.product_id]
            lines.append(PricedLine(
                product_id=product.id,
                product_name=product.name,
                product_sku=product.sku,
                price=to_money(product.price),
                quantity=item.quantity,
                unit=product.unit or item.unit or "piece",
                total=to_money(product.price * item.quantity),
                track_quantity=product.track_quantity,
                allow_backorder=product.allow_backorder,
            ))

        subtotal = to_money(sum((line.total for line in lines), ZERO))

        if subtotal < settings.order_min_amount:
            raise ValidationFailed(
                f"Minimum order amount is ₹{to_money(settings.order_min_amount)}",
                details={
                    "subtotal": str(subtotal),
                    "order_min_amount": str(to_money(settings.order_min_amount)),
                },
            )

        if subtotal >= settings.shipping_free_threshold:
            shipping_cost = ZERO
        else:
            shipping_cost = to_money(settings.shipping_base_rate)

        coupon: Optional[CouponQuote] = None
        discount = ZERO
        if coupon_code and normalize_coupon_code(coupon_code):
            coupon = await self.coupons.resolve(coupon_code, subtotal)
            discount = coupon.discount

        total = to_money(subtotal + shipping_cost - discount)

        return OrderQuote(
            lines=lines,
            totals=OrderTotals(
                subtotal=subtotal,
                shipping_cost=shipping_cost,
                discount=discount,
                total=total,
            ),
            settings=settings,
            coupon=coupon,
        )

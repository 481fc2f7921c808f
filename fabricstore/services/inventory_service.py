"""
Inventory snapshot reader and stock mutations.

Reads are fresh per call. Stock is only mutated through single UPDATE
statements so concurrent orders serialize in the database, never in
application memory.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Optional

from sqlalchemy import select, update, case
from sqlalchemy.ext.asyncio import AsyncSession

from fabricstore.core.exceptions import ValidationFailed
from fabricstore.models.product import Product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductSnapshot:
    """Point-in-time view of a product used for pricing one order."""
    id: uuid.UUID
    name: str
    sku: Optional[str]
    price: Decimal
    stock_quantity: Decimal
    min_order_quantity: Decimal
    max_order_quantity: Optional[Decimal]
    quantity_step: Optional[Decimal]
    unit: str
    track_quantity: bool
    allow_backorder: bool

    @classmethod
    def from_product(cls, product: Product) -> "ProductSnapshot":
        return cls(
            id=product.id,
            name=product.name,
            sku=product.sku,
            price=Decimal(product.price),
            stock_quantity=Decimal(product.stock_quantity),
            min_order_quantity=(
                Decimal(product.min_order_quantity)
                if product.min_order_quantity is not None else Decimal("1")
            ),
            max_order_quantity=(
                Decimal(product.max_order_quantity)
                if product.max_order_quantity is not None else None
            ),
            quantity_step=(
                Decimal(product.quantity_step)
                if product.quantity_step is not None else None
            ),
            unit=product.unit,
            track_quantity=product.track_quantity,
            allow_backorder=product.allow_backorder,
        )

    @property
    def enforces_stock(self) -> bool:
        return self.track_quantity and not self.allow_backorder


class InventoryService:
    """Product snapshot reads and conditional stock updates."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_snapshot(self, product_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, ProductSnapshot]:
        """
        Load active products for the distinct ids given.

        Unknown and inactive ids are simply absent from the result.
        """
        ids = set(product_ids)
        if not ids:
            return {}

        result = await self.db.execute(
            select(Product).where(
                Product.id.in_(ids),
                Product.is_active == True,  # noqa: E712
            )
        )
        return {p.id: ProductSnapshot.from_product(p) for p in result.scalars().all()}

    async def reserve_stock(
        self,
        product_id: uuid.UUID,
        quantity: Decimal,
        allow_backorder: bool = False,
    ) -> None:
        """
        Decrement stock inside the caller's transaction.

        Without backorder the UPDATE only matches while enough stock
        remains; zero matched rows means another order got there first and
        the caller must roll back. With backorder the result is floored at 0.
        """
        if allow_backorder:
            stmt = (
                update(Product)
                .where(Product.id == product_id)
                .values(
                    stock_quantity=case(
                        (Product.stock_quantity >= quantity, Product.stock_quantity - quantity),
                        else_=Decimal("0"),
                    )
                )
                .execution_options(synchronize_session=False)
            )
        else:
            stmt = (
                update(Product)
                .where(
                    Product.id == product_id,
                    Product.stock_quantity >= quantity,
                )
                .values(stock_quantity=Product.stock_quantity - quantity)
                .execution_options(synchronize_session=False)
            )

        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            logger.warning(f"Stock conflict on product {product_id}: could not reserve {quantity}")
            raise ValidationFailed(
                "Insufficient stock for one or more items, please review your cart",
                details={"product_id": str(product_id), "requested": str(quantity)},
            )

    async def restore_stock(self, product_id: uuid.UUID, quantity: Decimal) -> None:
        """Add quantity back in one statement. Does not commit."""
        await self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=Product.stock_quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        logger.info(f"Restored {quantity} to stock of product {product_id}")

"""
Seed script for a local storefront database.

Creates a few fabric products, a welcome coupon and the checkout settings.
Existing rows (matched by sku, code or key) are left alone.

Usage:
    python -m scripts.seed_catalog
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select

from fabricstore.database import get_db_session, init_db
from fabricstore.models.coupon import Coupon, DiscountType
from fabricstore.models.product import Product
from fabricstore.services.settings_service import (
    StoreSettingsService,
    SHIPPING_FREE_THRESHOLD,
    SHIPPING_BASE_RATE,
    ORDER_MIN_AMOUNT,
    COD_ENABLED,
    ONLINE_PAYMENT_ENABLED,
)

logger = logging.getLogger("seed_catalog")


# ==================== PRODUCTS ====================
PRODUCTS = [
    {
        "name": "Cotton Cambric White",
        "sku": "FAB-CTN-001",
        "price": Decimal("180.00"),
        "stock_quantity": Decimal("250.00"),
        "min_order_quantity": Decimal("1.00"),
        "quantity_step": Decimal("0.50"),
        "unit": "meter",
    },
    {
        "name": "Pure Silk Banarasi",
        "sku": "FAB-SLK-014",
        "price": Decimal("1450.00"),
        "stock_quantity": Decimal("40.00"),
        "min_order_quantity": Decimal("2.00"),
        "max_order_quantity": Decimal("10.00"),
        "quantity_step": Decimal("0.50"),
        "unit": "meter",
    },
    {
        "name": "Rayon Printed Dupatta",
        "sku": "FAB-DUP-102",
        "price": Decimal("349.00"),
        "stock_quantity": Decimal("60.00"),
        "unit": "piece",
    },
    {
        "name": "Linen Blend Suit Set",
        "sku": "FAB-SET-007",
        "price": Decimal("2199.00"),
        "stock_quantity": Decimal("0.00"),
        "unit": "set",
        "allow_backorder": True,
    },
]

# ==================== COUPONS ====================
COUPONS = [
    {
        "code": "WELCOME10",
        "description": "10% off your first fabric order, up to ₹200",
        "discount_type": DiscountType.PERCENTAGE.value,
        "discount_value": Decimal("10"),
        "max_discount": Decimal("200"),
        "min_purchase": Decimal("999"),
        "usage_limit": 500,
    },
    {
        "code": "FLAT150",
        "description": "₹150 off orders above ₹1500",
        "discount_type": DiscountType.FIXED.value,
        "discount_value": Decimal("150"),
        "min_purchase": Decimal("1500"),
    },
]

# ==================== SETTINGS ====================
SETTINGS = {
    SHIPPING_FREE_THRESHOLD: "1000",
    SHIPPING_BASE_RATE: "99",
    ORDER_MIN_AMOUNT: "500",
    COD_ENABLED: "true",
    ONLINE_PAYMENT_ENABLED: "false",
}


async def seed():
    await init_db()
    now = datetime.now(timezone.utc)

    async with get_db_session() as session:
        for data in PRODUCTS:
            exists = await session.execute(select(Product.id).where(Product.sku == data["sku"]))
            if exists.first():
                logger.info(f"Product {data['sku']} exists, skipping")
                continue
            session.add(Product(**data))
            logger.info(f"Created product {data['sku']}")

        for data in COUPONS:
            exists = await session.execute(select(Coupon.id).where(Coupon.code == data["code"]))
            if exists.first():
                logger.info(f"Coupon {data['code']} exists, skipping")
                continue
            session.add(Coupon(
                start_date=now,
                end_date=now + timedelta(days=90),
                **data,
            ))
            logger.info(f"Created coupon {data['code']}")

    async with get_db_session() as session:
        service = StoreSettingsService(session)
        existing = await service.get_public_settings()
        for key, value in SETTINGS.items():
            if key not in existing:
                await service.set_value(key, value)
                logger.info(f"Set {key}={value}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    asyncio.run(seed())

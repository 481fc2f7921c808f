# Services module
from fabricstore.services.settings_service import StoreSettingsService, CheckoutSettings
from fabricstore.services.inventory_service import InventoryService, ProductSnapshot
from fabricstore.services.coupon_service import (
    CouponService,
    CouponQuote,
    normalize_coupon_code,
    calculate_discount,
)
from fabricstore.services.pricing_service import OrderPricingService, OrderQuote, OrderTotals, PricedLine
from fabricstore.services.order_service import OrderService, OrderPlacement
from fabricstore.services.order_lifecycle import OrderLifecycleService

__all__ = [
    "StoreSettingsService",
    "CheckoutSettings",
    "InventoryService",
    "ProductSnapshot",
    "CouponService",
    "CouponQuote",
    "normalize_coupon_code",
    "calculate_discount",
    # Ordering
    "OrderPricingService",
    "OrderQuote",
    "OrderTotals",
    "PricedLine",
    "OrderService",
    "OrderPlacement",
    "OrderLifecycleService",
]

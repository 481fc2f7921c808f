# Importing the models registers them with Base.metadata
from fabricstore.models.product import Product
from fabricstore.models.coupon import Coupon, DiscountType
from fabricstore.models.order import (
    Order,
    OrderItem,
    OrderStatusHistory,
    CancellationRequest,
    OrderStatus,
    PaymentStatus,
    PaymentMethod,
    CancellationRequestStatus,
)
from fabricstore.models.store_setting import StoreSetting

__all__ = [
    "Product",
    "Coupon",
    "DiscountType",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "CancellationRequest",
    "OrderStatus",
    "PaymentStatus",
    "PaymentMethod",
    "CancellationRequestStatus",
    "StoreSetting",
]

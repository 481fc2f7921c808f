from fastapi import APIRouter

from fabricstore.api.v1.endpoints import (
    orders,
    coupons,
    settings,
    admin,
)


api_router = APIRouter(prefix="/api/v1")

# Storefront
api_router.include_router(orders.router)
api_router.include_router(coupons.router)
api_router.include_router(settings.router)

# Back office
api_router.include_router(admin.router)

"""
API routers package.
"""
from storefront.routers.auth import router as auth_router
from storefront.routers.categories import router as categories_router
from storefront.routers.photos import router as photos_router
from storefront.routers.orders import router as orders_router
from storefront.routers.payments import router as payments_router

__all__ = [
    "auth_router",
    "categories_router",
    "photos_router",
    "orders_router",
    "payments_router",
]

"""
Pydantic schemas package.
All schemas are exported here for easy import.
"""
from storefront.schemas.auth import AdminLogin, Token, TokenPayload
from storefront.schemas.category import (
    CategoryCreate,
    CategoryDeleteResponse,
    CategoryListResponse,
)
from storefront.schemas.photo import (
    PhotoDeleteRequest,
    PhotoDeleteResponse,
    PhotoResponse,
    PhotoUpdate,
    PhotoUploadResponse,
    RegenerateResponse,
)
from storefront.schemas.order import (
    DeliveryResponse,
    OrderCreate,
    OrderResponse,
    OrderStatusResponse,
)
from storefront.schemas.payment import CheckoutRequest, CheckoutResponse, SignResponse

__all__ = [
    # Auth schemas
    "AdminLogin",
    "Token",
    "TokenPayload",
    # Category schemas
    "CategoryCreate",
    "CategoryDeleteResponse",
    "CategoryListResponse",
    # Photo schemas
    "PhotoDeleteRequest",
    "PhotoDeleteResponse",
    "PhotoResponse",
    "PhotoUpdate",
    "PhotoUploadResponse",
    "RegenerateResponse",
    # Order schemas
    "DeliveryResponse",
    "OrderCreate",
    "OrderResponse",
    "OrderStatusResponse",
    # Payment schemas
    "CheckoutRequest",
    "CheckoutResponse",
    "SignResponse",
]

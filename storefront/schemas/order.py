"""
Order-related Pydantic schemas for request/response validation.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, ConfigDict

from storefront.models.order import OrderStatus


class OrderCreate(BaseModel):
    """Schema for creating an order at checkout."""

    photo_ids: List[str] = Field(..., min_length=1)
    total_amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    buyer_email: EmailStr
    buyer_name: Optional[str] = Field(None, max_length=255)


class OrderResponse(BaseModel):
    """Schema for order response."""

    id: str
    photo_ids: List[str]
    total_amount: Decimal
    currency: str
    buyer_email: str
    buyer_name: Optional[str] = None
    status: OrderStatus
    provider_reference: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OrderStatusResponse(BaseModel):
    """Buyer-facing status poll."""

    id: str
    status: OrderStatus


class DeliveryItem(BaseModel):
    photo_id: str
    filename: str
    download_url: str


class DeliveryResponse(BaseModel):
    order_id: str
    photos: List[DeliveryItem]

"""
Orders router: checkout orders, status polling, cancellation and delivery.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database import get_db
from storefront.dependencies.auth import require_admin
from storefront.models.order import OrderStatus
from storefront.schemas.order import (
    DeliveryItem,
    DeliveryResponse,
    OrderCreate,
    OrderResponse,
    OrderStatusResponse,
)
from storefront.services.file_storage import get_storage_service
from storefront.services.order import OrderService
from storefront.utils.logger import log_info, log_warning

router = APIRouter(prefix="/api/orders", tags=["Orders"])


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an order",
)
async def create_order(
    data: OrderCreate,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """
    Create a pending order for the selected photos.

    - **photo_ids**: Photos to buy (at least one)
    - **total_amount**: Sum of the photo prices shown to the buyer
    - **buyer_email**: Where the photos are delivered
    """
    order = await OrderService(db).create_order(
        data.photo_ids,
        data.total_amount,
        data.buyer_email,
        buyer_name=data.buyer_name,
    )
    return OrderResponse.model_validate(order)


@router.get(
    "",
    response_model=List[OrderResponse],
    summary="List orders",
    dependencies=[Depends(require_admin)],
)
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
) -> List[OrderResponse]:
    orders = await OrderService(db).list_orders(status_filter)
    return [OrderResponse.model_validate(order) for order in orders]


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order by ID",
)
async def get_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    order = await OrderService(db).get_order(order_id)
    return OrderResponse.model_validate(order)


@router.get(
    "/{order_id}/status",
    response_model=OrderStatusResponse,
    summary="Poll order status",
)
async def get_order_status(
    order_id: str,
    db: AsyncSession = Depends(get_db),
) -> OrderStatusResponse:
    order_status = await OrderService(db).get_status(order_id)
    return OrderStatusResponse(id=order_id, status=order_status)


@router.patch(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel a pending order",
)
async def cancel_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """Cancelling an already cancelled order is a no-op."""
    result = await OrderService(db).mark_cancelled(order_id)
    if result.changed:
        log_info("Order cancelled by buyer", event="order", order_id=order_id)
    return OrderResponse.model_validate(result.order)


@router.get(
    "/{order_id}/photos",
    response_model=DeliveryResponse,
    summary="List purchased photos",
)
async def list_purchased_photos(
    order_id: str,
    db: AsyncSession = Depends(get_db),
) -> DeliveryResponse:
    """Available only once the order is completed."""
    photos = await OrderService(db).purchased_photos(order_id)
    return DeliveryResponse(
        order_id=order_id,
        photos=[
            DeliveryItem(
                photo_id=photo.id,
                filename=photo.original_filename,
                download_url=f"/api/orders/{order_id}/photos/{photo.id}/download",
            )
            for photo in photos
        ],
    )


@router.get(
    "/{order_id}/photos/{photo_id}/download",
    summary="Download a purchased original",
    response_class=FileResponse,
)
async def download_photo(
    order_id: str,
    photo_id: str,
    db: AsyncSession = Depends(get_db),
) -> FileResponse:
    photos = await OrderService(db).purchased_photos(order_id)
    photo = next((p for p in photos if p.id == photo_id), None)
    if photo is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Photo not part of this order")

    storage = get_storage_service()
    if not await storage.exists(photo.original_path):
        log_warning(
            "Purchased original missing",
            event="delivery",
            order_id=order_id,
            photo_id=photo_id,
        )
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    log_info("Original downloaded", event="delivery", order_id=order_id, photo_id=photo_id)
    return FileResponse(
        storage.resolve(photo.original_path),
        filename=photo.original_filename,
    )

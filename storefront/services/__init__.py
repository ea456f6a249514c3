"""
Services package.
Contains business logic: image processing, records, orders and payments.
"""
from storefront.services.file_storage import LocalFileStorage
from storefront.services.photo import PhotoRecordStore, PhotoService
from storefront.services.category import CategoryService
from storefront.services.order import OrderService, TransitionResult
from storefront.services.payment import NotificationHandler, PaymentBridge

__all__ = [
    "LocalFileStorage",
    "PhotoRecordStore",
    "PhotoService",
    "CategoryService",
    "OrderService",
    "TransitionResult",
    "NotificationHandler",
    "PaymentBridge",
]

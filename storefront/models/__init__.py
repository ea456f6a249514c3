"""
Database models package.
All models are exported here for easy import.
"""
from storefront.models.photo import Photo
from storefront.models.order import Order, OrderStatus
from storefront.models.category import Category

__all__ = ["Photo", "Order", "OrderStatus", "Category"]

"""
Category service: the ordered set of gallery categories.
"""
import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.exceptions import ConflictError, NotFoundError, ValidationError
from storefront.models.category import Category
from storefront.services.photo import PhotoService

logger = logging.getLogger("storefront.category")

MAX_CATEGORY_LENGTH = 255


class CategoryService:
    def __init__(self, db: AsyncSession, photo_service: Optional[PhotoService] = None):
        self.db = db
        self.photo_service = photo_service

    def _photos(self) -> PhotoService:
        if self.photo_service is None:
            self.photo_service = PhotoService(self.db)
        return self.photo_service

    async def list_categories(self) -> List[str]:
        result = await self.db.execute(select(Category.name).order_by(Category.position))
        return list(result.scalars().all())

    async def create_category(self, name: str) -> str:
        """
        Append a category.

        Raises:
            ValidationError: empty or too long name
            ConflictError: category already exists
        """
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError("Category name is required")
        if len(cleaned) > MAX_CATEGORY_LENGTH:
            raise ValidationError("Category name is too long")
        if await self.db.get(Category, cleaned) is not None:
            raise ConflictError(f"Category already exists: {cleaned}")

        result = await self.db.execute(select(func.max(Category.position)))
        position = (result.scalar_one_or_none() or 0) + 1
        self.db.add(Category(name=cleaned, position=position))
        await self.db.commit()

        logger.info("Category created", extra={"event": "category", "category": cleaned})
        return cleaned

    async def ensure_categories(self, names: List[str]) -> List[str]:
        """Create the categories that do not exist yet; returns the created ones."""
        existing = set(await self.list_categories())
        created = []
        for name in names:
            if name.strip() and name.strip() not in existing:
                created.append(await self.create_category(name))
                existing.add(created[-1])
        return created

    async def delete_category(self, name: str) -> int:
        """
        Delete a category and every photo filed under it, files included.

        Returns:
            Number of photos deleted
        """
        category = await self.db.get(Category, name)
        if category is None:
            raise NotFoundError(f"Category not found: {name}")

        deleted = await self._photos().delete_category_photos(name)
        await self.db.delete(category)
        await self.db.commit()

        logger.info(
            "Category deleted",
            extra={"event": "category", "category": name, "photos_deleted": deleted},
        )
        return deleted

"""
Category router.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database import get_db
from storefront.dependencies.auth import require_admin
from storefront.schemas.category import (
    CategoryCreate,
    CategoryDeleteResponse,
    CategoryListResponse,
)
from storefront.services.category import CategoryService

router = APIRouter(prefix="/api/categories", tags=["Categories"])


@router.get("", response_model=CategoryListResponse, summary="List categories")
async def list_categories(db: AsyncSession = Depends(get_db)) -> CategoryListResponse:
    categories = await CategoryService(db).list_categories()
    return CategoryListResponse(categories=categories)


@router.post(
    "",
    response_model=CategoryListResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a category",
    dependencies=[Depends(require_admin)],
)
async def create_category(
    data: CategoryCreate,
    db: AsyncSession = Depends(get_db),
) -> CategoryListResponse:
    service = CategoryService(db)
    await service.create_category(data.name)
    return CategoryListResponse(categories=await service.list_categories())


@router.delete(
    "/{name}",
    response_model=CategoryDeleteResponse,
    summary="Delete a category and its photos",
    dependencies=[Depends(require_admin)],
)
async def delete_category(
    name: str,
    db: AsyncSession = Depends(get_db),
) -> CategoryDeleteResponse:
    """
    Delete a category. Every photo filed under it is deleted too, files included.
    """
    deleted = await CategoryService(db).delete_category(name)
    return CategoryDeleteResponse(name=name, photos_deleted=deleted)

"""
Category schemas.
"""
from typing import List

from pydantic import BaseModel, Field


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class CategoryListResponse(BaseModel):
    categories: List[str]


class CategoryDeleteResponse(BaseModel):
    name: str
    photos_deleted: int

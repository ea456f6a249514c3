"""
Photo-related Pydantic schemas for request/response validation.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict, computed_field


class PhotoResponse(BaseModel):
    """Schema for photo response. Only the watermarked preview is public."""

    id: str
    filename: str
    original_filename: str
    price: Decimal
    category: str
    preview_path: str = Field(exclude=True)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def preview_url(self) -> str:
        return f"/uploads/{self.preview_path}"


class PhotoUpdate(BaseModel):
    """Schema for editing price and/or category."""

    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    category: Optional[str] = Field(None, min_length=1, max_length=255)


class PhotoDeleteRequest(BaseModel):
    """Schema for bulk photo deletion."""

    ids: List[str] = Field(..., min_length=1)


class PhotoDeleteResponse(BaseModel):
    deleted_ids: List[str]
    missing_ids: List[str] = []
    errors: List[str] = []


class UploadErrorItem(BaseModel):
    index: int
    filename: str
    error: str


class PhotoUploadResponse(BaseModel):
    """Schema for batch upload response."""

    category: str
    uploaded: List[PhotoResponse]
    errors: List[UploadErrorItem] = []
    message: str = "Photos uploaded successfully"


class RegenerateResponse(BaseModel):
    total: int
    succeeded: int
    skipped: int
    failed: int
    errors: List[str] = []

"""
Photos router for photo management.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Form, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import get_settings
from storefront.database import get_db
from storefront.dependencies.auth import require_admin
from storefront.schemas.photo import (
    PhotoDeleteRequest,
    PhotoDeleteResponse,
    PhotoResponse,
    PhotoUpdate,
    PhotoUploadResponse,
    RegenerateResponse,
    UploadErrorItem,
)
from storefront.services.photo import PhotoService, UploadedFile
from storefront.utils.logger import log_info, log_warning


router = APIRouter(prefix="/api/photos", tags=["Photos"])


async def _read_uploads(files: List[UploadFile]) -> List[UploadedFile]:
    settings = get_settings()
    if len(files) > settings.max_files_per_upload:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {settings.max_files_per_upload} files per upload",
        )

    uploads = []
    for file in files:
        content = await file.read()
        if len(content) > settings.max_upload_bytes:
            log_warning(
                "Upload rejected - file too large",
                event="photo_upload",
                source=file.filename,
                file_size=len(content),
            )
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"{file.filename}: file exceeds {settings.max_upload_bytes} bytes",
            )
        uploads.append(UploadedFile(filename=file.filename or "photo", content=content))
    return uploads


@router.get(
    "",
    response_model=List[PhotoResponse],
    summary="List photos",
)
async def get_photos(
    category: Optional[str] = Query(None, description="Only photos in this category"),
    db: AsyncSession = Depends(get_db),
) -> List[PhotoResponse]:
    """Newest first. Only preview URLs are exposed."""
    photos = await PhotoService(db).list_photos(category)
    return [PhotoResponse.model_validate(photo) for photo in photos]


@router.post(
    "/upload",
    response_model=PhotoUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload photos",
    dependencies=[Depends(require_admin)],
)
async def upload_photos(
    files: List[UploadFile] = File(..., description="Photo files to upload"),
    category: str = Form(..., description="Category for every uploaded photo"),
    db: AsyncSession = Depends(get_db),
) -> PhotoUploadResponse:
    """
    Upload one or more clean originals.

    Each photo gets a watermarked preview. Photos are processed in order; a
    photo that cannot be processed is reported in ``errors`` and the rest of
    the batch continues.
    """
    uploads = await _read_uploads(files)
    result = await PhotoService(db).upload_batch(uploads, category)

    errors = [UploadErrorItem(index=e.index, filename=e.filename, error=e.error) for e in result.errors]
    if not result.photos:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": "No photo could be processed",
                "errors": [e.model_dump() for e in errors],
            },
        )

    log_info(
        "Photo upload completed",
        event="photo_upload",
        category=result.category,
        uploaded=len(result.photos),
        failed=len(errors),
    )
    return PhotoUploadResponse(
        category=result.category,
        uploaded=[PhotoResponse.model_validate(photo) for photo in result.photos],
        errors=errors,
        message="Some photos failed" if result.partial else "Photos uploaded successfully",
    )


@router.post(
    "/re-watermark",
    response_model=RegenerateResponse,
    summary="Rebuild every preview",
    dependencies=[Depends(require_admin)],
)
async def regenerate_previews(db: AsyncSession = Depends(get_db)) -> RegenerateResponse:
    """Rebuild previews from the clean originals with the current watermark settings."""
    result = await PhotoService(db).regenerate_previews()
    return RegenerateResponse(
        total=result.total,
        succeeded=result.succeeded,
        skipped=result.skipped,
        failed=result.failed,
        errors=result.errors,
    )


@router.delete(
    "",
    response_model=PhotoDeleteResponse,
    summary="Delete photos",
    dependencies=[Depends(require_admin)],
)
async def delete_photos(
    data: PhotoDeleteRequest,
    db: AsyncSession = Depends(get_db),
) -> PhotoDeleteResponse:
    """Delete photos and both of their files."""
    result = await PhotoService(db).delete_photos(data.ids)
    return PhotoDeleteResponse(
        deleted_ids=result.deleted_ids,
        missing_ids=result.missing_ids,
        errors=result.errors,
    )


@router.get(
    "/{photo_id}",
    response_model=PhotoResponse,
    summary="Get photo by ID",
)
async def get_photo(
    photo_id: str,
    db: AsyncSession = Depends(get_db),
) -> PhotoResponse:
    photo = await PhotoService(db).get_photo(photo_id)
    return PhotoResponse.model_validate(photo)


@router.patch(
    "/{photo_id}",
    response_model=PhotoResponse,
    summary="Update photo price or category",
    dependencies=[Depends(require_admin)],
)
async def update_photo(
    photo_id: str,
    data: PhotoUpdate,
    db: AsyncSession = Depends(get_db),
) -> PhotoResponse:
    photo = await PhotoService(db).update_photo(
        photo_id,
        price=data.price,
        category=data.category,
    )
    return PhotoResponse.model_validate(photo)

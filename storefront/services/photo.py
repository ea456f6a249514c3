"""
Photo services.

PhotoRecordStore is the persistence contract for photo metadata.
PhotoService runs the ingest pipeline (original + preview + record, all or
nothing), edits, deletes and preview regeneration.
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import get_settings
from storefront.database import utcnow
from storefront.exceptions import (
    DuplicateIdError,
    ImageProcessingError,
    NotFoundError,
    ValidationError,
)
from storefront.models.category import Category
from storefront.models.photo import Photo
from storefront.services.file_storage import LocalFileStorage, get_storage_service
from storefront.services.watermark import PreviewOptions, render_preview, write_preview
from storefront.utils.filenames import safe_extension, sanitize_filename
from storefront.utils.prometheus_metrics import (
    photo_upload_file_size_bytes,
    photo_upload_total,
    watermark_duration_seconds,
    watermark_failures_total,
)

logger = logging.getLogger("storefront.photo")

PHOTO_ID_LENGTH = 8
MAX_ID_ATTEMPTS = 5
UPDATABLE_FIELDS = frozenset({"price", "category", "filename"})


@dataclass
class UploadedFile:
    """One file from a multipart upload."""

    filename: str
    content: bytes


@dataclass
class UploadError:
    index: int
    filename: str
    error: str


@dataclass
class BatchUploadResult:
    category: str
    photos: List[Photo] = field(default_factory=list)
    errors: List[UploadError] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.errors)


@dataclass
class DeleteResult:
    deleted_ids: List[str] = field(default_factory=list)
    missing_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class RegenerateResult:
    total: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


def parse_price(value: Any) -> Decimal:
    """Positive price rounded to cents, else ValidationError."""
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid price: {value!r}") from e
    if not price.is_finite() or price <= 0:
        raise ValidationError("Price must be a positive amount")
    return price.quantize(Decimal("0.01"))


class PhotoRecordStore:
    """
    Photo metadata persistence.
    Every method touches a single record, except the listing helpers.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, photo: Photo) -> str:
        """
        Insert a new photo record.

        Raises:
            DuplicateIdError: if a photo with the same id already exists
        """
        if await self.db.get(Photo, photo.id) is not None:
            raise DuplicateIdError(f"Photo id {photo.id} already exists")
        self.db.add(photo)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateIdError(f"Photo id {photo.id} already exists") from e
        return photo.id

    async def get(self, photo_id: str) -> Optional[Photo]:
        return await self.db.get(Photo, photo_id)

    async def get_many(self, photo_ids: Sequence[str]) -> List[Photo]:
        """Photos for ``photo_ids`` in the given order; unknown ids are skipped."""
        if not photo_ids:
            return []
        result = await self.db.execute(select(Photo).where(Photo.id.in_(list(photo_ids))))
        by_id = {photo.id: photo for photo in result.scalars().all()}
        return [by_id[pid] for pid in photo_ids if pid in by_id]

    async def list_all(self) -> List[Photo]:
        result = await self.db.execute(
            select(Photo).order_by(Photo.updated_at.desc(), Photo.sequence.desc())
        )
        return list(result.scalars().all())

    async def list_by_category(self, category: str) -> List[Photo]:
        result = await self.db.execute(
            select(Photo)
            .where(Photo.category == category)
            .order_by(Photo.updated_at.desc(), Photo.sequence.desc())
        )
        return list(result.scalars().all())

    async def update(self, photo_id: str, fields: Dict[str, Any]) -> int:
        """
        Apply a partial update; refreshes ``updated_at``.

        Returns:
            Number of affected records (0 or 1)
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown photo fields: {', '.join(sorted(unknown))}")
        result = await self.db.execute(
            update(Photo)
            .where(Photo.id == photo_id)
            .values(**fields, updated_at=utcnow())
        )
        return result.rowcount or 0

    async def delete(self, photo_id: str) -> int:
        result = await self.db.execute(delete(Photo).where(Photo.id == photo_id))
        return result.rowcount or 0

    async def count_all(self) -> int:
        """Total number of photos. Cosmetic only (file name numbering)."""
        result = await self.db.execute(select(func.count()).select_from(Photo))
        return int(result.scalar_one())


class PhotoService:
    """
    Service for handling photo operations.
    Originals and previews are stored on local disk; metadata in the database.
    """

    def __init__(
        self,
        db: AsyncSession,
        storage: Optional[LocalFileStorage] = None,
        options: Optional[PreviewOptions] = None,
        default_price: Optional[Decimal] = None,
    ):
        settings = get_settings()
        self.db = db
        self.store = PhotoRecordStore(db)
        self.storage = storage or get_storage_service()
        self.options = options or PreviewOptions.from_settings(settings)
        self.default_price = default_price or settings.default_photo_price

    async def category_exists(self, name: str) -> bool:
        result = await self.db.execute(select(Category.name).where(Category.name == name))
        return result.scalar_one_or_none() is not None

    async def _require_category(self, category: Optional[str]) -> str:
        name = (category or "").strip()
        if not name:
            raise ValidationError("Category is required")
        if not await self.category_exists(name):
            raise ValidationError(f"Unknown category: {name}")
        return name

    async def _new_photo_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = uuid.uuid4().hex[:PHOTO_ID_LENGTH]
            if await self.store.get(candidate) is None:
                return candidate
        raise DuplicateIdError("Could not allocate a unique photo id")

    async def _render(self, content: bytes, source: str) -> bytes:
        start = time.perf_counter()
        try:
            return await asyncio.to_thread(render_preview, content, self.options, source)
        except ImageProcessingError:
            watermark_failures_total.inc()
            raise
        finally:
            watermark_duration_seconds.labels(layout=self.options.layout.value).observe(
                time.perf_counter() - start
            )

    async def _ingest(self, upload: UploadedFile, category: str) -> Photo:
        """
        Create one photo: preview render, both files, record.

        Either everything is persisted or nothing is: on failure both files are
        removed and no record remains.
        """
        display_name = sanitize_filename(upload.filename)
        preview_bytes = await self._render(upload.content, display_name)

        photo_id = await self._new_photo_id()
        sequence = await self.store.count_all() + 1
        clean_name = f"{sequence}-{photo_id}-clean{safe_extension(upload.filename)}"
        preview_name = f"{sequence}-{photo_id}-watermark.jpg"
        clean_path = self.storage.clean_relpath(clean_name)
        preview_path = self.storage.preview_relpath(preview_name)

        try:
            await self.storage.write(clean_path, upload.content)
            await self.storage.write(preview_path, preview_bytes)
        except OSError as e:
            await self._discard_files(clean_path, preview_path)
            raise ImageProcessingError(f"cannot store files ({e})", source=display_name) from e

        photo = Photo(
            id=photo_id,
            sequence=sequence,
            filename=preview_name,
            original_filename=display_name,
            original_path=clean_path,
            preview_path=preview_path,
            price=self.default_price,
            category=category,
        )
        try:
            await self.store.create(photo)
            await self.db.commit()
        except (DuplicateIdError, SQLAlchemyError):
            await self.db.rollback()
            await self._discard_files(clean_path, preview_path)
            raise

        photo_upload_file_size_bytes.observe(len(upload.content))
        logger.info(
            "Photo uploaded",
            extra={"event": "photo", "photo_id": photo.id, "category": category, "sequence": sequence},
        )
        return photo

    async def _discard_files(self, *relpaths: str) -> None:
        for relpath in relpaths:
            try:
                await self.storage.delete(relpath)
            except OSError as e:
                logger.error(
                    "Cleanup of partial upload failed",
                    exc_info=e,
                    extra={"event": "photo", "path": relpath},
                )

    async def upload_photo(self, upload: UploadedFile, category: Optional[str]) -> Photo:
        """
        Upload a single photo. Any failure aborts the whole operation.

        Raises:
            ValidationError: unknown or missing category
            ImageProcessingError: the image could not be watermarked or stored
        """
        name = await self._require_category(category)
        try:
            photo = await self._ingest(upload, name)
        except Exception:
            photo_upload_total.labels(result="failure").inc()
            raise
        photo_upload_total.labels(result="success").inc()
        return photo

    async def upload_batch(self, uploads: Sequence[UploadedFile], category: Optional[str]) -> BatchUploadResult:
        """
        Upload several photos in submission order.

        A failing photo is logged and reported; the remaining photos are still
        processed.
        """
        if not uploads:
            raise ValidationError("At least one photo is required")
        name = await self._require_category(category)
        result = BatchUploadResult(category=name)

        for index, upload in enumerate(uploads, start=1):
            try:
                photo = await self._ingest(upload, name)
            except (ImageProcessingError, DuplicateIdError, SQLAlchemyError) as e:
                photo_upload_total.labels(result="failure").inc()
                message = getattr(e, "message", None) or str(e)
                result.errors.append(UploadError(index=index, filename=upload.filename, error=message))
                logger.error(
                    "Photo ingest failed, continuing with next photo",
                    extra={
                        "event": "photo",
                        "index": index,
                        "source": sanitize_filename(upload.filename),
                        "error_type": type(e).__name__,
                        "error": message[:200],
                    },
                )
                continue
            photo_upload_total.labels(result="success").inc()
            result.photos.append(photo)

        logger.info(
            "Batch upload finished",
            extra={
                "event": "photo",
                "category": name,
                "succeeded": len(result.photos),
                "failed": len(result.errors),
            },
        )
        return result

    async def get_photo(self, photo_id: str) -> Photo:
        photo = await self.store.get(photo_id)
        if photo is None:
            raise NotFoundError(f"Photo {photo_id} not found")
        return photo

    async def list_photos(self, category: Optional[str] = None) -> List[Photo]:
        if category:
            return await self.store.list_by_category(category)
        return await self.store.list_all()

    async def update_photo(
        self,
        photo_id: str,
        price: Optional[Any] = None,
        category: Optional[str] = None,
    ) -> Photo:
        """
        Edit price and/or category.

        Raises:
            ValidationError: nothing to update, bad price or unknown category
            NotFoundError: unknown photo
        """
        fields: Dict[str, Any] = {}
        if price is not None:
            fields["price"] = parse_price(price)
        if category is not None:
            fields["category"] = await self._require_category(category)
        if not fields:
            raise ValidationError("Nothing to update")

        if await self.store.update(photo_id, fields) == 0:
            raise NotFoundError(f"Photo {photo_id} not found")
        await self.db.commit()
        photo = await self.get_photo(photo_id)
        await self.db.refresh(photo)
        return photo

    async def delete_photo(self, photo: Photo) -> None:
        """
        Delete both files and the record. Files that are already gone are fine.
        """
        for relpath in (photo.preview_path, photo.original_path):
            try:
                await self.storage.delete(relpath)
            except OSError as e:
                # 파일 삭제 실패해도 DB에서는 삭제 (고아 파일 허용)
                logger.error(
                    "Photo file delete failed",
                    exc_info=e,
                    extra={"event": "photo", "photo_id": photo.id, "path": relpath},
                )
        await self.store.delete(photo.id)
        await self.db.commit()

    async def delete_photos(self, photo_ids: Iterable[str]) -> DeleteResult:
        ids = list(dict.fromkeys(pid for pid in photo_ids if pid))
        if not ids:
            raise ValidationError("Photo ids are required")

        photos = await self.store.get_many(ids)
        found = {photo.id for photo in photos}
        result = DeleteResult(missing_ids=[pid for pid in ids if pid not in found])
        if not photos:
            raise NotFoundError("No photos found with the provided ids")

        for photo in photos:
            try:
                await self.delete_photo(photo)
            except SQLAlchemyError as e:
                await self.db.rollback()
                result.errors.append(f"{photo.id}: {e}")
                logger.error(
                    "Photo delete failed",
                    exc_info=e,
                    extra={"event": "photo", "photo_id": photo.id},
                )
                continue
            result.deleted_ids.append(photo.id)

        logger.info(
            "Photos deleted",
            extra={"event": "photo", "deleted": len(result.deleted_ids), "failed": len(result.errors)},
        )
        return result

    async def delete_category_photos(self, category: str) -> int:
        photos = await self.store.list_by_category(category)
        for photo in photos:
            await self.delete_photo(photo)
        return len(photos)

    async def regenerate_previews(self) -> RegenerateResult:
        """
        Rebuild every preview from its clean original with the current options.
        """
        photos = await self.store.list_all()
        result = RegenerateResult(total=len(photos))

        for photo in photos:
            if not await self.storage.exists(photo.original_path):
                result.skipped += 1
                logger.warning(
                    "Clean original missing, preview not regenerated",
                    extra={"event": "photo", "photo_id": photo.id},
                )
                continue
            try:
                content = await self.storage.read(photo.original_path)
                await asyncio.to_thread(
                    write_preview,
                    content,
                    self.storage.resolve(photo.preview_path),
                    self.options,
                    photo.original_filename,
                )
            except (ImageProcessingError, OSError) as e:
                result.failed += 1
                result.errors.append(f"{photo.id}: {e}")
                logger.error(
                    "Preview regeneration failed",
                    extra={"event": "photo", "photo_id": photo.id, "error": str(e)[:200]},
                )
                continue
            result.succeeded += 1

        logger.info(
            "Previews regenerated",
            extra={
                "event": "photo",
                "total": result.total,
                "succeeded": result.succeeded,
                "skipped": result.skipped,
                "failed": result.failed,
            },
        )
        return result

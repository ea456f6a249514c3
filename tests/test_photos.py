"""Tests for photo ingest, edits and deletion."""

import asyncio
import re
from decimal import Decimal
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

from storefront.exceptions import (
    DuplicateIdError,
    ImageProcessingError,
    NotFoundError,
    ValidationError,
)
from storefront.services.category import CategoryService
from storefront.services.photo import PhotoService, UploadedFile
from storefront.services.watermark import PreviewOptions
from tests.helpers import make_image

CATEGORY = "Weddings"


def _run(session_factory, storage, action):
    async def scenario():
        async with session_factory() as db:
            categories = CategoryService(db)
            if CATEGORY not in await categories.list_categories():
                await categories.create_category(CATEGORY)
            service = PhotoService(db, storage=storage, options=PreviewOptions())
            return await action(service)

    return asyncio.run(scenario())


def _files(storage, directory: str) -> list[str]:
    return sorted(path.name for path in (storage.root / directory).iterdir())


def test_upload_photo_stores_original_preview_and_record(session_factory, storage) -> None:
    original = make_image(1600, 1200)

    photo = _run(
        session_factory,
        storage,
        lambda service: service.upload_photo(UploadedFile("Γάμος 01.JPG", original), CATEGORY),
    )

    assert re.fullmatch(r"[0-9a-f]{8}", photo.id)
    assert photo.original_path == f"clean/1-{photo.id}-clean.jpg"
    assert photo.preview_path == f"watermarked/1-{photo.id}-watermark.jpg"
    assert photo.original_filename == "Gamos_01.JPG"
    assert photo.price == Decimal("5.99")
    assert photo.category == CATEGORY
    assert storage.resolve(photo.original_path).read_bytes() == original
    preview = Image.open(BytesIO(storage.resolve(photo.preview_path).read_bytes()))
    assert preview.size == (1200, 900)


def test_upload_photo_requires_known_category(session_factory, storage) -> None:
    with pytest.raises(ValidationError):
        _run(
            session_factory,
            storage,
            lambda service: service.upload_photo(UploadedFile("a.jpg", make_image()), "Unknown"),
        )

    assert _files(storage, "clean") == []
    assert _files(storage, "watermarked") == []


def test_failed_upload_leaves_no_files_or_record(session_factory, storage) -> None:
    with pytest.raises(ImageProcessingError):
        _run(
            session_factory,
            storage,
            lambda service: service.upload_photo(UploadedFile("bad.jpg", b"not an image"), CATEGORY),
        )

    assert _files(storage, "clean") == []
    assert _files(storage, "watermarked") == []
    assert _run(session_factory, storage, lambda service: service.store.count_all()) == 0


def test_batch_upload_continues_after_a_corrupt_photo(session_factory, storage) -> None:
    uploads = [
        UploadedFile("first.jpg", make_image(800, 600)),
        UploadedFile("corrupt.jpg", b"\xff\xd8 truncated"),
        UploadedFile("third.png", make_image(640, 480, fmt="PNG")),
    ]

    result = _run(session_factory, storage, lambda service: service.upload_batch(uploads, CATEGORY))

    assert [photo.original_filename for photo in result.photos] == ["first.jpg", "third.png"]
    assert [photo.sequence for photo in result.photos] == [1, 2]
    assert len(result.errors) == 1
    assert result.errors[0].index == 2
    assert result.errors[0].filename == "corrupt.jpg"
    assert result.partial
    assert len(_files(storage, "clean")) == 2
    assert len(_files(storage, "watermarked")) == 2


def test_batch_upload_rejects_empty_batch(session_factory, storage) -> None:
    with pytest.raises(ValidationError):
        _run(session_factory, storage, lambda service: service.upload_batch([], CATEGORY))


def test_record_store_rejects_duplicate_id(session_factory, storage) -> None:
    photo = _run(
        session_factory,
        storage,
        lambda service: service.upload_photo(UploadedFile("a.jpg", make_image(400, 300)), CATEGORY),
    )

    async def duplicate(service: PhotoService):
        clone = await service.store.get(photo.id)
        service.db.expunge(clone)
        return await service.store.create(clone)

    with pytest.raises(DuplicateIdError):
        _run(session_factory, storage, duplicate)


def test_delete_photo_tolerates_missing_files(session_factory, storage) -> None:
    photo = _run(
        session_factory,
        storage,
        lambda service: service.upload_photo(UploadedFile("a.jpg", make_image(400, 300)), CATEGORY),
    )
    storage.resolve(photo.preview_path).unlink()

    async def delete(service: PhotoService):
        await service.delete_photo(await service.get_photo(photo.id))
        return await service.store.get(photo.id)

    assert _run(session_factory, storage, delete) is None
    assert _files(storage, "clean") == []


def test_delete_photos_reports_missing_ids(session_factory, storage) -> None:
    photo = _run(
        session_factory,
        storage,
        lambda service: service.upload_photo(UploadedFile("a.jpg", make_image(400, 300)), CATEGORY),
    )

    result = _run(session_factory, storage, lambda service: service.delete_photos([photo.id, "missing"]))

    assert result.deleted_ids == [photo.id]
    assert result.missing_ids == ["missing"]
    with pytest.raises(NotFoundError):
        _run(session_factory, storage, lambda service: service.delete_photos(["missing"]))


def test_update_photo_price_and_category(session_factory, storage) -> None:
    photo = _run(
        session_factory,
        storage,
        lambda service: service.upload_photo(UploadedFile("a.jpg", make_image(400, 300)), CATEGORY),
    )

    async def update(service: PhotoService):
        await CategoryService(service.db).create_category("Portraits")
        return await service.update_photo(photo.id, price="9.5", category="Portraits")

    updated = _run(session_factory, storage, update)

    assert updated.price == Decimal("9.50")
    assert updated.category == "Portraits"
    assert updated.updated_at >= photo.updated_at


@pytest.mark.parametrize(
    ("photo_id", "kwargs", "error"),
    [
        (None, {"price": "0"}, ValidationError),
        (None, {"category": "Nope"}, ValidationError),
        (None, {}, ValidationError),
        ("missing", {"price": "3"}, NotFoundError),
    ],
)
def test_update_photo_rejects_bad_input(session_factory, storage, photo_id, kwargs, error) -> None:
    photo = _run(
        session_factory,
        storage,
        lambda service: service.upload_photo(UploadedFile("a.jpg", make_image(400, 300)), CATEGORY),
    )

    with pytest.raises(error):
        _run(session_factory, storage, lambda service: service.update_photo(photo_id or photo.id, **kwargs))


def test_regenerate_previews_skips_missing_originals(session_factory, storage) -> None:
    uploads = [UploadedFile(f"{n}.jpg", make_image(400, 300)) for n in range(2)]
    batch = _run(session_factory, storage, lambda service: service.upload_batch(uploads, CATEGORY))
    storage.resolve(batch.photos[0].original_path).unlink()

    result = _run(session_factory, storage, lambda service: service.regenerate_previews())

    assert result.total == 2
    assert result.succeeded == 1
    assert result.skipped == 1
    assert result.failed == 0


def test_regenerate_keeps_preview_when_write_fails(session_factory, storage, monkeypatch) -> None:
    photo = _run(
        session_factory,
        storage,
        lambda service: service.upload_photo(UploadedFile("a.jpg", make_image(400, 300)), CATEGORY),
    )
    preview = storage.resolve(photo.preview_path)
    existing = preview.read_bytes()

    def disk_full(self, data):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(Path, "write_bytes", disk_full)

    result = _run(session_factory, storage, lambda service: service.regenerate_previews())

    assert result.failed == 1
    assert preview.read_bytes() == existing
    assert _files(storage, "watermarked") == [preview.name]

"""Tests for category management."""

import asyncio

import pytest

from storefront.exceptions import ConflictError, NotFoundError, ValidationError
from storefront.services.category import CategoryService
from storefront.services.photo import PhotoService, UploadedFile
from storefront.services.watermark import PreviewOptions
from tests.helpers import make_image


def _run(session_factory, storage, action):
    async def scenario():
        async with session_factory() as db:
            photos = PhotoService(db, storage=storage, options=PreviewOptions())
            return await action(CategoryService(db, photo_service=photos))

    return asyncio.run(scenario())


def test_categories_keep_creation_order(session_factory, storage) -> None:
    for name in ("Weddings", "Baptisms", "  Events  "):
        _run(session_factory, storage, lambda service: service.create_category(name))

    names = _run(session_factory, storage, lambda service: service.list_categories())

    assert names == ["Weddings", "Baptisms", "Events"]


def test_duplicate_category_is_a_conflict(session_factory, storage) -> None:
    _run(session_factory, storage, lambda service: service.create_category("Weddings"))

    with pytest.raises(ConflictError):
        _run(session_factory, storage, lambda service: service.create_category(" Weddings"))


@pytest.mark.parametrize("name", ["", "   ", "x" * 256])
def test_invalid_category_name_is_rejected(session_factory, storage, name) -> None:
    with pytest.raises(ValidationError):
        _run(session_factory, storage, lambda service: service.create_category(name))


def test_ensure_categories_creates_only_missing(session_factory, storage) -> None:
    _run(session_factory, storage, lambda service: service.create_category("Weddings"))

    created = _run(
        session_factory,
        storage,
        lambda service: service.ensure_categories(["Weddings", "Portraits", "", "Portraits"]),
    )

    assert created == ["Portraits"]
    assert _run(session_factory, storage, lambda service: service.list_categories()) == [
        "Weddings",
        "Portraits",
    ]


def test_delete_category_removes_its_photos_and_files(session_factory, storage) -> None:
    async def seed(service: CategoryService):
        await service.create_category("Weddings")
        await service.create_category("Portraits")
        photos = service.photo_service
        await photos.upload_photo(UploadedFile("a.jpg", make_image(400, 300)), "Weddings")
        await photos.upload_photo(UploadedFile("b.jpg", make_image(400, 300)), "Weddings")
        return await photos.upload_photo(UploadedFile("c.jpg", make_image(400, 300)), "Portraits")

    kept = _run(session_factory, storage, seed)

    deleted = _run(session_factory, storage, lambda service: service.delete_category("Weddings"))

    assert deleted == 2
    remaining = _run(session_factory, storage, lambda service: service.photo_service.list_photos())
    assert [photo.id for photo in remaining] == [kept.id]
    assert len(list((storage.root / "clean").iterdir())) == 1
    assert len(list((storage.root / "watermarked").iterdir())) == 1
    assert _run(session_factory, storage, lambda service: service.list_categories()) == ["Portraits"]


def test_delete_unknown_category_raises(session_factory, storage) -> None:
    with pytest.raises(NotFoundError):
        _run(session_factory, storage, lambda service: service.delete_category("Nope"))

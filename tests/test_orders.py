"""Tests for the order state machine."""

import asyncio
from decimal import Decimal

import pytest

from storefront.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from storefront.models.order import OrderStatus
from storefront.models.photo import Photo
from storefront.services.order import OrderService, TransitionResult
from storefront.services.photo import PhotoRecordStore


def _photo(photo_id: str, price: str) -> Photo:
    return Photo(
        id=photo_id,
        sequence=1,
        filename=f"1-{photo_id}-watermark.jpg",
        original_filename="photo.jpg",
        original_path=f"clean/1-{photo_id}-clean.jpg",
        preview_path=f"watermarked/1-{photo_id}-watermark.jpg",
        price=Decimal(price),
        category="Weddings",
    )


def _create(session_factory, photo_ids=("p1",), total="5.99", verify_total=False):
    async def scenario():
        async with session_factory() as db:
            service = OrderService(db, verify_total=verify_total)
            return await service.create_order(list(photo_ids), total, "buyer@example.com")

    return asyncio.run(scenario())


def _run(session_factory, action):
    async def scenario():
        async with session_factory() as db:
            return await action(OrderService(db, verify_total=False))

    return asyncio.run(scenario())


def test_create_order_starts_pending(session_factory) -> None:
    order = _create(session_factory, photo_ids=["p1", "p2", "p1"], total="11.98")

    assert order.status == OrderStatus.PENDING.value
    assert order.photo_ids == ["p1", "p2"]
    assert order.total_amount == Decimal("11.98")
    assert order.currency == "EUR"


@pytest.mark.parametrize(
    ("photo_ids", "total", "email"),
    [
        ([], "5.99", "buyer@example.com"),
        (["p1"], "0", "buyer@example.com"),
        (["p1"], "-3", "buyer@example.com"),
        (["p1"], "abc", "buyer@example.com"),
        (["p1"], "5.99", ""),
    ],
)
def test_create_order_validates_input(session_factory, photo_ids, total, email) -> None:
    async def scenario():
        async with session_factory() as db:
            await OrderService(db, verify_total=False).create_order(photo_ids, total, email)

    with pytest.raises(ValidationError):
        asyncio.run(scenario())


def test_create_order_verifies_total_against_photo_prices(session_factory) -> None:
    async def seed():
        async with session_factory() as db:
            store = PhotoRecordStore(db)
            await store.create(_photo("p1", "5.99"))
            await store.create(_photo("p2", "7.50"))
            await db.commit()

    asyncio.run(seed())

    order = _create(session_factory, photo_ids=["p1", "p2"], total="13.49", verify_total=True)
    assert order.total_amount == Decimal("13.49")

    with pytest.raises(ValidationError):
        _create(session_factory, photo_ids=["p1", "p2"], total="1.00", verify_total=True)
    with pytest.raises(ValidationError):
        _create(session_factory, photo_ids=["p1", "missing"], total="5.99", verify_total=True)


def test_get_status_of_unknown_order_raises(session_factory) -> None:
    with pytest.raises(NotFoundError):
        _run(session_factory, lambda service: service.get_status("nope"))


def test_mark_completed_is_idempotent(session_factory) -> None:
    order = _create(session_factory)

    first = _run(session_factory, lambda service: service.mark_completed(order.id))
    second = _run(session_factory, lambda service: service.mark_completed(order.id))

    assert first.changed is True
    assert second.changed is False
    assert second.order.status == OrderStatus.COMPLETED.value
    assert second.order.completed_at == first.order.completed_at


def test_completed_order_cannot_fail(session_factory) -> None:
    order = _create(session_factory)
    _run(session_factory, lambda service: service.mark_completed(order.id))

    with pytest.raises(InvalidTransitionError) as excinfo:
        _run(session_factory, lambda service: service.mark_failed(order.id))

    assert excinfo.value.current == OrderStatus.COMPLETED.value
    status = _run(session_factory, lambda service: service.get_status(order.id))
    assert status is OrderStatus.COMPLETED


def test_cancelled_order_cannot_complete(session_factory) -> None:
    order = _create(session_factory)
    result = _run(session_factory, lambda service: service.mark_cancelled(order.id))

    assert result.order.cancelled_at is not None
    with pytest.raises(InvalidTransitionError):
        _run(session_factory, lambda service: service.mark_completed(order.id))


def test_transition_back_to_pending_is_rejected(session_factory) -> None:
    order = _create(session_factory)

    with pytest.raises(ValidationError):
        _run(session_factory, lambda service: service.transition(order.id, OrderStatus.PENDING))


def test_transition_of_unknown_order_raises(session_factory) -> None:
    with pytest.raises(NotFoundError):
        _run(session_factory, lambda service: service.mark_failed("nope"))


def test_provider_reference_is_set_once(session_factory) -> None:
    order = _create(session_factory)

    first = _run(session_factory, lambda service: service.attach_provider_reference(order.id, "TRN-1"))
    again = _run(session_factory, lambda service: service.attach_provider_reference(order.id, "TRN-1"))

    assert first.provider_reference == "TRN-1"
    assert again.provider_reference == "TRN-1"
    with pytest.raises(ConflictError):
        _run(session_factory, lambda service: service.attach_provider_reference(order.id, "TRN-2"))
    current = _run(session_factory, lambda service: service.get_order(order.id))
    assert current.provider_reference == "TRN-1"


def test_list_orders_filters_by_status(session_factory) -> None:
    completed = _create(session_factory)
    pending = _create(session_factory)
    _run(session_factory, lambda service: service.mark_completed(completed.id))

    orders = _run(session_factory, lambda service: service.list_orders(OrderStatus.PENDING))

    assert [order.id for order in orders] == [pending.id]


def test_purchased_photos_require_completed_order(session_factory) -> None:
    order = _create(session_factory)

    with pytest.raises(ConflictError):
        _run(session_factory, lambda service: service.purchased_photos(order.id))


def _race(session_factory, first_action, second_action):
    async def scenario():
        async with session_factory() as first, session_factory() as second:
            return await asyncio.gather(
                first_action(OrderService(first, verify_total=False)),
                second_action(OrderService(second, verify_total=False)),
                return_exceptions=True,
            )

    return asyncio.run(scenario())


def test_concurrent_conflicting_transitions_apply_once(session_factory) -> None:
    order = _create(session_factory)

    results = _race(
        session_factory,
        lambda service: service.mark_completed(order.id),
        lambda service: service.mark_failed(order.id),
    )

    applied = [r for r in results if isinstance(r, TransitionResult)]
    rejected = [r for r in results if isinstance(r, InvalidTransitionError)]
    assert len(applied) == 1
    assert len(rejected) == 1
    assert applied[0].changed is True
    final = _run(session_factory, lambda service: service.get_status(order.id))
    assert final.value == applied[0].order.status
    assert rejected[0].current == final.value


def test_concurrent_duplicate_completions_apply_once(session_factory) -> None:
    order = _create(session_factory)

    results = _race(
        session_factory,
        lambda service: service.mark_completed(order.id),
        lambda service: service.mark_completed(order.id),
    )

    assert sorted(result.changed for result in results) == [False, True]
    status = _run(session_factory, lambda service: service.get_status(order.id))
    assert status is OrderStatus.COMPLETED


def test_concurrent_provider_references_keep_the_first(session_factory) -> None:
    order = _create(session_factory)

    results = _race(
        session_factory,
        lambda service: service.attach_provider_reference(order.id, "TRN-A"),
        lambda service: service.attach_provider_reference(order.id, "TRN-B"),
    )

    attached = [r for r in results if not isinstance(r, Exception)]
    conflicts = [r for r in results if isinstance(r, ConflictError)]
    assert len(attached) == 1
    assert len(conflicts) == 1
    current = _run(session_factory, lambda service: service.get_order(order.id))
    assert current.provider_reference == attached[0].provider_reference

"""Tests for provider notification handling."""

import asyncio

from storefront.config import Settings
from storefront.models.order import OrderStatus
from storefront.services.order import OrderService
from storefront.services.payment import NotificationHandler, PaymentBridge
from tests.helpers import PRIVATE_KEY_PEM


def _create_order(session_factory) -> str:
    async def scenario():
        async with session_factory() as db:
            order = await OrderService(db, verify_total=False).create_order(["p1"], "5.99", "buyer@example.com")
            return order.id

    return asyncio.run(scenario())


def _handle(session_factory, payload, bridge: PaymentBridge, settings: Settings | None = None):
    async def scenario():
        async with session_factory() as db:
            handler = NotificationHandler(db, bridge=bridge, settings=settings or Settings())
            return await handler.handle(payload)

    return asyncio.run(scenario())


def _order(session_factory, order_id: str):
    async def scenario():
        async with session_factory() as db:
            return await OrderService(db).get_order(order_id)

    return asyncio.run(scenario())


def _signed(bridge: PaymentBridge, **fields) -> dict:
    return {**fields, "signature": bridge.sign(fields)}


def test_valid_notification_completes_order(session_factory, bridge: PaymentBridge) -> None:
    order_id = _create_order(session_factory)
    payload = _signed(bridge, orderId=order_id, status="success", transactionId="TRN-9")

    outcome = _handle(session_factory, payload, bridge)

    assert outcome.applied
    order = _order(session_factory, order_id)
    assert order.status == OrderStatus.COMPLETED.value
    assert order.provider_reference == "TRN-9"


def test_replayed_notification_is_a_duplicate(session_factory, bridge: PaymentBridge) -> None:
    order_id = _create_order(session_factory)
    payload = _signed(bridge, orderId=order_id, status="success", transactionId="TRN-9")

    _handle(session_factory, payload, bridge)
    outcome = _handle(session_factory, payload, bridge)

    assert outcome.result == "duplicate"
    assert _order(session_factory, order_id).status == OrderStatus.COMPLETED.value


def test_failure_after_completion_is_rejected(session_factory, bridge: PaymentBridge) -> None:
    order_id = _create_order(session_factory)
    _handle(session_factory, _signed(bridge, orderId=order_id, status="success"), bridge)

    outcome = _handle(session_factory, _signed(bridge, orderId=order_id, status="declined"), bridge)

    assert outcome.result == "rejected"
    assert _order(session_factory, order_id).status == OrderStatus.COMPLETED.value


def test_invalid_signature_changes_nothing(session_factory, bridge: PaymentBridge) -> None:
    order_id = _create_order(session_factory)
    payload = _signed(bridge, orderId=order_id, status="success")
    payload["status"] = "paid"

    outcome = _handle(session_factory, payload, bridge)

    assert outcome.result == "invalid_signature"
    assert _order(session_factory, order_id).status == OrderStatus.PENDING.value


def test_unknown_order_and_status_are_ignored(session_factory, bridge: PaymentBridge) -> None:
    order_id = _create_order(session_factory)

    unknown_order = _handle(session_factory, _signed(bridge, orderId="missing", status="success"), bridge)
    unknown_status = _handle(session_factory, _signed(bridge, orderId=order_id, status="weird"), bridge)

    assert unknown_order.result == "ignored"
    assert unknown_status.result == "ignored"
    assert _order(session_factory, order_id).status == OrderStatus.PENDING.value


def test_provider_status_mapping(session_factory, bridge: PaymentBridge) -> None:
    failed_id = _create_order(session_factory)
    cancelled_id = _create_order(session_factory)

    _handle(session_factory, _signed(bridge, orderId=failed_id, status="DECLINED"), bridge)
    _handle(session_factory, _signed(bridge, orderId=cancelled_id, status="expired"), bridge)

    assert _order(session_factory, failed_id).status == OrderStatus.FAILED.value
    assert _order(session_factory, cancelled_id).status == OrderStatus.CANCELLED.value


def test_without_public_key_notifications_are_ignored_by_default(session_factory) -> None:
    order_id = _create_order(session_factory)
    signing_only = PaymentBridge(private_key_pem=PRIVATE_KEY_PEM)

    outcome = _handle(session_factory, {"orderId": order_id, "status": "success"}, signing_only)

    assert outcome.result == "ignored"
    assert _order(session_factory, order_id).status == OrderStatus.PENDING.value


def test_unverified_mode_applies_notifications_when_enabled(session_factory) -> None:
    order_id = _create_order(session_factory)
    settings = Settings(payment_allow_unverified_notify=True)

    outcome = _handle(session_factory, {"orderId": order_id, "status": "success"}, PaymentBridge(), settings)

    assert outcome.applied
    assert _order(session_factory, order_id).status == OrderStatus.COMPLETED.value


def test_json_notification_with_numbers_and_nulls_verifies(session_factory, bridge: PaymentBridge) -> None:
    order_id = _create_order(session_factory)
    signed_as_text = {"orderId": order_id, "status": "success", "amount": "12", "transactionId": "null"}
    payload = {
        "orderId": order_id,
        "status": "success",
        "amount": 12.0,
        "transactionId": None,
        "signature": bridge.sign(signed_as_text),
    }

    outcome = _handle(session_factory, payload, bridge)

    assert outcome.applied
    order = _order(session_factory, order_id)
    assert order.status == OrderStatus.COMPLETED.value
    assert order.provider_reference is None

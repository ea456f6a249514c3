"""
Order service: order creation and the payment state machine.

    pending ──► completed
       │──────► failed
       └──────► cancelled

Terminal states are final. Transitions use a compare-and-swap UPDATE
(``WHERE status = 'pending'``) so concurrent or redelivered requests cannot
move an order twice.
"""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import get_settings
from storefront.database import utcnow
from storefront.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from storefront.models.order import Order, OrderStatus
from storefront.models.photo import Photo
from storefront.services.photo import PhotoRecordStore
from storefront.utils.prometheus_metrics import order_created_total, order_transitions_total

logger = logging.getLogger("storefront.order")

CENT = Decimal("0.01")

_TIMESTAMP_FIELD = {
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.FAILED: "failed_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


@dataclass
class TransitionResult:
    """Outcome of a terminal transition. ``changed`` is False for a repeat."""

    order: Order
    changed: bool


def parse_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid total amount: {value!r}") from e
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Total amount must be greater than zero")
    return amount.quantize(CENT)


class OrderService:
    """
    Service for order operations.
    """

    def __init__(
        self,
        db: AsyncSession,
        photo_store: Optional[PhotoRecordStore] = None,
        verify_total: Optional[bool] = None,
        currency: Optional[str] = None,
    ):
        settings = get_settings()
        self.db = db
        self.photo_store = photo_store or PhotoRecordStore(db)
        self.verify_total = settings.order_verify_total if verify_total is None else verify_total
        self.currency = currency or settings.currency

    async def create_order(
        self,
        photo_ids: Iterable[str],
        total_amount: Any,
        buyer_email: str,
        buyer_name: Optional[str] = None,
    ) -> Order:
        """
        Create a pending order.

        Args:
            photo_ids: Photos being purchased; duplicates are dropped, order kept
            total_amount: Amount the buyer was shown
            buyer_email: Delivery contact
            buyer_name: Optional display name

        Raises:
            ValidationError: empty ids, non-positive amount, missing email,
                or (with total verification on) unknown photos / wrong total
        """
        ids = list(dict.fromkeys(str(pid).strip() for pid in (photo_ids or []) if str(pid).strip()))
        if not ids:
            raise ValidationError("At least one photo is required")
        amount = parse_amount(total_amount)
        email = (buyer_email or "").strip()
        if not email or "@" not in email:
            raise ValidationError("A valid buyer email is required")

        if self.verify_total:
            await self._check_total(ids, amount)

        order = Order(
            id=uuid.uuid4().hex,
            photo_ids=ids,
            total_amount=amount,
            currency=self.currency,
            buyer_email=email,
            buyer_name=(buyer_name or "").strip() or None,
            status=OrderStatus.PENDING.value,
        )
        self.db.add(order)
        await self.db.commit()

        order_created_total.inc()
        logger.info(
            "Order created",
            extra={
                "event": "order",
                "order_id": order.id,
                "photos": len(ids),
                "total": str(amount),
            },
        )
        return order

    async def _check_total(self, photo_ids: List[str], amount: Decimal) -> None:
        photos = await self.photo_store.get_many(photo_ids)
        known = {photo.id for photo in photos}
        missing = [pid for pid in photo_ids if pid not in known]
        if missing:
            raise ValidationError(f"Unknown photo ids: {', '.join(missing)}")
        expected = sum((Decimal(photo.price) for photo in photos), Decimal("0")).quantize(CENT)
        if expected != amount:
            logger.warning(
                "Order total mismatch",
                extra={"event": "order", "expected": str(expected), "received": str(amount)},
            )
            raise ValidationError(f"Total amount {amount} does not match photo prices ({expected})")

    async def _load(self, order_id: str) -> Order:
        order = await self.db.get(Order, order_id, populate_existing=True)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def get_order(self, order_id: str) -> Order:
        return await self._load(order_id)

    async def get_status(self, order_id: str) -> OrderStatus:
        order = await self._load(order_id)
        return OrderStatus(order.status)

    async def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        query = select(Order).order_by(Order.created_at.desc())
        if status is not None:
            query = query.where(Order.status == status.value)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def attach_provider_reference(self, order_id: str, reference: str) -> Order:
        """
        Record the provider's transaction reference. Set once.

        Raises:
            ValidationError: empty reference
            NotFoundError: unknown order
            ConflictError: a different reference is already attached
        """
        ref = (reference or "").strip()
        if not ref:
            raise ValidationError("Provider reference is required")

        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.provider_reference.is_(None))
            .values(provider_reference=ref, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        attached = result.rowcount == 1
        await self.db.commit()
        order = await self._load(order_id)
        if attached:
            logger.info(
                "Provider reference attached",
                extra={"event": "order", "order_id": order_id, "provider_reference": ref},
            )
            return order
        if order.provider_reference != ref:
            raise ConflictError(
                f"Order {order_id} already has provider reference {order.provider_reference}"
            )
        return order

    async def mark_completed(self, order_id: str) -> TransitionResult:
        return await self._transition(order_id, OrderStatus.COMPLETED)

    async def mark_failed(self, order_id: str) -> TransitionResult:
        return await self._transition(order_id, OrderStatus.FAILED)

    async def mark_cancelled(self, order_id: str) -> TransitionResult:
        return await self._transition(order_id, OrderStatus.CANCELLED)

    async def transition(self, order_id: str, target: OrderStatus) -> TransitionResult:
        if not target.is_terminal:
            raise ValidationError("Orders cannot be moved back to pending")
        return await self._transition(order_id, target)

    async def _transition(self, order_id: str, target: OrderStatus) -> TransitionResult:
        now = utcnow()
        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.PENDING.value)
            .values({"status": target.value, "updated_at": now, _TIMESTAMP_FIELD[target]: now})
            .execution_options(synchronize_session=False)
        )
        changed = result.rowcount == 1
        await self.db.commit()
        order = await self._load(order_id)

        if changed:
            order_transitions_total.labels(target=target.value, result="applied").inc()
            logger.info(
                "Order status changed",
                extra={"event": "order", "order_id": order_id, "status": target.value},
            )
            return TransitionResult(order=order, changed=True)

        if order.status == target.value:
            # 중복 알림: 부수효과 없음
            order_transitions_total.labels(target=target.value, result="duplicate").inc()
            logger.info(
                "Order already in requested status",
                extra={"event": "order", "order_id": order_id, "status": target.value},
            )
            return TransitionResult(order=order, changed=False)

        order_transitions_total.labels(target=target.value, result="rejected").inc()
        raise InvalidTransitionError(order_id, order.status, target.value)

    async def purchased_photos(self, order_id: str) -> List[Photo]:
        """
        Photos of a completed order, for delivery.

        Raises:
            NotFoundError: unknown order
            ConflictError: the order is not completed
        """
        order = await self._load(order_id)
        if order.status != OrderStatus.COMPLETED.value:
            raise ConflictError(f"Order {order_id} is {order.status}, photos are not available")
        return await self.photo_store.get_many(order.photo_ids)

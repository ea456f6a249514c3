"""
myPOS payment router.

- POST /api/orders/{id}/checkout: signed hosted-checkout form
- POST /mypos/sign: sign an arbitrary parameter set (admin)
- POST /mypos/notify: provider notification, always answered with "OK"
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database import get_db
from storefront.dependencies.auth import require_admin
from storefront.schemas.payment import CheckoutRequest, CheckoutResponse, SignResponse
from storefront.services.order import OrderService
from storefront.services.payment import NotificationHandler, get_payment_bridge

logger = logging.getLogger("storefront.payment")

router = APIRouter(tags=["Payments"])

NOTIFY_ACK = "OK"


@router.post(
    "/api/orders/{order_id}/checkout",
    response_model=CheckoutResponse,
    summary="Signed checkout form for a pending order",
)
async def create_checkout(
    order_id: str,
    data: Optional[CheckoutRequest] = None,
    db: AsyncSession = Depends(get_db),
) -> CheckoutResponse:
    """503 when payments are not configured."""
    bridge = get_payment_bridge()
    order = await OrderService(db).get_order(order_id)
    form = bridge.build_checkout(order, customer_name=data.customer_name if data else None)
    return CheckoutResponse(action_url=form.action_url, fields=form.fields)


@router.post(
    "/mypos/sign",
    response_model=SignResponse,
    summary="Sign payment parameters",
    dependencies=[Depends(require_admin)],
)
async def sign_params(params: Dict[str, Any] = Body(...)) -> SignResponse:
    return SignResponse(signature=get_payment_bridge().sign(params))


async def _notification_payload(request: Request) -> Dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        body = await request.json()
        return body if isinstance(body, dict) else {}
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


@router.post(
    "/mypos/notify",
    response_class=PlainTextResponse,
    summary="Payment provider notification",
)
async def payment_notify(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> PlainTextResponse:
    """
    Provider callback. The body is always ``OK`` with status 200 so the
    provider does not retry; rejected notifications are only logged.
    """
    try:
        payload = await _notification_payload(request)
        outcome = await NotificationHandler(db).handle(payload)
        logger.info(
            "Payment notification processed",
            extra={
                "event": "payment",
                "result": outcome.result,
                "order_id": outcome.order_id,
                "detail": outcome.detail,
            },
        )
    except Exception as e:
        # 재시도 폭주 방지: 어떤 경우에도 OK 응답
        logger.error(
            "Payment notification failed",
            exc_info=e,
            extra={"event": "payment", "error_type": type(e).__name__},
        )
    return PlainTextResponse(NOTIFY_ACK)

"""
myPOS payment bridge.

- canonical string: every parameter except ``signature``, sorted by key,
  joined as ``key=value`` with ``&`` and no escaping
- outbound: RSA-SHA256 (PKCS#1 v1.5) signature, base64
- inbound: the provider's notification is verified the same way against its
  certificate / public key before any order status changes
"""
import base64
import binascii
import logging
import math
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import Settings, get_settings
from storefront.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotConfiguredError,
    NotFoundError,
    SignatureVerificationFailure,
    ValidationError,
)
from storefront.models.order import Order, OrderStatus
from storefront.services.order import OrderService
from storefront.utils.prometheus_metrics import (
    payment_notifications_total,
    signature_verification_total,
)

logger = logging.getLogger("storefront.payment")

SIGNATURE_KEY = "signature"

# provider status -> order status
STATUS_MAP = {
    "success": OrderStatus.COMPLETED,
    "completed": OrderStatus.COMPLETED,
    "paid": OrderStatus.COMPLETED,
    "approved": OrderStatus.COMPLETED,
    "failed": OrderStatus.FAILED,
    "declined": OrderStatus.FAILED,
    "error": OrderStatus.FAILED,
    "rejected": OrderStatus.FAILED,
    "cancelled": OrderStatus.CANCELLED,
    "canceled": OrderStatus.CANCELLED,
    "expired": OrderStatus.CANCELLED,
}

ORDER_ID_KEYS = ("orderId", "OrderID", "IPC_OrderID")
STATUS_KEYS = ("status", "IPC_Status")
REFERENCE_KEYS = ("transactionId", "IPC_Trnref")


# Root collation order (as used by JavaScript's localeCompare) for ASCII
# whitespace and punctuation; digits follow, then letters.
_SYMBOL_ORDER = "\t\n\v\f\r _-,;:!?.'\"()[]{}@*/\\&#%`^+<=>|~$"
_SYMBOL_WEIGHT = {ch: i for i, ch in enumerate(_SYMBOL_ORDER)}
_DIGIT_BASE = len(_SYMBOL_ORDER)
_LETTER_BASE = _DIGIT_BASE + 10
_OTHER_BASE = 0x10000


def _primary_weight(base: str) -> int:
    if base in _SYMBOL_WEIGHT:
        return _SYMBOL_WEIGHT[base]
    if "0" <= base <= "9":
        return _DIGIT_BASE + ord(base) - ord("0")
    lower = base.lower()
    if "a" <= lower <= "z":
        return _LETTER_BASE + ord(lower) - ord("a")
    return _OTHER_BASE + ord(lower[0])


def _sort_key(key: str):
    """
    Collation key: characters first, then accents, then case (lowercase
    before uppercase). Control characters are ignored.
    """
    primary, secondary, tertiary = [], [], []
    for ch in key:
        if unicodedata.category(ch) == "Cc" and ch not in _SYMBOL_WEIGHT:
            continue
        base = unicodedata.normalize("NFKD", ch)[0]
        primary.append(_primary_weight(base))
        secondary.append(0 if base == ch else ord(ch))
        tertiary.append(1 if ch.isupper() else 0)
    return tuple(primary), tuple(secondary), tuple(tertiary)


def _as_text(value: Any) -> str:
    """String form of a parameter value, as a JavaScript template string renders it."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else _as_text(item) for item in value)
    if isinstance(value, dict):
        return "[object Object]"
    return str(value)


def canonicalize(params: Mapping[str, Any]) -> str:
    """Canonical signing string for ``params``."""
    entries = [(str(k), _as_text(v)) for k, v in params.items() if str(k).lower() != SIGNATURE_KEY]
    entries.sort(key=lambda kv: _sort_key(kv[0]))
    return "&".join(f"{k}={v}" for k, v in entries)


def _find(params: Mapping[str, Any], keys) -> Optional[str]:
    lowered = {str(k).lower(): v for k, v in params.items()}
    for key in keys:
        value = lowered.get(key.lower())
        if value is not None and _as_text(value).strip():
            return _as_text(value).strip()
    return None


def _load_private_key(pem: str) -> Optional[rsa.RSAPrivateKey]:
    if not pem:
        return None
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise NotConfiguredError(f"Invalid payment private key: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise NotConfiguredError("Payment private key must be an RSA key")
    return key


def _load_public_key(pem: str) -> Optional[rsa.RSAPublicKey]:
    """Accepts an X.509 certificate or a bare public key."""
    if not pem:
        return None
    data = pem.encode("utf-8")
    try:
        if b"BEGIN CERTIFICATE" in data:
            key = x509.load_pem_x509_certificate(data).public_key()
        else:
            key = serialization.load_pem_public_key(data)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise NotConfiguredError(f"Invalid payment public key: {e}") from e
    if not isinstance(key, rsa.RSAPublicKey):
        raise NotConfiguredError("Payment public key must be an RSA key")
    return key


@dataclass
class CheckoutForm:
    """Signed form the buyer's browser posts to the provider."""

    action_url: str
    fields: Dict[str, str] = field(default_factory=dict)


class PaymentBridge:
    """
    Signs outbound checkout requests and verifies inbound notifications.
    """

    def __init__(
        self,
        private_key_pem: str = "",
        public_key_pem: str = "",
        merchant_id: str = "",
        pos_id: str = "",
        checkout_url: str = "",
        language: str = "en",
        currency: str = "EUR",
        success_url: str = "",
        cancel_url: str = "",
        notify_url: str = "",
    ):
        self._private_key = _load_private_key(private_key_pem)
        self._public_key = _load_public_key(public_key_pem)
        self.merchant_id = merchant_id
        self.pos_id = pos_id
        self.checkout_url = checkout_url
        self.language = language
        self.currency = currency
        self.success_url = success_url
        self.cancel_url = cancel_url
        self.notify_url = notify_url

    @classmethod
    def from_settings(cls, settings: Settings) -> "PaymentBridge":
        return cls(
            private_key_pem=settings.mypos_private_key_pem,
            public_key_pem=settings.mypos_public_cert_pem,
            merchant_id=settings.mypos_merchant_id,
            pos_id=settings.mypos_pos_id,
            checkout_url=settings.mypos_checkout_url,
            language=settings.mypos_language,
            currency=settings.currency,
            success_url=settings.mypos_success_url,
            cancel_url=settings.mypos_cancel_url,
            notify_url=settings.mypos_notify_url,
        )

    canonicalize = staticmethod(canonicalize)

    @property
    def enabled(self) -> bool:
        """True when outbound signing is possible."""
        return self._private_key is not None

    @property
    def verification_enabled(self) -> bool:
        return self._public_key is not None

    def sign(self, params: Mapping[str, Any]) -> str:
        """
        Base64 RSA-SHA256 signature of the canonical string.

        Raises:
            NotConfiguredError: no private key provisioned
        """
        if self._private_key is None:
            raise NotConfiguredError("Payment signing is not configured")
        message = self.canonicalize(params).encode("utf-8")
        signature = self._private_key.sign(message, padding.PKCS1v15(), hashes.SHA256())
        return base64.b64encode(signature).decode("ascii")

    def verify(self, params: Mapping[str, Any], signature: Optional[str] = None) -> None:
        """
        Verify ``signature`` (or the ``signature`` field of ``params``).

        Raises:
            NotConfiguredError: no public key provisioned
            SignatureVerificationFailure: missing, malformed or wrong signature
        """
        if self._public_key is None:
            raise NotConfiguredError("Payment verification is not configured")
        if signature is None:
            signature = _find(params, (SIGNATURE_KEY,))
        if not signature:
            raise SignatureVerificationFailure("Missing signature")
        try:
            raw = base64.b64decode(signature, validate=True)
        except (binascii.Error, ValueError) as e:
            raise SignatureVerificationFailure("Malformed signature") from e

        message = self.canonicalize(params).encode("utf-8")
        try:
            self._public_key.verify(raw, message, padding.PKCS1v15(), hashes.SHA256())
        except InvalidSignature as e:
            raise SignatureVerificationFailure("Signature mismatch") from e

    def build_checkout(
        self,
        order: Order,
        customer_name: Optional[str] = None,
        description: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> CheckoutForm:
        """
        Signed parameter set for a pending order.

        Raises:
            NotConfiguredError: signing key or merchant id missing
            ValidationError: the order is no longer pending
        """
        if not self.enabled or not self.merchant_id:
            raise NotConfiguredError("Payment checkout is not configured")
        if order.status != OrderStatus.PENDING.value:
            raise ValidationError(f"Order {order.id} is {order.status}, checkout is only possible while pending")

        when = timestamp or datetime.now(timezone.utc)
        fields = {
            "merchantId": self.merchant_id,
            "posId": self.pos_id,
            "orderId": order.id,
            "amount": f"{Decimal(order.total_amount):.2f}",
            "currency": order.currency or self.currency,
            "language": self.language,
            "customerName": customer_name or order.buyer_name or "",
            "customerEmail": order.buyer_email,
            "successUrl": self.success_url,
            "cancelUrl": self.cancel_url,
            "notifyUrl": self.notify_url,
            "timestamp": when.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "description": description or f"Photo order {order.id} ({len(order.photo_ids)} photos)",
        }
        fields[SIGNATURE_KEY] = self.sign(fields)
        logger.info(
            "Checkout signed",
            extra={"event": "payment", "order_id": order.id, "amount": fields["amount"]},
        )
        return CheckoutForm(action_url=self.checkout_url, fields=fields)


_payment_bridge: Optional[PaymentBridge] = None


def get_payment_bridge() -> PaymentBridge:
    """Get or create the payment bridge singleton from settings."""
    global _payment_bridge
    if _payment_bridge is None:
        _payment_bridge = PaymentBridge.from_settings(get_settings())
    return _payment_bridge


@dataclass
class NotificationOutcome:
    """
    What a provider notification did.

    result: applied | duplicate | rejected | ignored | invalid_signature | error
    """

    result: str
    order_id: Optional[str] = None
    status: Optional[str] = None
    detail: str = ""

    @property
    def applied(self) -> bool:
        return self.result == "applied"


class NotificationHandler:
    """
    Processes the provider's asynchronous notification.

    Never raises: every outcome is logged and returned so the HTTP layer can
    always acknowledge with ``OK``.
    """

    def __init__(
        self,
        db: AsyncSession,
        bridge: Optional[PaymentBridge] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.bridge = bridge or get_payment_bridge()
        self.orders = OrderService(db)

    def _outcome(self, result: str, **kwargs) -> NotificationOutcome:
        payment_notifications_total.labels(result=result).inc()
        return NotificationOutcome(result=result, **kwargs)

    def _check_signature(self, payload: Dict[str, Any]) -> Optional[NotificationOutcome]:
        if self.bridge.verification_enabled:
            try:
                self.bridge.verify(payload)
            except SignatureVerificationFailure as e:
                signature_verification_total.labels(result="invalid").inc()
                logger.warning(
                    "Notification signature invalid",
                    extra={"event": "payment", "reason": e.message, "order_id": _find(payload, ORDER_ID_KEYS)},
                )
                return self._outcome("invalid_signature", detail=e.message)
            signature_verification_total.labels(result="valid").inc()
            return None

        signature_verification_total.labels(result="skipped").inc()
        if self.settings.payment_allow_unverified_notify:
            logger.warning(
                "Notification accepted WITHOUT signature verification (no public key configured)",
                extra={"event": "payment", "order_id": _find(payload, ORDER_ID_KEYS)},
            )
            return None
        logger.warning(
            "Notification ignored: no public key configured",
            extra={"event": "payment", "order_id": _find(payload, ORDER_ID_KEYS)},
        )
        return self._outcome("ignored", detail="verification not configured")

    async def handle(self, payload: Mapping[str, Any]) -> NotificationOutcome:
        params = {str(k): v for k, v in (payload or {}).items()}
        logger.info(
            "Payment notification received",
            extra={"event": "payment", "fields": sorted(k for k in params if k.lower() != SIGNATURE_KEY)},
        )

        rejected = self._check_signature(params)
        if rejected is not None:
            return rejected

        order_id = _find(params, ORDER_ID_KEYS)
        raw_status = (_find(params, STATUS_KEYS) or "").lower()
        if not order_id:
            logger.warning("Notification without order id", extra={"event": "payment"})
            return self._outcome("ignored", detail="missing order id")
        target = STATUS_MAP.get(raw_status)
        if target is None:
            logger.warning(
                "Notification with unknown status",
                extra={"event": "payment", "order_id": order_id, "provider_status": raw_status},
            )
            return self._outcome("ignored", order_id=order_id, detail=f"unknown status {raw_status!r}")

        try:
            reference = _find(params, REFERENCE_KEYS)
            if reference:
                await self.orders.attach_provider_reference(order_id, reference)
            result = await self.orders.transition(order_id, target)
        except NotFoundError as e:
            logger.warning("Notification for unknown order", extra={"event": "payment", "order_id": order_id})
            return self._outcome("ignored", order_id=order_id, detail=e.message)
        except InvalidTransitionError as e:
            logger.warning(
                "Notification rejected by order state",
                extra={"event": "payment", "order_id": order_id, "current": e.current, "target": e.target},
            )
            return self._outcome("rejected", order_id=order_id, status=e.current, detail=e.message)
        except (ConflictError, ValidationError) as e:
            logger.error(
                "Notification conflicts with order",
                extra={"event": "payment", "order_id": order_id, "error": e.message},
            )
            return self._outcome("error", order_id=order_id, detail=e.message)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "Notification could not be stored",
                exc_info=e,
                extra={"event": "payment", "order_id": order_id},
            )
            return self._outcome("error", order_id=order_id, detail=type(e).__name__)

        if result.changed:
            logger.info(
                "Order settled by provider",
                extra={"event": "payment", "order_id": order_id, "status": target.value},
            )
            return self._outcome("applied", order_id=order_id, status=target.value)
        return self._outcome("duplicate", order_id=order_id, status=target.value)

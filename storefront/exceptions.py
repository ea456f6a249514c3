"""
Domain error taxonomy.

Services raise these; the HTTP layer (main.py exception handlers) decides
the status code and the message shown to the client.
"""
from typing import Optional


class StorefrontError(Exception):
    """Base class for all storefront domain errors."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(StorefrontError):
    """Malformed input to a create/update operation."""


class NotFoundError(StorefrontError):
    """Unknown photo, order or category."""


class ConflictError(StorefrontError):
    """Request contradicts existing state (e.g. a different provider reference)."""


class DuplicateIdError(ConflictError):
    """A record with the same id already exists."""


class InvalidTransitionError(StorefrontError):
    """Illegal order status transition."""

    def __init__(self, order_id: str, current: str, target: str):
        super().__init__(f"Order {order_id} cannot move from {current} to {target}")
        self.order_id = order_id
        self.current = current
        self.target = target


class ImageProcessingError(StorefrontError):
    """Decode, geometry or encode failure in the watermark compositor."""

    def __init__(self, message: str, source: Optional[str] = None):
        text = f"{source}: {message}" if source else message
        super().__init__(text)
        self.source = source
        self.reason = message


class NotConfiguredError(StorefrontError):
    """Payment signing attempted without a provisioned private key."""


class SignatureVerificationFailure(StorefrontError):
    """Inbound provider notification failed the signature check."""

"""
Security utility functions for the admin key check and JWT token management.
"""
import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from storefront.config import get_settings
from storefront.schemas.auth import TokenPayload

ADMIN_SUBJECT = "admin"
ADMIN_SCOPE = "admin"


def verify_admin_key(candidate: str) -> bool:
    """
    Constant-time comparison against the configured admin key.
    Always False when no admin key is configured.
    """
    expected = get_settings().admin_api_key
    if not expected or not candidate:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


def create_access_token(
    subject: str = ADMIN_SUBJECT,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        subject: Token subject
        expires_delta: Optional expiration time delta

    Returns:
        Encoded JWT token string
    """
    settings = get_settings()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)

    to_encode = {
        "sub": subject,
        "exp": datetime.now(timezone.utc) + expires_delta,
        "scope": ADMIN_SCOPE,
    }
    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> Optional[TokenPayload]:
    """
    Decode and validate a JWT access token.

    Returns:
        TokenPayload if valid, None if invalid, expired or not an admin token
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    subject = payload.get("sub")
    exp = payload.get("exp")
    if subject is None or exp is None or payload.get("scope") != ADMIN_SCOPE:
        return None
    return TokenPayload(sub=subject, exp=datetime.fromtimestamp(exp, tz=timezone.utc))

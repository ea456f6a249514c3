"""
Admin authentication schemas.
"""
from datetime import datetime

from pydantic import BaseModel, Field


class AdminLogin(BaseModel):
    """Schema for exchanging the admin key for a token."""

    admin_key: str = Field(..., min_length=1)


class Token(BaseModel):
    """Schema for JWT token response."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class TokenPayload(BaseModel):
    """Schema for JWT token payload."""

    sub: str
    exp: datetime

"""
Payment schemas (myPOS checkout).
"""
from typing import Dict, Optional

from pydantic import BaseModel, Field


class CheckoutRequest(BaseModel):
    customer_name: Optional[str] = Field(None, max_length=255)


class CheckoutResponse(BaseModel):
    """Form the client posts to the provider's hosted checkout."""

    action_url: str
    fields: Dict[str, str]


class SignResponse(BaseModel):
    signature: str

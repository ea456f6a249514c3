"""
Admin authentication router.
"""
from datetime import timedelta

from fastapi import APIRouter, HTTPException, status

from storefront.config import get_settings
from storefront.schemas.auth import AdminLogin, Token
from storefront.utils.logger import log_info, log_warning
from storefront.utils.security import create_access_token, verify_admin_key

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/token",
    response_model=Token,
    summary="Exchange the admin key for an access token",
)
async def issue_token(login_data: AdminLogin) -> Token:
    """
    Exchange the configured admin key for a short-lived bearer token.

    - **admin_key**: The ADMIN_API_KEY configured on the server
    """
    settings = get_settings()
    if not verify_admin_key(login_data.admin_key):
        log_warning("Admin login failed", event="admin_login")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin key",
            headers={"WWW-Authenticate": "Bearer"},
        )

    expires = timedelta(minutes=settings.access_token_expire_minutes)
    token = create_access_token(expires_delta=expires)
    log_info("Admin login succeeded", event="admin_login")
    return Token(access_token=token, expires_in=int(expires.total_seconds()))

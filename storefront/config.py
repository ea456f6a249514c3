"""
Application configuration using Pydantic Settings.
Manages all environment variables and settings.
"""
import os
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, model_validator


class Environment(str, Enum):
    """Application environment modes."""
    DEV = "DEV"
    PRODUCTION = "PRODUCTION"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=None, case_sensitive=False)

    # Environment
    environment: Environment = Field(
        default=Environment.DEV,
        description="Application environment: DEV or PRODUCTION"
    )

    # Application
    app_name: str = Field(default="Event Photo Storefront")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    allowed_origin: str = Field(default="http://localhost:3000")

    @model_validator(mode='after')
    def set_debug_from_environment(self):
        """Set debug mode based on environment if not explicitly set via environment variable."""
        if 'DEBUG' not in os.environ:
            self.debug = self.environment == Environment.DEV
        return self

    @model_validator(mode='after')
    def reject_unverified_notify_in_production(self):
        """Unverified payment notifications are a development-only escape hatch."""
        if self.environment == Environment.PRODUCTION and self.payment_allow_unverified_notify:
            raise ValueError(
                "PAYMENT_ALLOW_UNVERIFIED_NOTIFY cannot be enabled in PRODUCTION"
            )
        return self

    @property
    def is_dev(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEV

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    # Database (빈 문자열이면 기본값 사용)
    database_url: str = Field(default="sqlite+aiosqlite:///./storefront.db")

    @field_validator("database_url", mode="before")
    @classmethod
    def coerce_empty_database_url(cls, v: str) -> str:
        if not v or not str(v).strip():
            return "sqlite+aiosqlite:///./storefront.db"
        return v

    # File storage: two parallel directories under one root
    upload_root: Path = Field(default=Path("./uploads"))
    clean_dir_name: str = Field(default="clean")
    preview_dir_name: str = Field(default="watermarked")
    max_upload_bytes: int = Field(default=50 * 1024 * 1024, description="Per-file upload limit")
    max_files_per_upload: int = Field(default=100)

    @property
    def clean_dir(self) -> Path:
        return self.upload_root / self.clean_dir_name

    @property
    def preview_dir(self) -> Path:
        return self.upload_root / self.preview_dir_name

    @property
    def initial_category_list(self) -> list[str]:
        return [name.strip() for name in self.initial_categories.split(",") if name.strip()]

    # Watermark / preview rendering
    preview_max_width: int = Field(default=1200, gt=0)
    preview_max_height: int = Field(default=1200, gt=0)
    preview_quality: int = Field(default=80, ge=1, le=95)
    watermark_layout: str = Field(default="banner", description="banner | diagonal")
    watermark_text: str = Field(default="WaterMarked Preview")
    watermark_subtext: str = Field(default="PREVIEW ONLY")

    @field_validator("watermark_layout", mode="before")
    @classmethod
    def normalize_layout(cls, v: str) -> str:
        value = str(v or "banner").strip().lower()
        if value not in {"banner", "diagonal"}:
            raise ValueError("watermark_layout must be 'banner' or 'diagonal'")
        return value

    # Catalogue
    initial_categories: str = Field(default="", description="Comma-separated categories created at startup if missing")
    default_photo_price: Decimal = Field(default=Decimal("5.99"), gt=0)
    currency: str = Field(default="EUR")
    order_verify_total: bool = Field(
        default=True,
        description="Recompute order totals from current photo prices and reject mismatches",
    )

    # Admin authentication (JWT issued in exchange for the admin key)
    admin_api_key: str = Field(default="", description="Admin key exchanged for a bearer token; empty disables admin login")
    jwt_secret_key: str = Field(default="jwt-secret-change-in-production")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60)

    # myPOS hosted checkout
    mypos_merchant_id: str = Field(default="")
    mypos_pos_id: str = Field(default="")
    mypos_checkout_url: str = Field(default="https://www.mypos.com/vmp/checkout")
    mypos_language: str = Field(default="en")
    mypos_private_key_pem: str = Field(default="", description="PEM private key used to sign checkout requests")
    mypos_public_cert_pem: str = Field(default="", description="PEM certificate or public key used to verify notifications")
    mypos_success_url: str = Field(default="http://localhost:3000/payment/success")
    mypos_cancel_url: str = Field(default="http://localhost:3000/payment/cancel")
    mypos_notify_url: str = Field(default="http://localhost:5000/mypos/notify")
    payment_allow_unverified_notify: bool = Field(
        default=False,
        description="Accept notifications without signature check when no public key is configured (DEV only)",
    )

    @field_validator("mypos_private_key_pem", "mypos_public_cert_pem", mode="before")
    @classmethod
    def unescape_pem(cls, v: str) -> str:
        # .env files usually carry PEM blocks with literal "\n"
        return str(v or "").replace("\\n", "\n").strip()

    # Logging
    log_dir: str = Field(default="", description="NDJSON log directory; empty disables file logging")
    instance_ip: str = Field(default="", description="서버 사설 IP (비우면 hostname)")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Using lru_cache to avoid re-reading the environment on every request.
    """
    return Settings()

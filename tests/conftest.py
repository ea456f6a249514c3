"""Shared test fixtures."""

import asyncio
import os
import tempfile
from pathlib import Path

from tests.helpers import ADMIN_KEY, MERCHANT_ID, PRIVATE_KEY_PEM, PUBLIC_KEY_PEM

_TMP = Path(tempfile.mkdtemp(prefix="storefront-tests-"))

# The application reads its settings once, at import time
os.environ["ENVIRONMENT"] = "DEV"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP / 'app.db'}"
os.environ["UPLOAD_ROOT"] = str(_TMP / "uploads")
os.environ["ADMIN_API_KEY"] = ADMIN_KEY
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["MYPOS_MERCHANT_ID"] = MERCHANT_ID
os.environ["MYPOS_POS_ID"] = "1"
os.environ["MYPOS_PRIVATE_KEY_PEM"] = PRIVATE_KEY_PEM
os.environ["MYPOS_PUBLIC_CERT_PEM"] = PUBLIC_KEY_PEM
os.environ["PAYMENT_ALLOW_UNVERIFIED_NOTIFY"] = "false"
os.environ["LOG_DIR"] = ""

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

import storefront.models  # noqa: E402,F401
from storefront.database import Base  # noqa: E402
from storefront.services.file_storage import LocalFileStorage  # noqa: E402
from storefront.services.payment import PaymentBridge  # noqa: E402


@pytest.fixture
def bridge() -> PaymentBridge:
    return PaymentBridge(
        private_key_pem=PRIVATE_KEY_PEM,
        public_key_pem=PUBLIC_KEY_PEM,
        merchant_id=MERCHANT_ID,
        pos_id="1",
        checkout_url="https://checkout.example/vmp",
        success_url="https://shop.example/success",
        cancel_url="https://shop.example/cancel",
        notify_url="https://shop.example/mypos/notify",
    )


@pytest.fixture
def session_factory(tmp_path: Path):
    """Sessions bound to a fresh SQLite database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)

    async def create_tables() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_tables())
    yield async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    asyncio.run(engine.dispose())


@pytest.fixture
def storage(tmp_path: Path) -> LocalFileStorage:
    store = LocalFileStorage(tmp_path / "uploads")
    store.ensure_directories()
    return store

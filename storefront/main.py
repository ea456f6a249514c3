"""
FastAPI Event Photo Storefront.

Main application entry point that configures:
- CORS middleware
- API routers and the read-only preview directory
- Database lifecycle
- Logging system
- Exception handlers (domain errors → HTTP status)
- Prometheus metrics
- Graceful shutdown
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from storefront.config import get_settings
from storefront.database import init_db, close_db, get_db_context
from storefront.exceptions import (
    ConflictError,
    ImageProcessingError,
    InvalidTransitionError,
    NotConfiguredError,
    NotFoundError,
    SignatureVerificationFailure,
    StorefrontError,
    ValidationError,
)
from storefront.middlewares.logging_middleware import LoggingMiddleware
from storefront.routers import (
    auth_router,
    categories_router,
    photos_router,
    orders_router,
    payments_router,
)
from storefront.routers.health import router as health_router
from storefront.services.category import CategoryService
from storefront.services.file_storage import get_storage_service
from storefront.services.payment import get_payment_bridge
from storefront.utils.logger import setup_logging, get_request_id, log_error, log_info, log_warning
from storefront.utils.prometheus_metrics import (
    exceptions_total,
    ready,
    setup_prometheus,
)

settings = get_settings()
logger = logging.getLogger("storefront")

# Python logging 설정
setup_logging()

SHUTDOWN_WAIT_SECONDS = 30.0

# 진행 중인 요청 추적 (Graceful shutdown용)
_in_flight_requests = 0


def get_in_flight_requests() -> int:
    """현재 진행 중인 요청 수 반환."""
    return _in_flight_requests


def _check_payment_configuration() -> None:
    try:
        bridge = get_payment_bridge()
    except NotConfiguredError as e:
        log_error("Payment keys could not be loaded, payments disabled", event="lifecycle", error_message=e.message)
        return
    if not bridge.enabled:
        log_warning("Payment signing key not configured, checkout disabled", event="lifecycle")
    if not bridge.verification_enabled:
        if settings.payment_allow_unverified_notify:
            log_warning(
                "Payment notifications will be applied WITHOUT signature verification",
                event="lifecycle",
            )
        else:
            log_warning(
                "Payment public key not configured, notifications will be acknowledged but ignored",
                event="lifecycle",
            )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan.

    Startup: upload directories, tables, initial categories, payment check.
    Shutdown: readiness off, wait for in-flight requests, close the database.
    """
    get_storage_service().ensure_directories()
    await init_db()
    if settings.initial_category_list:
        async with get_db_context() as db:
            created = await CategoryService(db).ensure_categories(settings.initial_category_list)
        if created:
            log_info("Initial categories created", event="lifecycle", categories=created)
    _check_payment_configuration()

    ready.set(1)
    log_info(
        "Application startup completed",
        event="lifecycle",
        version=settings.app_version,
        environment=settings.environment.value,
    )

    yield

    # Health check 즉시 실패 (로드밸런서가 새 요청 차단)
    ready.set(0)
    log_info("Application shutdown initiated", event="lifecycle")

    start_wait = time.monotonic()
    while get_in_flight_requests() > 0:
        if time.monotonic() - start_wait >= SHUTDOWN_WAIT_SECONDS:
            log_warning(
                "Shutdown timeout reached",
                event="lifecycle",
                in_flight=get_in_flight_requests(),
            )
            break
        await asyncio.sleep(0.5)

    await close_db()
    log_info("Graceful shutdown completed", event="lifecycle")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
## Event Photo Storefront

- **Photos**: admins upload clean originals; buyers browse watermarked previews
- **Orders**: pending → completed / failed / cancelled
- **Payments**: myPOS hosted checkout with signed requests and verified notifications

Admin endpoints require a bearer token from `/auth/token`.
    """,
    openapi_tags=[
        {"name": "Authentication", "description": "Admin token"},
        {"name": "Categories", "description": "Gallery categories"},
        {"name": "Photos", "description": "Photo upload and management"},
        {"name": "Orders", "description": "Orders and delivery"},
        {"name": "Payments", "description": "myPOS checkout and notifications"},
    ],
    lifespan=lifespan,
)

# Prometheus: FastAPI metrics at /metrics
setup_prometheus(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.allowed_origin] if settings.is_production else ["*"],
    allow_credentials=settings.is_production,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add structured logging middleware
app.add_middleware(LoggingMiddleware)


@app.middleware("http")
async def track_in_flight_requests(request: Request, call_next):
    global _in_flight_requests
    _in_flight_requests += 1
    try:
        return await call_next(request)
    finally:
        _in_flight_requests -= 1


_ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ImageProcessingError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (NotConfiguredError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (SignatureVerificationFailure, status.HTTP_400_BAD_REQUEST),
)


@app.exception_handler(StorefrontError)
async def storefront_exception_handler(request: Request, exc: StorefrontError):
    """Domain errors raised by services, mapped to their HTTP status."""
    status_code = next(
        (code for error_type, code in _ERROR_STATUS if isinstance(exc, error_type)),
        status.HTTP_400_BAD_REQUEST,
    )
    content = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, InvalidTransitionError):
        content["current_status"] = exc.current
    return JSONResponse(status_code=status_code, content=content)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Unhandled exception handler with structured logging.

    - ERROR 로그 남김
    - 500 응답 반환 (Request ID 포함, 장애 추적용)
    """
    exceptions_total.inc()
    rid = get_request_id()

    log_error(
        "Unhandled exception occurred",
        error_type=type(exc).__name__,
        error_message=str(exc),
        error_code="INTERNAL_SERVER_ERROR",
        http_method=request.method,
        http_path=request.url.path,
        request_id=rid,
        event="exception",
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "request_id": rid,
        },
    )


# Include routers
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(categories_router)
app.include_router(photos_router)
app.include_router(orders_router)
app.include_router(payments_router)

# Watermarked previews are public; clean originals are never served statically
app.mount(
    f"/uploads/{settings.preview_dir_name}",
    StaticFiles(directory=settings.preview_dir, check_dir=False),
    name="previews",
)


# Root endpoint
@app.get(
    "/",
    tags=["Root"],
    summary="API information",
)
async def root():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }

"""
Prometheus metrics.

- FastAPI: request count, latency (Instrumentator)
- HA: ready gauge (1=up, 0=shutting down)
- Stability: exceptions_total, db_errors_total
- Business: uploads, watermark rendering, order transitions, payment notifications
"""
import logging

from prometheus_client import REGISTRY, Counter, Gauge, Histogram
from prometheus_fastapi_instrumentator import Instrumentator

from storefront.config import get_settings

logger = logging.getLogger(__name__)

# --- Stability ---
exceptions_total = Counter(
    "storefront_exceptions_total",
    "Unhandled exceptions caught by the global handler",
    registry=REGISTRY,
)

db_errors_total = Counter(
    "storefront_db_errors_total",
    "Database session errors (rolled back)",
    registry=REGISTRY,
)

# --- HA ---
ready = Gauge(
    "storefront_ready",
    "1 when the application accepts traffic, 0 while starting or shutting down",
    registry=REGISTRY,
)

# --- Photos ---
photo_upload_total = Counter(
    "storefront_photo_upload_total",
    "Photo ingest attempts",
    ["result"],  # success | failure
    registry=REGISTRY,
)

photo_upload_file_size_bytes = Histogram(
    "storefront_photo_upload_file_size_bytes",
    "Uploaded original size in bytes",
    buckets=(102400, 512000, 1024000, 5120000, 10240000, 26214400, 52428800),
    registry=REGISTRY,
)

watermark_duration_seconds = Histogram(
    "storefront_watermark_duration_seconds",
    "Time spent rendering one watermarked preview",
    ["layout"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

watermark_failures_total = Counter(
    "storefront_watermark_failures_total",
    "Preview renders that raised ImageProcessingError",
    registry=REGISTRY,
)

# --- Orders / payments ---
order_created_total = Counter(
    "storefront_order_created_total",
    "Orders created in pending state",
    registry=REGISTRY,
)

order_transitions_total = Counter(
    "storefront_order_transitions_total",
    "Order status transitions",
    ["target", "result"],  # result: applied | duplicate | rejected
    registry=REGISTRY,
)

payment_notifications_total = Counter(
    "storefront_payment_notifications_total",
    "Provider notifications received",
    ["result"],  # applied | duplicate | rejected | ignored | invalid_signature | error
    registry=REGISTRY,
)

signature_verification_total = Counter(
    "storefront_signature_verification_total",
    "Notification signature checks",
    ["result"],  # valid | invalid | skipped
    registry=REGISTRY,
)


def setup_prometheus(app) -> None:
    """
    Register app identity and expose /metrics.
    """
    settings = get_settings()
    app_info = Gauge(
        "storefront_app_info",
        "Application identity (labels only, value is 1)",
        ["app", "version", "environment"],
        registry=REGISTRY,
    )
    app_info.labels(
        app=settings.app_name,
        version=settings.app_version,
        environment=settings.environment.value,
    ).set(1)

    # status 라벨을 2xx 대신 구체 코드로 노출
    Instrumentator(should_group_status_codes=False).instrument(app).expose(
        app, endpoint="/metrics"
    )

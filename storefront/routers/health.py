"""
Health Check 라우터.

애플리케이션의 상태를 확인하는 엔드포인트를 제공합니다.
"""
import asyncio
import logging
import time
from typing import Dict, Any

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import text

from storefront.config import get_settings
from storefront.database import engine
from storefront.exceptions import NotConfiguredError
from storefront.services.file_storage import get_storage_service
from storefront.services.payment import get_payment_bridge
from storefront.utils.prometheus_metrics import (
    REGISTRY,
    Gauge,
    ready,
)

logger = logging.getLogger("storefront.health")
router = APIRouter(prefix="/health", tags=["Health"])

# Health check 상태 메트릭
health_check_status = Gauge(
    "storefront_health_check_status",
    "Health check status (1=healthy, 0=unhealthy)",
    ["check_type"],
    registry=REGISTRY,
)


async def _check_db() -> None:
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))


def _payment_flags() -> Dict[str, Any]:
    try:
        bridge = get_payment_bridge()
    except NotConfiguredError as e:
        return {"enabled": False, "verification_enabled": False, "error": e.message}
    return {
        "enabled": bridge.enabled,
        "verification_enabled": bridge.verification_enabled,
    }


@router.get(
    "",
    summary="Health check",
)
async def health_check() -> Dict[str, Any]:
    """
    빠른 Health Check (로드밸런서용).

    - 애플리케이션 실행 상태, DB 연결(1초), 업로드 디렉터리, 결제 설정 여부
    """
    start_time = time.perf_counter()
    settings = get_settings()

    if ready._value.get() == 0:
        health_check_status.labels(check_type="fast").set(0)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application is shutting down",
        )

    try:
        await asyncio.wait_for(_check_db(), timeout=1.0)
    except asyncio.TimeoutError:
        logger.warning("DB health check timeout", extra={"event": "health"})
        health_check_status.labels(check_type="fast").set(0)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection timeout",
        )
    except Exception as e:
        logger.warning(
            "DB health check failed",
            extra={"event": "health", "error": str(e)[:200]},
        )
        health_check_status.labels(check_type="fast").set(0)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection failed",
        )

    storage = get_storage_service()
    storage_ok = all(
        (storage.root / name).is_dir()
        for name in (storage.clean_dir_name, storage.preview_dir_name)
    )

    health_check_status.labels(check_type="fast").set(1)
    return {
        "status": "healthy",
        "storage": "up" if storage_ok else "missing",
        "payment": _payment_flags(),
        "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
        "instance": settings.instance_ip or "unknown",
    }


@router.get(
    "/liveness",
    summary="Liveness probe",
)
async def liveness_probe() -> Dict[str, str]:
    """애플리케이션이 살아있는지만 확인합니다."""
    if ready._value.get() == 0:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application is shutting down",
        )
    return {"status": "alive"}


@router.get(
    "/readiness",
    summary="Readiness probe",
)
async def readiness_probe() -> Dict[str, str]:
    """
    애플리케이션이 요청을 처리할 준비가 되었는지 확인합니다.
    """
    if ready._value.get() == 0:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application is not ready",
        )

    try:
        await asyncio.wait_for(_check_db(), timeout=1.0)
    except asyncio.TimeoutError:
        logger.warning("Readiness check failed: DB timeout", extra={"event": "health"})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection timeout",
        )
    except Exception as e:
        logger.warning(
            "Readiness check failed: DB",
            extra={"event": "health", "error": str(e)[:200]},
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not ready",
        )

    return {"status": "ready"}

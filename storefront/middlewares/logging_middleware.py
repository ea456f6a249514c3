"""
구조화된 로깅 미들웨어.

모든 HTTP 요청에 대해 Request ID를 전파하고, 실패/지연 요청만 로깅합니다.
"""
import time
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.utils.logger import (
    set_request_id,
    log_error,
    log_warning,
)

# 느린 응답 임계값 (ms); 이미지 처리가 있는 업로드는 더 길게 허용
SLOW_REQUEST_THRESHOLD_MS = 3000
SLOW_UPLOAD_THRESHOLD_MS = 30000

REQUEST_ID_HEADER = "X-Request-ID"

# 로깅 제외할 경로
EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc", "/metrics", "/favicon.ico"}


def client_ip(request: Request) -> Optional[str]:
    """First X-Forwarded-For hop, else the direct peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    로깅 기준 (운영 노이즈 최소화):
    - 5xx 에러 응답 → ERROR
    - 4xx 에러 응답 → WARNING
    - 느린 응답 → WARNING
    - 정상 응답 → 로깅 안 함
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        # Request ID 설정 (클라이언트 제공 또는 새로 생성)
        rid = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        context = {
            "http_method": request.method,
            "http_path": request.url.path,
            "client_ip": client_ip(request),
            "request_id": rid,
            "event": "request",
        }

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            log_error(
                f"Request exception: {e}",
                error_type=type(e).__name__,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                exc_info=True,
                **context,
            )
            # global exception handler가 처리하도록 다시 발생
            raise

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        response.headers[REQUEST_ID_HEADER] = rid
        status_code = response.status_code

        slow_threshold = (
            SLOW_UPLOAD_THRESHOLD_MS if request.url.path.endswith("/upload") else SLOW_REQUEST_THRESHOLD_MS
        )
        if status_code >= 500:
            log_error(
                "Request error - Server error occurred",
                error_code=f"HTTP_{status_code}",
                http_status=status_code,
                duration_ms=duration_ms,
                **context,
            )
        elif status_code >= 400:
            log_warning(
                "Request failed - Client error",
                http_status=status_code,
                duration_ms=duration_ms,
                **context,
            )
        elif duration_ms >= slow_threshold:
            log_warning(
                "Slow request detected",
                http_status=status_code,
                duration_ms=duration_ms,
                performance_issue=True,
                **context,
            )
        return response

"""
Python logging setup for the storefront.

원칙:
- INFO: business events (upload, order created, payment completed)
- WARNING: client errors, rejected notifications, unverified payment mode
- ERROR: system errors, image processing failures, invalid signatures
- Personal data (buyer email, names) and secrets are never written to logs

Output:
- stdout: human readable text
- LOG_DIR/*.log (optional): NDJSON for log shippers
"""
import contextvars
import json
import logging
import socket
import sys
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from storefront.config import get_settings

_logger = logging.getLogger("storefront")

# 로깅에서 제외할 개인정보/비밀 필드
_SENSITIVE_FIELDS = frozenset({
    "email", "buyer_email", "customer_email", "buyer_name", "customer_name",
    "password", "token", "secret", "signature", "admin_key",
})

# Request ID (async safe)
request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)


def _get_instance_ip() -> str:
    ip = (get_settings().instance_ip or "").strip()
    return ip or socket.gethostname()


INSTANCE_IP = _get_instance_ip()


def generate_request_id() -> str:
    """Short, readable request id."""
    return uuid.uuid4().hex[:12]


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request id for the current context; generate one if missing."""
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


class FlushingRotatingFileHandler(RotatingFileHandler):
    """Flush after every record so shippers see the latest line immediately."""

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        self.flush()


# Standard LogRecord attributes (not copied into ctx)
_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "message", "asctime", "taskName",
    }
)


def scrub(context: dict[str, Any]) -> dict[str, Any]:
    """Drop sensitive keys and empty values from a log context."""
    return {
        k: v for k, v in context.items()
        if k not in _SENSITIVE_FIELDS and v is not None
    }


class JsonLinesFormatter(logging.Formatter):
    """
    NDJSON formatter.

    Fields: ts, level, instance, rid, event, msg, ctx, exc
    """

    def format(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        msecs = int(getattr(record, "msecs", 0) or 0) % 1000
        payload: dict[str, Any] = {
            "ts": dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{msecs:03d}Z",
            "level": record.levelname,
            "instance": INSTANCE_IP,
        }

        rid = get_request_id()
        if rid:
            payload["rid"] = rid

        if getattr(record, "event", None):
            payload["event"] = record.event

        payload["msg"] = record.getMessage()

        skip = _STANDARD_ATTRS | {"event", "instance"}
        extra_ctx = scrub({k: v for k, v in record.__dict__.items() if k not in skip})
        if extra_ctx:
            payload["ctx"] = extra_ctx

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging() -> None:
    """
    Configure root logging.

    - stdout: text (INFO+)
    - stderr: text (ERROR+)
    - LOG_DIR/app.log, LOG_DIR/error.log: NDJSON when LOG_DIR is set
    - noisy third-party loggers are raised to WARNING
    """
    settings = get_settings()
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)
    root_logger.handlers.clear()

    text_formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(logging.INFO)
    stdout_handler.setFormatter(text_formatter)
    root_logger.addHandler(stdout_handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.ERROR)
    stderr_handler.setFormatter(text_formatter)
    root_logger.addHandler(stderr_handler)

    if settings.log_dir:
        json_formatter = JsonLinesFormatter()
        log_dir = Path(settings.log_dir)
        try:
            log_dir.mkdir(parents=True, exist_ok=True)

            file_handler = FlushingRotatingFileHandler(
                log_dir / "app.log",
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(json_formatter)
            root_logger.addHandler(file_handler)

            error_handler = FlushingRotatingFileHandler(
                log_dir / "error.log",
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(json_formatter)
            root_logger.addHandler(error_handler)
        except OSError as e:
            root_logger.warning("File logging disabled: %s", e)

    for noisy in ("uvicorn", "uvicorn.access", "uvicorn.error", "httpx", "httpcore",
                  "asyncio", "PIL", "sqlalchemy", "sqlalchemy.engine", "sqlalchemy.pool"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def log_with_context(level: int, message: str, exc_info: bool = False, **context: Any) -> None:
    """Log ``message`` with structured context passed as ``extra``."""
    # LogRecord refuses extra keys that shadow its own attributes
    extra = {
        (f"ctx_{k}" if k in _STANDARD_ATTRS else k): v for k, v in scrub(context).items()
    }
    _logger.log(level, message, exc_info=exc_info, extra=extra)


def log_info(message: str, **context: Any) -> None:
    log_with_context(logging.INFO, message, **context)


def log_warning(message: str, **context: Any) -> None:
    log_with_context(logging.WARNING, message, **context)


def log_error(message: str, exc_info: bool = False, **context: Any) -> None:
    log_with_context(logging.ERROR, message, exc_info=exc_info, **context)

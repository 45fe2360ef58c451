"""
Structured JSON logging.

Every record carries:
- timestamp: ISO8601
- level: DEBUG/INFO/WARNING/ERROR/CRITICAL
- message: main message
- trace_id: request correlation id (optional)
- order_id / user_id / listing_id: domain context (optional)
- duration_ms, status_code, error_type (optional)
- extra: any other keyword context
"""
import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime
from functools import wraps
from typing import Optional

# Propagated through the call stack of a single request
_trace_id: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)

PROMOTED_FIELDS = ("order_id", "user_id", "listing_id", "duration_ms", "status_code", "error_type")


def get_trace_id() -> Optional[str]:
    return _trace_id.get()


def set_trace_id(trace_id: Optional[str] = None) -> str:
    """Set the trace id, generating a short one when not provided."""
    if trace_id is None:
        trace_id = str(uuid.uuid4())[:8]
    _trace_id.set(trace_id)
    return trace_id


class JSONFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        trace_id = get_trace_id()
        if trace_id:
            log_data["trace_id"] = trace_id

        for key in PROMOTED_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if getattr(record, "extra_data", None):
            log_data["extra"] = record.extra_data

        return json.dumps(log_data, ensure_ascii=False, default=str)


class StructuredLogger:
    """Thin wrapper over logging.Logger that accepts keyword context."""

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _log(
        self,
        level: int,
        message: str,
        order_id: Optional[str] = None,
        user_id: Optional[str] = None,
        listing_id: Optional[str] = None,
        duration_ms: Optional[float] = None,
        status_code: Optional[int] = None,
        error_type: Optional[str] = None,
        exc_info: bool = False,
        **extra
    ):
        record_extra = {}
        if order_id:
            record_extra["order_id"] = order_id
        if user_id:
            record_extra["user_id"] = user_id
        if listing_id:
            record_extra["listing_id"] = listing_id
        if duration_ms is not None:
            record_extra["duration_ms"] = round(duration_ms, 2)
        if status_code:
            record_extra["status_code"] = status_code
        if error_type:
            record_extra["error_type"] = error_type

        extra_dict = {k: v for k, v in extra.items() if v is not None}
        if extra_dict:
            record_extra["extra_data"] = extra_dict

        self._logger.log(level, message, exc_info=exc_info, extra=record_extra)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, exc_info: bool = True, **kwargs):
        self._log(logging.ERROR, message, exc_info=exc_info, **kwargs)

    def critical(self, message: str, exc_info: bool = True, **kwargs):
        self._log(logging.CRITICAL, message, exc_info=exc_info, **kwargs)


def setup_logging(level: str = "INFO"):
    """
    Configure the root logger with the JSON formatter on stdout.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    # Third-party clients are chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name)


def timed(logger: Optional[StructuredLogger] = None):
    """
    Log how long the wrapped function took.

    Usage:
        @timed(logger)
        def create_checkout(...):
            ...
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                if logger:
                    logger.debug(
                        f"{func.__name__} completed",
                        duration_ms=(time.perf_counter() - start) * 1000,
                    )
                return result
            except Exception as e:
                if logger:
                    logger.error(
                        f"{func.__name__} failed",
                        duration_ms=(time.perf_counter() - start) * 1000,
                        error_type=type(e).__name__,
                        exc_info=False,
                    )
                raise
        return wrapper
    return decorator

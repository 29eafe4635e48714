"""
PostRelay Logging Configuration
JSON logs with per-job context for the scheduling pipeline
"""
import json
import logging
import os
import sys
import time
import traceback
import uuid
from datetime import datetime, timezone
from functools import wraps
from typing import Dict, Optional

LOG_LEVEL = os.environ.get("POSTRELAY_LOG_LEVEL", "INFO").upper()

# Context keys never written out verbatim
REDACTED_FIELDS = frozenset({"access_token", "authorization", "signature", "qstash_token", "signing_key"})
REDACTED = "[redacted]"


# ============================================================
# STRUCTURED LOGGING
# ============================================================

class StructuredLogger:
    """Logger that takes context as keyword fields and emits one JSON object per line"""

    def __init__(self, name: str, context: Optional[Dict] = None):
        self.name = name
        self.context = dict(context or {})
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            self.logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(JsonFormatter())
            self.logger.addHandler(handler)

    def bind(self, **context) -> "StructuredLogger":
        """Same logger, with fields added to every record (e.g. job_id)"""
        return StructuredLogger(self.name, {**self.context, **context})

    def _log(self, level: int, message: str, **context):
        extra = {
            "context": {**self.context, **context},
            "logger_name": self.name,
        }
        self.logger.log(level, message, extra=extra)

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, **context)

    def error(self, message: str, error: Optional[Exception] = None, **context):
        if error:
            context["error_type"] = type(error).__name__
            context["error_message"] = str(error)
            context["traceback"] = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
        self._log(logging.ERROR, message, **context)


class JsonFormatter(logging.Formatter):
    """One JSON object per record; context fields are merged in at the top level"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": getattr(record, "logger_name", record.name),
            "message": record.getMessage(),
        }
        for key, value in getattr(record, "context", {}).items():
            log_data[key] = REDACTED if key in REDACTED_FIELDS and value else value
        return json.dumps(log_data, default=str)


# ============================================================
# REQUEST LOGGING MIDDLEWARE
# ============================================================

def log_request(logger: StructuredLogger):
    """FastAPI middleware for request logging"""
    from fastapi import Request
    from starlette.middleware.base import BaseHTTPMiddleware

    class RequestLoggingMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next):
            # Keep an upstream id so broker redeliveries can be correlated
            request_id = request.headers.get("X-Request-ID") or f"req_{uuid.uuid4().hex[:12]}"
            log = logger.bind(request_id=request_id, method=request.method, path=request.url.path)
            start = time.perf_counter()

            try:
                response = await call_next(request)
            except Exception as e:
                log.error("Request raised", error=e, duration_ms=_elapsed_ms(start))
                raise

            status = response.status_code
            level = log.info if status < 400 else log.warning if status < 500 else log.error
            level(f"{request.method} {request.url.path} -> {status}", status_code=status, duration_ms=_elapsed_ms(start))
            response.headers["X-Request-ID"] = request_id
            return response

    return RequestLoggingMiddleware


# ============================================================
# FUNCTION TIMING DECORATOR
# ============================================================

def timed(logger: StructuredLogger):
    """Log how long a (synchronous) call took, and its exception if it raised"""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.warning(
                    f"{func.__name__} failed",
                    function=func.__name__,
                    error_type=type(e).__name__,
                    error_message=str(e),
                    duration_ms=_elapsed_ms(start),
                )
                raise
            logger.debug(f"{func.__name__} completed", function=func.__name__, duration_ms=_elapsed_ms(start))
            return result

        return wrapper

    return decorator


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


# ============================================================
# LOGGER INSTANCES
# ============================================================

_loggers: Dict[str, StructuredLogger] = {}


def get_logger(name: str) -> StructuredLogger:
    """Shared logger for a pipeline component, e.g. ``get_logger("store")``"""
    if name not in _loggers:
        _loggers[name] = StructuredLogger(f"postrelay.{name}")
    return _loggers[name]


api_logger = get_logger("api")
scheduler_logger = get_logger("scheduler")
executor_logger = get_logger("executor")
broker_logger = get_logger("broker")
# Forged or replayed callbacks go here, apart from ordinary failures
security_logger = get_logger("security")

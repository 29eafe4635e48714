"""
PostRelay API Response Utilities
Standardized error format and exception handlers
"""
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional
from datetime import datetime, timezone

from .exceptions import PostRelayError
from .logging_config import api_logger


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_body(message: str, error_code: str, details: Optional[Dict[str, Any]] = None) -> Dict:
    """Error envelope shared by every failing response"""
    body = {
        "ok": False,
        "error": message,
        "error_code": error_code,
        "timestamp": _timestamp(),
    }
    if details:
        body["details"] = details
    return body


# ============================================================
# ERROR RESPONSES
# ============================================================

class ApiException(HTTPException):
    """Custom API exception with error codes"""

    def __init__(
        self,
        status_code: int,
        message: str,
        error_code: str = None,
        details: Dict = None,
    ):
        self.error_code = error_code or f"ERR_{status_code}"
        self.details = details
        super().__init__(status_code=status_code, detail=message)


def forbidden(message: str = "Access denied"):
    raise ApiException(403, message, "FORBIDDEN")

def not_found(resource: str = "Resource", id: str = None):
    message = f"{resource} not found" if not id else f"{resource} '{id}' not found"
    raise ApiException(404, message, "NOT_FOUND")


# ============================================================
# EXCEPTION HANDLERS
# ============================================================

async def api_exception_handler(request: Request, exc: ApiException) -> JSONResponse:
    """Render ApiException with its error code"""
    api_logger.warning(
        f"API Error: {exc.detail}",
        status_code=exc.status_code,
        error_code=exc.error_code,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.detail, exc.error_code, exc.details),
        headers=getattr(exc, "headers", None),
    )


async def postrelay_exception_handler(request: Request, exc: PostRelayError) -> JSONResponse:
    """Render pipeline errors raised out of a route"""
    log = api_logger.error if exc.status_code >= 500 else api_logger.warning
    log(
        f"Pipeline error: {exc.message}",
        status_code=exc.status_code,
        error_code=exc.error_code,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.error_code, exc.details),
    )

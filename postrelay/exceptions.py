"""
Error taxonomy for the scheduling pipeline.

Every error carries the HTTP status and machine-readable code it is reported
with, so routes can raise domain errors and let the exception handler in
``responses`` render them.
"""
from typing import Any, Dict, Optional


class PostRelayError(Exception):
    """Base class for all pipeline errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidScheduleTime(PostRelayError):
    """Target time is not in the future (or beyond the scheduling horizon)."""

    status_code = 400
    error_code = "INVALID_TIME"


class SchedulingFailed(PostRelayError):
    """Broker enqueue failed; nothing was persisted. Safe to retry."""

    status_code = 503
    error_code = "BROKER_ERROR"


class CancellationFailed(PostRelayError):
    """Broker delete failed for a reason other than not-found."""

    status_code = 502
    error_code = "BROKER_ERROR"


class AuthenticationFailed(PostRelayError):
    """Execution callback carried a missing or invalid broker signature."""

    status_code = 401
    error_code = "INVALID_SIGNATURE"


class DeliveryFailed(PostRelayError):
    """The platform delivery collaborator reported a failure."""

    status_code = 502
    error_code = "DELIVERY_FAILED"


class JobNotPending(PostRelayError):
    """The job is not in a state that allows the requested operation."""

    status_code = 409
    error_code = "JOB_NOT_PENDING"


class BrokerError(PostRelayError):
    """Broker HTTP call failed."""

    status_code = 502
    error_code = "BROKER_ERROR"

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message, {"broker_status": status} if status else None)
        self.status = status


class BrokerMessageNotFound(BrokerError):
    """Broker has no message with the given id (already delivered or deleted)."""

from .scheduled_job import (
    PostItem,
    ScheduleRequest,
    ScheduleResponse,
    BatchScheduleRequest,
    BatchItemResponse,
    BatchScheduleResponse,
    CancelRequest,
    CancelResponse,
    RescheduleRequest,
    ScheduledJobResponse,
    ExecutionResponse,
)

__all__ = [
    "PostItem",
    "ScheduleRequest", "ScheduleResponse",
    "BatchScheduleRequest", "BatchItemResponse", "BatchScheduleResponse",
    "CancelRequest", "CancelResponse",
    "RescheduleRequest",
    "ScheduledJobResponse",
    "ExecutionResponse",
]

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import List, Optional

from ..models.scheduled_job import Platform
from ..worker.delay import as_utc

MAX_BATCH_SIZE = 200

# Longest post each platform accepts
PLATFORM_MAX_LENGTH = {
    Platform.TWITTER: 280,
    Platform.LINKEDIN: 3000,
    Platform.INSTAGRAM: 2200,
}


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class PostItem(CamelModel):
    platform: Platform
    content: str = Field(min_length=1)
    scheduled_time: datetime

    @model_validator(mode="after")
    def check_content_length(self):
        limit = PLATFORM_MAX_LENGTH[self.platform]
        if len(self.content) > limit:
            raise ValueError(f"content exceeds {self.platform.value} limit of {limit} characters")
        return self


class ScheduleRequest(PostItem):
    owner_id: Optional[str] = None


class BatchScheduleRequest(CamelModel):
    owner_id: Optional[str] = None
    posts: List[PostItem] = Field(min_length=1, max_length=MAX_BATCH_SIZE)


class ScheduleResponse(CamelModel):
    job_id: str
    broker_message_id: str
    status: str
    scheduled_time: datetime

    @field_validator("scheduled_time")
    @classmethod
    def attach_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class BatchItemResponse(CamelModel):
    index: int
    platform: str
    ok: bool
    job_id: Optional[str] = None
    broker_message_id: Optional[str] = None
    status: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @field_validator("scheduled_time")
    @classmethod
    def attach_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value else value


class BatchScheduleResponse(CamelModel):
    success: bool
    scheduled_count: int
    failed_count: int
    results: List[BatchItemResponse]
    message: str


class CancelRequest(CamelModel):
    broker_message_id: str = Field(min_length=1)


class CancelResponse(CamelModel):
    success: bool = True
    already_gone: bool
    canceled: bool
    job_id: Optional[str] = None
    status: Optional[str] = None
    message: str


class RescheduleRequest(CamelModel):
    scheduled_time: datetime


class ScheduledJobResponse(CamelModel):
    id: str
    owner_id: str
    platform: str
    content: str
    scheduled_time: datetime
    broker_message_id: str
    status: str
    error_message: Optional[str] = None
    posted_at: Optional[datetime] = None
    source_job_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True

    @field_validator("scheduled_time", "posted_at", "created_at")
    @classmethod
    def attach_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value else value


class ExecutionResponse(CamelModel):
    ok: bool = True
    outcome: str
    job_id: Optional[str] = None
    status: Optional[str] = None

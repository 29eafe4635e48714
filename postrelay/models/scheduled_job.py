"""
ScheduledJob model: one deferred delivery of content to a platform.
"""
from enum import Enum
from sqlalchemy import Column, String, DateTime, Text, Index
from datetime import datetime, timezone
from ..database import Base


class Platform(str, Enum):
    """Supported delivery destinations"""
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    INSTAGRAM = "instagram"


class ScheduledJob(Base):
    __tablename__ = "scheduled_jobs"

    id = Column(String(36), primary_key=True, index=True)
    owner_id = Column(String(64), nullable=False, index=True)
    platform = Column(String(20), nullable=False)
    content = Column(Text, nullable=False)
    scheduled_time = Column(DateTime(timezone=True), nullable=False, index=True)
    broker_message_id = Column(String(128), nullable=False, unique=True, index=True)
    status = Column(String(20), nullable=False, default="scheduled", index=True)  # scheduled, posted, failed, canceled
    error_message = Column(Text, nullable=True)
    posted_at = Column(DateTime(timezone=True), nullable=True)
    source_job_id = Column(String(36), nullable=True, index=True)  # job this one replaces
    # Execution lease held by the callback currently delivering this job
    claim_token = Column(String(36), nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_scheduled_jobs_owner_time", "owner_id", "scheduled_time"),
    )

    def __repr__(self):
        return f"<ScheduledJob {self.id} {self.platform} {self.status}>"

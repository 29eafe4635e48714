"""
Job Store

Persistence for scheduled jobs. Every status change is a conditional UPDATE
guarded on ``status = 'scheduled'`` (compare-and-swap): a writer that loses a
race sees zero affected rows and treats it as a no-op.

Delivery additionally holds a lease (``claim_token``/``claimed_at``) while the
platform call is in flight, so a duplicate callback or a cancel arriving in
the meantime cannot touch the job. A lease older than ``lease_seconds`` is
considered abandoned and may be taken over.
"""
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..logging_config import get_logger
from ..models.scheduled_job import ScheduledJob
from .delay import utcnow
from .states import JobStatus, can_transition

logger = get_logger("store")


class JobStore:
    """Reads and status-guarded writes of ScheduledJob rows"""

    def __init__(self, db: Session, lease_seconds: int = 300):
        self.db = db
        self.lease_seconds = lease_seconds

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------

    def get(self, job_id: str) -> Optional[ScheduledJob]:
        return self.db.query(ScheduledJob).filter(ScheduledJob.id == job_id).first()

    def get_by_message_id(self, broker_message_id: str) -> Optional[ScheduledJob]:
        return self.db.query(ScheduledJob).filter(
            ScheduledJob.broker_message_id == broker_message_id
        ).first()

    def list_for_owner(
        self,
        owner_id: str,
        status: Optional[str] = None,
        platform: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[ScheduledJob]:
        """Jobs of one owner ordered by scheduled time, with optional filters"""
        query = self.db.query(ScheduledJob).filter(ScheduledJob.owner_id == owner_id)
        if status:
            query = query.filter(ScheduledJob.status == status)
        if platform:
            query = query.filter(ScheduledJob.platform == platform)
        if start:
            query = query.filter(ScheduledJob.scheduled_time >= start)
        if end:
            query = query.filter(ScheduledJob.scheduled_time <= end)
        return query.order_by(ScheduledJob.scheduled_time).all()

    # ------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------

    def add(self, job: ScheduledJob) -> ScheduledJob:
        """Persist a newly scheduled job"""
        try:
            self.db.add(job)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(job)
        return job

    def claim(self, job_id: str, now: Optional[datetime] = None) -> Optional[str]:
        """
        Take the delivery lease on a pending job.

        Returns:
            The claim token, or None if the job is no longer pending or
            another delivery holds a live lease.
        """
        now = now or utcnow()
        token = str(uuid.uuid4())
        applied = self._conditional_update(
            [ScheduledJob.id == job_id, self._lease_free(now)],
            {"claim_token": token, "claimed_at": now},
        )
        return token if applied else None

    def mark_posted(self, job_id: str, claim_token: str, posted_at: Optional[datetime] = None) -> bool:
        return self.transition(
            job_id,
            JobStatus.POSTED,
            claim_token=claim_token,
            posted_at=posted_at or utcnow(),
            error_message=None,
        )

    def mark_failed(self, job_id: str, claim_token: str, error_message: str) -> bool:
        return self.transition(
            job_id,
            JobStatus.FAILED,
            claim_token=claim_token,
            error_message=error_message,
        )

    def mark_canceled(self, job_id: str, now: Optional[datetime] = None) -> bool:
        """Cancel a pending job unless a delivery currently holds its lease"""
        now = now or utcnow()
        return self._transition(
            job_id,
            JobStatus.CANCELED,
            [self._lease_free(now)],
            {},
        )

    def transition(
        self,
        job_id: str,
        target: JobStatus,
        claim_token: Optional[str] = None,
        **fields,
    ) -> bool:
        """
        Move a job out of ``scheduled`` into a terminal state.

        When ``claim_token`` is given the write only applies while that lease
        is still held. Returns whether the update applied; a job that already
        left ``scheduled`` is logged and left untouched.
        """
        conditions = []
        if claim_token is not None:
            conditions.append(ScheduledJob.claim_token == claim_token)
        return self._transition(job_id, target, conditions, fields)

    # ------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------

    def _transition(self, job_id: str, target: JobStatus, conditions: list, fields: dict) -> bool:
        if not can_transition(JobStatus.SCHEDULED, target):
            raise ValueError(f"Illegal transition target: {target}")

        values = dict(fields, status=JobStatus(target).value, updated_at=utcnow())
        applied = self._conditional_update([ScheduledJob.id == job_id, *conditions], values)
        if applied:
            logger.info("Job transitioned", job_id=job_id, status=JobStatus(target).value)
        else:
            logger.info(
                "Transition skipped, job no longer pending",
                job_id=job_id,
                attempted_status=JobStatus(target).value,
            )
        return applied

    def _conditional_update(self, conditions: list, values: dict) -> bool:
        try:
            rowcount = (
                self.db.query(ScheduledJob)
                .filter(ScheduledJob.status == JobStatus.SCHEDULED.value, *conditions)
                .update(values, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        # Loaded instances are stale after a bulk update
        self.db.expire_all()
        return rowcount == 1

    def _lease_free(self, now: datetime):
        expired_before = now - timedelta(seconds=self.lease_seconds)
        return or_(
            ScheduledJob.claimed_at.is_(None),
            ScheduledJob.claimed_at < expired_before,
        )

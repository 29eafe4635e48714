"""
Post Scheduler

Creates deferred deliveries in the broker (singly or as a batch) and records
them, and cancels them by broker message id.

A job is only persisted once the broker accepted its message, so every stored
job carries a broker message id. Rescheduling and retrying never rewrite a
job: the old one is canceled (or left failed) and a new one is created,
pointing back through ``source_job_id``.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import (
    BrokerError,
    BrokerMessageNotFound,
    CancellationFailed,
    JobNotPending,
    PostRelayError,
    SchedulingFailed,
)
from ..logging_config import scheduler_logger as logger
from ..models.scheduled_job import Platform, ScheduledJob
from .delay import as_utc, compute_delay, utcnow
from .states import JobStatus
from .store import JobStore


@dataclass
class CancelResult:
    """Outcome of a cancel request"""
    broker_message_id: str
    already_gone: bool
    canceled: bool
    job_id: Optional[str] = None
    status: Optional[str] = None


@dataclass
class PostDraft:
    """One post of a batch"""
    platform: str
    content: str
    scheduled_time: datetime


@dataclass
class BatchItemResult:
    """Per-post outcome of a batch; exactly one of job / error is set"""
    index: int
    platform: str
    job: Optional[ScheduledJob] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.job is not None


class PostScheduler:
    """Schedule, cancel, reschedule and retry deliveries"""

    def __init__(
        self,
        store: JobStore,
        broker,
        callback_url: str,
        max_schedule_days: Optional[int] = 180,
        retry_delay_seconds: int = 10,
        clock=utcnow,
    ):
        self.store = store
        self.broker = broker
        self.callback_url = callback_url
        self.max_delay = max_schedule_days * 86400 if max_schedule_days else None
        self.retry_delay_seconds = retry_delay_seconds
        self.clock = clock

    def schedule(
        self,
        owner_id: str,
        platform: Platform,
        content: str,
        scheduled_time: datetime,
        source_job_id: Optional[str] = None,
    ) -> ScheduledJob:
        """
        Enqueue a delivery and persist its job.

        Raises:
            InvalidScheduleTime: scheduled_time is not in the future
            SchedulingFailed: the broker did not accept the message, or the
                job could not be stored (the message is withdrawn again)
        """
        platform = Platform(platform).value
        delay = compute_delay(scheduled_time, now=self.clock(), max_delay=self.max_delay)

        # Minted up front so the callback can address the record
        job_id = str(uuid.uuid4())
        payload = {"jobId": job_id, "ownerId": owner_id, "platform": platform}

        try:
            message_id = self.broker.publish(self.callback_url, payload, delay)
        except BrokerError as e:
            logger.error("Broker enqueue failed", job_id=job_id, owner_id=owner_id, error_message=str(e))
            raise SchedulingFailed("Failed to schedule post delivery. Please try again.", {"reason": str(e)}) from e

        job = ScheduledJob(
            id=job_id,
            owner_id=owner_id,
            platform=platform,
            content=content,
            scheduled_time=as_utc(scheduled_time),
            broker_message_id=message_id,
            status=JobStatus.SCHEDULED.value,
            source_job_id=source_job_id,
        )
        try:
            self.store.add(job)
        except SQLAlchemyError as e:
            logger.error("Persisting job failed, withdrawing broker message", error=e, job_id=job_id, broker_message_id=message_id)
            self._withdraw(message_id)
            raise SchedulingFailed("Failed to save scheduled post. Please try again.") from e

        logger.info(
            "Post scheduled",
            job_id=job_id,
            owner_id=owner_id,
            platform=platform,
            broker_message_id=message_id,
            delay_seconds=delay,
        )
        return job

    def schedule_many(self, owner_id: str, drafts: Iterable[PostDraft]) -> List[BatchItemResult]:
        """
        Schedule several posts independently.

        Each post is its own all-or-nothing schedule: a failing post is
        reported in its result and never undoes the posts around it.
        """
        results = []
        for index, draft in enumerate(drafts):
            try:
                job = self.schedule(owner_id, draft.platform, draft.content, draft.scheduled_time)
            except PostRelayError as e:
                results.append(BatchItemResult(index, draft.platform, error=e.message, error_code=e.error_code))
            except ValueError:
                results.append(BatchItemResult(
                    index,
                    draft.platform,
                    error=f"Invalid platform: {draft.platform}",
                    error_code="INVALID_PLATFORM",
                ))
            else:
                results.append(BatchItemResult(index, draft.platform, job=job))

        failed = sum(1 for r in results if not r.ok)
        logger.info(
            "Batch scheduling complete",
            owner_id=owner_id,
            scheduled_count=len(results) - failed,
            failed_count=failed,
        )
        return results

    def cancel(self, broker_message_id: str) -> CancelResult:
        """
        Delete the broker message and cancel its job if still pending.

        A message the broker no longer knows about counts as canceled. If the
        job already reached a terminal state (or is being delivered right now)
        the cancel still succeeds but the job keeps its execution outcome.

        Raises:
            CancellationFailed: the broker refused the delete
        """
        already_gone = False
        try:
            self.broker.delete(broker_message_id)
        except BrokerMessageNotFound:
            already_gone = True
            logger.info("Broker message already gone", broker_message_id=broker_message_id)
        except BrokerError as e:
            logger.error("Broker delete failed", broker_message_id=broker_message_id, error_message=str(e))
            raise CancellationFailed("Failed to cancel scheduled post", {"reason": str(e)}) from e

        job = self.store.get_by_message_id(broker_message_id)
        if job is None:
            return CancelResult(broker_message_id=broker_message_id, already_gone=already_gone, canceled=False)

        canceled = self.store.mark_canceled(job.id, now=self.clock())
        job = self.store.get(job.id)
        if not canceled:
            logger.info(
                "Cancel left job untouched",
                job_id=job.id,
                broker_message_id=broker_message_id,
                status=job.status,
            )
        return CancelResult(
            broker_message_id=broker_message_id,
            already_gone=already_gone,
            canceled=canceled,
            job_id=job.id,
            status=job.status,
        )

    def reschedule(self, job: ScheduledJob, scheduled_time: datetime) -> ScheduledJob:
        """
        Move a pending job to a new time: schedule a copy, then cancel the old one.

        The old job stays ``scheduled`` unless the copy exists. If the old
        job cannot be canceled the copy is withdrawn and canceled again.

        Raises:
            InvalidScheduleTime: the new time is not in the future
            JobNotPending: the job already left ``scheduled``
            CancellationFailed / SchedulingFailed: broker errors
        """
        compute_delay(scheduled_time, now=self.clock(), max_delay=self.max_delay)
        if job.status != JobStatus.SCHEDULED.value:
            raise JobNotPending(f"Cannot reschedule a {job.status} post")

        old_job_id = job.id
        new_job = self.schedule(
            job.owner_id,
            job.platform,
            job.content,
            scheduled_time,
            source_job_id=old_job_id,
        )

        try:
            result = self.cancel(job.broker_message_id)
        except CancellationFailed:
            self._abandon(new_job)
            raise
        if not result.canceled:
            self._abandon(new_job)
            raise JobNotPending(f"Cannot reschedule a {result.status} post")

        logger.info("Post rescheduled", job_id=old_job_id, new_job_id=new_job.id)
        return self.store.get(new_job.id)

    def retry(self, job: ScheduledJob) -> ScheduledJob:
        """
        Schedule a fresh attempt of a failed job. The failed job is kept as is.

        Raises:
            JobNotPending: the job is not ``failed``
            SchedulingFailed: broker errors
        """
        if job.status != JobStatus.FAILED.value:
            raise JobNotPending("Can only retry failed posts")

        earliest = self.clock() + timedelta(seconds=self.retry_delay_seconds)
        scheduled_time = max(as_utc(job.scheduled_time), earliest)
        return self.schedule(
            job.owner_id,
            job.platform,
            job.content,
            scheduled_time,
            source_job_id=job.id,
        )

    def _abandon(self, job: ScheduledJob) -> None:
        """Undo a replacement job that must not run"""
        job_id, message_id = job.id, job.broker_message_id
        self._withdraw(message_id)
        # Canceled even if the withdraw failed, so a stray callback is skipped
        self.store.mark_canceled(job_id, now=self.clock())
        logger.warning("Replacement job abandoned", job_id=job_id, broker_message_id=message_id)

    def _withdraw(self, message_id: str) -> None:
        try:
            self.broker.delete(message_id)
        except BrokerMessageNotFound:
            pass
        except BrokerError as e:
            logger.error("Could not withdraw orphaned broker message", broker_message_id=message_id, error_message=str(e))

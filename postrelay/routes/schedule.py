"""
Schedule routes: create (singly or in batches), cancel, reschedule and retry
deferred posts.
"""
from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from datetime import datetime

from ..auth import get_required_owner
from ..deps import get_job_store, get_scheduler
from ..models.scheduled_job import Platform, ScheduledJob
from ..responses import forbidden, not_found
from ..schemas.scheduled_job import (
    BatchItemResponse,
    BatchScheduleRequest,
    BatchScheduleResponse,
    CancelRequest,
    CancelResponse,
    RescheduleRequest,
    ScheduleRequest,
    ScheduleResponse,
    ScheduledJobResponse,
)
from ..worker.scheduler import PostDraft, PostScheduler
from ..worker.states import JobStatus
from ..worker.store import JobStore

router = APIRouter(prefix="/api/schedule", tags=["schedule"])


def _owned_job(store: JobStore, job_id: str, owner_id: str) -> ScheduledJob:
    """Load a job of the current owner; other owners' jobs read as missing."""
    job = store.get(job_id)
    if not job or job.owner_id != owner_id:
        not_found("Scheduled post", job_id)
    return job


def _schedule_response(job: ScheduledJob) -> ScheduleResponse:
    return ScheduleResponse(
        job_id=job.id,
        broker_message_id=job.broker_message_id,
        status=job.status,
        scheduled_time=job.scheduled_time,
    )


@router.post("", response_model=ScheduleResponse, status_code=201)
def schedule_post(
    request: ScheduleRequest,
    scheduler: PostScheduler = Depends(get_scheduler),
    owner_id: str = Depends(get_required_owner),
):
    """Schedule content for delivery to a platform at a future time."""
    if request.owner_id and request.owner_id != owner_id:
        forbidden("Cannot schedule posts for other users")

    job = scheduler.schedule(owner_id, request.platform, request.content, request.scheduled_time)
    return _schedule_response(job)


@router.post("/batch", response_model=BatchScheduleResponse)
def schedule_batch(
    request: BatchScheduleRequest,
    scheduler: PostScheduler = Depends(get_scheduler),
    owner_id: str = Depends(get_required_owner),
):
    """Schedule several posts at once. Each post succeeds or fails on its own."""
    if request.owner_id and request.owner_id != owner_id:
        forbidden("Cannot schedule posts for other users")

    results = scheduler.schedule_many(
        owner_id,
        [PostDraft(post.platform.value, post.content, post.scheduled_time) for post in request.posts],
    )

    items = []
    for result in results:
        job = result.job
        items.append(BatchItemResponse(
            index=result.index,
            platform=result.platform,
            ok=result.ok,
            job_id=job.id if job else None,
            broker_message_id=job.broker_message_id if job else None,
            status=job.status if job else None,
            scheduled_time=job.scheduled_time if job else None,
            error=result.error,
            error_code=result.error_code,
        ))

    scheduled = sum(1 for item in items if item.ok)
    failed = len(items) - scheduled
    if not failed:
        message = f"Successfully scheduled {scheduled} posts"
    elif not scheduled:
        message = "Failed to schedule all posts"
    else:
        message = f"Scheduled {scheduled} posts, {failed} failed"

    return BatchScheduleResponse(
        success=scheduled > 0,
        scheduled_count=scheduled,
        failed_count=failed,
        results=items,
        message=message,
    )


@router.post("/cancel", response_model=CancelResponse)
def cancel_post(
    request: CancelRequest,
    scheduler: PostScheduler = Depends(get_scheduler),
    store: JobStore = Depends(get_job_store),
    owner_id: str = Depends(get_required_owner),
):
    """Cancel a scheduled post by broker message id. Repeated cancels succeed."""
    job = store.get_by_message_id(request.broker_message_id)
    if not job or job.owner_id != owner_id:
        not_found("Scheduled post")

    result = scheduler.cancel(request.broker_message_id)

    if result.canceled:
        message = "Post schedule canceled successfully"
    elif result.status == JobStatus.CANCELED.value:
        message = "Post was already canceled"
    elif result.status == JobStatus.SCHEDULED.value:
        message = "Post is being delivered and can no longer be canceled"
    else:
        message = f"Post already {result.status}; nothing to cancel"

    return CancelResponse(
        already_gone=result.already_gone,
        canceled=result.canceled,
        job_id=result.job_id,
        status=result.status,
        message=message,
    )


@router.get("", response_model=List[ScheduledJobResponse])
def list_scheduled_posts(
    status: Optional[JobStatus] = Query(None),
    platform: Optional[Platform] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    store: JobStore = Depends(get_job_store),
    owner_id: str = Depends(get_required_owner),
):
    """List the current owner's scheduled posts with optional filters."""
    return store.list_for_owner(
        owner_id,
        status=status.value if status else None,
        platform=platform.value if platform else None,
        start=start,
        end=end,
    )


@router.get("/{job_id}", response_model=ScheduledJobResponse)
def get_scheduled_post(
    job_id: str,
    store: JobStore = Depends(get_job_store),
    owner_id: str = Depends(get_required_owner),
):
    """Get a single scheduled post (must belong to current owner)."""
    return _owned_job(store, job_id, owner_id)


@router.post("/{job_id}/reschedule", response_model=ScheduleResponse, status_code=201)
def reschedule_post(
    job_id: str,
    request: RescheduleRequest,
    scheduler: PostScheduler = Depends(get_scheduler),
    store: JobStore = Depends(get_job_store),
    owner_id: str = Depends(get_required_owner),
):
    """Move a pending post to a new time. The old job ends up canceled."""
    job = _owned_job(store, job_id, owner_id)
    new_job = scheduler.reschedule(job, request.scheduled_time)
    return _schedule_response(new_job)


@router.post("/{job_id}/retry", response_model=ScheduleResponse, status_code=201)
def retry_post(
    job_id: str,
    scheduler: PostScheduler = Depends(get_scheduler),
    store: JobStore = Depends(get_job_store),
    owner_id: str = Depends(get_required_owner),
):
    """Schedule a new attempt of a failed post."""
    job = _owned_job(store, job_id, owner_id)
    new_job = scheduler.retry(job)
    return _schedule_response(new_job)

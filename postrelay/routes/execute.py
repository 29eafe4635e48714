"""
Broker callback route.

Reached by anyone who knows the URL, so the executor checks the broker
signature before looking at anything else. Every handled outcome answers 200
so the broker stops redelivering; only a bad signature gets 401.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from ..deps import get_executor
from ..schemas.scheduled_job import ExecutionResponse
from ..worker.executor import PostExecutor
from ..worker.signature import SIGNATURE_HEADER

router = APIRouter(prefix="/api/post", tags=["execute"])


async def raw_body(request: Request) -> bytes:
    """Exact bytes the broker signed"""
    return await request.body()


@router.post("/execute", response_model=ExecutionResponse)
def execute_post(
    body: bytes = Depends(raw_body),
    upstash_signature: Optional[str] = Header(None, alias=SIGNATURE_HEADER),
    executor: PostExecutor = Depends(get_executor),
):
    """Deliver a scheduled post when its delay has elapsed."""
    result = executor.handle(body, upstash_signature)
    return ExecutionResponse(
        outcome=result.outcome.value,
        job_id=result.job_id,
        status=result.status,
    )

"""
Post Executor

Handles the broker's execution callback. The broker delivers at least once,
so this runs zero or more times per job and must be idempotent:

1. verify the broker signature (nothing else happens if it fails)
2. load the job; a missing job is acknowledged and ignored
3. skip anything no longer ``scheduled``
4. take the delivery lease, deliver, record ``posted`` or ``failed``

Every handled outcome is acknowledged to the broker. Delivery failures are
recorded on the job rather than returned as errors: a broker retry will not
heal a revoked token or a rejected post.
"""
import json
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import AuthenticationFailed, DeliveryFailed
from ..logging_config import executor_logger as logger, security_logger
from .delay import utcnow
from .delivery import DeliveryClient, TokenStore
from .signature import SignatureVerifier
from .states import JobStatus
from .store import JobStore


class ExecutionOutcome(str, Enum):
    POSTED = "posted"
    FAILED = "failed"
    MISSING = "missing"
    DUPLICATE = "duplicate"
    INVALID_PAYLOAD = "invalid_payload"


@dataclass
class ExecutionResult:
    outcome: ExecutionOutcome
    job_id: Optional[str] = None
    status: Optional[str] = None
    error_message: Optional[str] = None


class CallbackPayload(BaseModel):
    """Body the scheduler hands to the broker"""
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId", min_length=1)
    owner_id: Optional[str] = Field(default=None, alias="ownerId")
    platform: Optional[str] = None


class PostExecutor:
    """Runs a scheduled delivery when the broker calls back"""

    def __init__(
        self,
        store: JobStore,
        verifier: SignatureVerifier,
        delivery: DeliveryClient,
        tokens: TokenStore,
        clock=utcnow,
    ):
        self.store = store
        self.verifier = verifier
        self.delivery = delivery
        self.tokens = tokens
        self.clock = clock

    def handle(self, body: bytes, signature: Optional[str]) -> ExecutionResult:
        """
        Process one broker delivery attempt.

        Raises:
            AuthenticationFailed: the signature is missing or invalid
        """
        if not self.verifier.verify(body, signature):
            security_logger.warning(
                "Rejected execution callback with invalid signature",
                signature_present=bool(signature),
                body_bytes=len(body),
            )
            raise AuthenticationFailed("Invalid broker signature")

        try:
            payload = CallbackPayload.model_validate(json.loads(body))
        except (ValueError, ValidationError) as e:
            # Authentic but unusable; a redelivery would carry the same body
            logger.error("Undecodable execution payload", error_message=str(e))
            return ExecutionResult(ExecutionOutcome.INVALID_PAYLOAD)

        job = self.store.get(payload.job_id)
        if job is None:
            logger.warning("Execution callback for unknown job", job_id=payload.job_id)
            return ExecutionResult(ExecutionOutcome.MISSING, job_id=payload.job_id)

        if job.status != JobStatus.SCHEDULED.value:
            logger.info("Job already handled, ignoring redelivery", job_id=job.id, status=job.status)
            return ExecutionResult(ExecutionOutcome.DUPLICATE, job_id=job.id, status=job.status)

        if (payload.owner_id and payload.owner_id != job.owner_id) or (
            payload.platform and payload.platform != job.platform
        ):
            logger.warning(
                "Callback payload disagrees with stored job, using stored values",
                job_id=job.id,
                payload_owner_id=payload.owner_id,
                payload_platform=payload.platform,
            )

        claim_token = self.store.claim(job.id, now=self.clock())
        if claim_token is None:
            current = self.store.get(job.id)
            logger.info("Job claimed elsewhere, ignoring redelivery", job_id=job.id, status=current.status)
            return ExecutionResult(ExecutionOutcome.DUPLICATE, job_id=job.id, status=current.status)

        return self._deliver(job.id, job.owner_id, job.platform, job.content, claim_token)

    def _deliver(self, job_id: str, owner_id: str, platform: str, content: str, claim_token: str) -> ExecutionResult:
        log = logger.bind(job_id=job_id, platform=platform)
        log.info("Executing scheduled post")
        try:
            access_token = self.tokens.get_access_token(owner_id, platform)
            receipt = self.delivery.deliver(platform, content, access_token, job_id=job_id)
        except DeliveryFailed as e:
            applied = self.store.mark_failed(job_id, claim_token, e.message)
            log.warning("Delivery failed", error_message=e.message, recorded=applied)
            return self._result(ExecutionOutcome.FAILED, job_id, applied, e.message)
        except Exception as e:
            message = f"Unexpected delivery error: {e}"
            applied = self.store.mark_failed(job_id, claim_token, message)
            log.error("Delivery raised unexpectedly", error=e, recorded=applied)
            return self._result(ExecutionOutcome.FAILED, job_id, applied, message)

        applied = self.store.mark_posted(job_id, claim_token, posted_at=self.clock())
        log.info(
            "Post delivered",
            platform_post_id=receipt.post_id if receipt else None,
            recorded=applied,
        )
        return self._result(ExecutionOutcome.POSTED, job_id, applied)

    def _result(self, outcome: ExecutionOutcome, job_id: str, applied: bool, error_message: Optional[str] = None) -> ExecutionResult:
        job = self.store.get(job_id)
        status = job.status if job else None
        if not applied:
            # Lease was taken over after expiring; the other writer's outcome stands
            return ExecutionResult(ExecutionOutcome.DUPLICATE, job_id=job_id, status=status)
        return ExecutionResult(outcome, job_id=job_id, status=status, error_message=error_message)

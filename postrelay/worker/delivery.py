"""
Platform Delivery

Boundary to the systems that actually publish content:

- TokenStore: resolves the owner's access token for a platform
- DeliveryClient: posts content to a platform and reports success or failure

The default client forwards to an HTTP delivery gateway that owns the
platform-specific APIs. Transient errors (network, timeouts, 5xx, 429) are
retried with exponential backoff here; whatever is still failing afterwards
is reported as DeliveryFailed and recorded on the job.
"""
import time
from dataclasses import dataclass
from typing import Callable, Optional

import requests
from sqlalchemy.orm import Session

from ..exceptions import DeliveryFailed
from ..logging_config import get_logger
from ..models.social_account import SocialAccount

logger = get_logger("delivery")

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@dataclass
class DeliveryReceipt:
    """What the platform returned for a successful post"""
    platform: str
    post_id: Optional[str] = None
    url: Optional[str] = None


# ============================================================
# CREDENTIALS
# ============================================================

class TokenStore:
    """Looks up the credentials a delivery runs with."""

    def get_access_token(self, owner_id: str, platform: str) -> str:
        raise NotImplementedError


class DatabaseTokenStore(TokenStore):
    """Reads tokens from the social_accounts table"""

    def __init__(self, db: Session):
        self.db = db

    def get_access_token(self, owner_id: str, platform: str) -> str:
        account = self.db.query(SocialAccount).filter(
            SocialAccount.owner_id == owner_id,
            SocialAccount.platform == platform,
        ).first()
        if not account or not account.access_token:
            raise DeliveryFailed(f"No connected {platform} account found")
        return account.access_token


# ============================================================
# DELIVERY
# ============================================================

class DeliveryClient:
    """Publishes content to a platform."""

    def deliver(self, platform: str, content: str, access_token: str, job_id: Optional[str] = None) -> DeliveryReceipt:
        """
        Raises:
            DeliveryFailed: the post was not published
        """
        raise NotImplementedError


class HttpDeliveryClient(DeliveryClient):
    """Delivers through an HTTP gateway with bounded timeout and retries"""

    def __init__(
        self,
        url: str,
        timeout: float = 15.0,
        max_attempts: int = 3,
        backoff: float = 2.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.url = url
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self.session = session or requests.Session()
        self.sleep = sleep

    def deliver(self, platform: str, content: str, access_token: str, job_id: Optional[str] = None) -> DeliveryReceipt:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        if job_id:
            # Lets the gateway drop a repeat of a post it already made
            headers["Idempotency-Key"] = job_id

        last_error = "Delivery failed"
        for attempt in range(self.max_attempts):
            try:
                response = self.session.post(
                    self.url,
                    json={"platform": platform, "content": content},
                    headers=headers,
                    timeout=self.timeout,
                )
            except requests.Timeout:
                last_error = f"Delivery to {platform} timed out after {self.timeout}s"
                logger.warning("Delivery timed out", platform=platform, job_id=job_id, attempt=attempt + 1)
            except requests.RequestException as e:
                last_error = f"Delivery to {platform} failed: {e}"
                logger.warning("Delivery error", platform=platform, job_id=job_id, attempt=attempt + 1, error_message=str(e))
            else:
                if 200 <= response.status_code < 300:
                    data = _json_or_empty(response)
                    return DeliveryReceipt(
                        platform=platform,
                        post_id=data.get("postId"),
                        url=data.get("url"),
                    )

                last_error = _error_detail(response)
                if response.status_code not in RETRYABLE_STATUS:
                    raise DeliveryFailed(last_error, {"status": response.status_code})
                logger.warning(
                    "Delivery rejected, will retry",
                    platform=platform,
                    job_id=job_id,
                    attempt=attempt + 1,
                    status_code=response.status_code,
                )

            if attempt < self.max_attempts - 1:
                self.sleep(self.backoff ** attempt)

        raise DeliveryFailed(last_error)


def _json_or_empty(response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _error_detail(response) -> str:
    data = _json_or_empty(response)
    detail = data.get("error") or data.get("message")
    if detail:
        return str(detail)
    return response.text[:200] or f"Delivery rejected with status {response.status_code}"

"""
QStash Broker Client

Thin wrapper over the two QStash REST calls the pipeline needs:

- publish: enqueue a JSON callback to a URL after a delay
- delete: drop a pending message by id

Calls are single-shot. A failed publish is surfaced to the scheduling client
as retryable rather than retried here, so a slow-but-successful first attempt
can never produce two broker messages for one job.
"""
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from ..exceptions import BrokerError, BrokerMessageNotFound
from ..logging_config import broker_logger, timed


class QStashBroker:
    """Deferred-delivery broker backed by the QStash v2 API"""

    def __init__(
        self,
        token: str,
        base_url: str = "https://qstash.upstash.io",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self.token}"}
        if extra:
            headers.update(extra)
        return headers

    @timed(broker_logger)
    def publish(self, url: str, body: Dict[str, Any], delay: int) -> str:
        """
        Enqueue ``body`` for delivery to ``url`` after ``delay`` seconds.

        Returns:
            The broker message id

        Raises:
            BrokerError: network failure, non-2xx response or a response
                without a message id
        """
        endpoint = f"{self.base_url}/v2/publish/{url}"
        try:
            response = self.session.post(
                endpoint,
                json=body,
                headers=self._headers({
                    "Content-Type": "application/json",
                    "Upstash-Delay": f"{delay}s",
                }),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise BrokerError(f"Broker publish failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise BrokerError(
                f"Broker publish rejected: {response.status_code} {response.text[:200]}",
                status=response.status_code,
            )

        try:
            message_id = response.json().get("messageId")
        except ValueError:
            message_id = None
        if not message_id:
            raise BrokerError("Broker publish returned no message id", status=response.status_code)

        broker_logger.info("Message published", broker_message_id=message_id, delay_seconds=delay)
        return message_id

    @timed(broker_logger)
    def delete(self, message_id: str) -> None:
        """
        Delete a pending message.

        Raises:
            BrokerMessageNotFound: the broker has no such message
            BrokerError: any other failure
        """
        endpoint = f"{self.base_url}/v2/messages/{quote(message_id, safe='')}"
        try:
            response = self.session.delete(endpoint, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise BrokerError(f"Broker delete failed: {e}") from e

        if response.status_code == 404:
            raise BrokerMessageNotFound(f"Message {message_id} not found", status=404)
        if not 200 <= response.status_code < 300:
            raise BrokerError(
                f"Broker delete rejected: {response.status_code} {response.text[:200]}",
                status=response.status_code,
            )

        broker_logger.info("Message deleted", broker_message_id=message_id)

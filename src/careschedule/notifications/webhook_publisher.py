"""
Webhook Publisher

Posts schedule change events as JSON to a configured URL using httpx.
"""
import hashlib
import hmac
import json
import logging
from typing import Optional

import httpx

from .base_publisher import BasePublisher, PublishResult
from ..models.change_event import ScheduleChangeEvent

logger = logging.getLogger("careschedule.notifications.webhook")

SIGNATURE_HEADER = "X-CareSchedule-Signature"


class WebhookPublisher(BasePublisher):
    """Deliver change events to an HTTP endpoint"""

    def __init__(self, url: str, secret: str = "", timeout: float = 10.0):
        self.url = url
        self.secret = secret
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def sign(self, body: bytes) -> str:
        """HMAC-SHA256 of the request body, hex encoded"""
        return hmac.new(self.secret.encode(), body, hashlib.sha256).hexdigest()

    async def publish(self, event: ScheduleChangeEvent) -> PublishResult:
        body = json.dumps(event.to_dict()).encode()
        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers[SIGNATURE_HEADER] = self.sign(body)

        try:
            client = self._get_client()
            response = await client.post(self.url, content=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Webhook delivery error for event {event.id}: {e}")
            return PublishResult(success=False, error=str(e))

        if response.is_success:
            logger.info(f"Webhook delivered {event.change_type.value} event {event.id}")
            return PublishResult(success=True)

        err = f"HTTP {response.status_code}: {response.text[:200]}"
        logger.error(f"Webhook rejected event {event.id}: {err}")
        return PublishResult(success=False, error=err)

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

"""
Booking notifications.

Delivered after the booking transaction committed; a failed delivery is
logged and never turns into an error for the caller.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core import config
from app.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

ENROLLED_EVENT = "consulting.enrolled"
ENROLLMENT_CANCELLED_EVENT = "consulting.enrollment_cancelled"


class NotificationDispatcher:
    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout: Optional[float] = None,
        attempts: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._webhook_url = webhook_url
        self._timeout = timeout
        self._attempts = attempts
        self._transport = transport

    @property
    def webhook_url(self) -> Optional[str]:
        return self._webhook_url or config.NOTIFICATION_WEBHOOK_URL

    async def _post(self, payload: Dict[str, Any]) -> None:
        async with httpx.AsyncClient(transport=self._transport) as client:
            response = await client.post(
                self.webhook_url,
                json=payload,
                timeout=self._timeout or config.NOTIFICATION_TIMEOUT_SECONDS,
            )

        if response.status_code >= 300:
            raise ExternalServiceError(
                "notification_webhook",
                f"Webhook responded with {response.status_code}: {response.text[:200]}",
            )

    async def notify(
        self, user_id: str, event: str, payload: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Send one event to the notification webhook.

        Returns:
            bool: True if delivered, False otherwise
        """
        if not self.webhook_url:
            logger.debug(f"Notification webhook is not set, skipping {event}")
            return False

        body = {
            "event": event,
            "user_id": user_id,
            "payload": payload or {},
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._attempts or config.NOTIFICATION_RETRY_ATTEMPTS),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            retry=retry_if_exception_type(httpx.TransportError),
        )

        try:
            async for attempt in retrying:
                with attempt:
                    await self._post(body)
        except RetryError as e:
            logger.error(
                f"Notification {event} for user {user_id} failed after retries: "
                f"{e.last_attempt.exception()}"
            )
            return False
        except ExternalServiceError as e:
            logger.error(f"Notification {event} for user {user_id} rejected: {e.message}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Error sending notification {event} for user {user_id}: {str(e)}")
            return False

        logger.info(f"Notification {event} delivered for user {user_id}")
        return True


notification_dispatcher = NotificationDispatcher()

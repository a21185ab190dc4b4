import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from app.core.config import settings
from app.core.enums import DocumentKind
from app.core.metrics import notification_deliveries

logger = logging.getLogger(__name__)


class Notifier(ABC):
    @abstractmethod
    async def send(
        self,
        kind: DocumentKind,
        recipient_email: str,
        recipient_name: Optional[str],
        order_ref: str,
        link: Optional[str],
    ) -> bool:
        """Best effort. Returns False instead of raising on delivery failure."""


class WebhookNotifier(Notifier):
    """Posts document notifications to the mail relay webhook, with retries."""

    def __init__(
        self,
        url: Optional[str] = None,
        retries: Optional[int] = None,
        backoff: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = settings.NOTIFICATION_WEBHOOK_URL if url is None else url
        self.retries = retries or settings.NOTIFICATION_RETRIES
        self.backoff = backoff
        self.transport = transport

    async def send(self, kind, recipient_email, recipient_name, order_ref, link) -> bool:
        if not self.url:
            logger.warning(f"Notification relay not configured, skipping {kind} mail for order {order_ref}")
            return False
        if not recipient_email:
            logger.warning(f"No recipient for {kind} mail for order {order_ref}")
            return False

        payload = {
            "kind": str(kind),
            "to": recipient_email,
            "name": recipient_name,
            "order": order_ref,
            "link": link,
        }
        backoff = self.backoff

        for attempt in range(1, self.retries + 1):
            try:
                async with httpx.AsyncClient(timeout=settings.NOTIFICATION_TIMEOUT, transport=self.transport) as client:
                    response = await client.post(self.url, json=payload)

                    if 200 <= response.status_code < 300:
                        notification_deliveries.labels(status="success", retry_count=str(attempt - 1)).inc()
                        logger.info(f"Sent {kind} mail for order {order_ref}")
                        return True
                    else:
                        logger.warning(
                            f"Notification failed (attempt {attempt}/{self.retries}): "
                            f"Status {response.status_code} for order {order_ref}"
                        )
            except httpx.TimeoutException:
                logger.warning(f"Notification timeout (attempt {attempt}/{self.retries}) for order {order_ref}")
            except httpx.HTTPError as e:
                logger.warning(f"Notification error (attempt {attempt}/{self.retries}): {e} for order {order_ref}")

            if attempt < self.retries:
                await asyncio.sleep(backoff)
                backoff *= 2.0

        notification_deliveries.labels(status="failed", retry_count=str(self.retries)).inc()
        logger.error(f"Notification failed after {self.retries} attempts for order {order_ref}")
        return False

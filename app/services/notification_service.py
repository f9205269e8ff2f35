"""
Results-ready notifications for testing requests.

Subscribers of a barcode are notified once when lab testing completes.
Delivery is delegated to a webhook (the push/email dispatcher); the event
carries the subscriber ids that asked to hear about the barcode.
"""

import logging
from typing import List, Optional

import httpx

from app.config import settings
from app.services.errors import ServiceUnavailableError

logger = logging.getLogger(__name__)


class SubscriberNotifier:
    """Posts results-ready events to the notification dispatcher."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.webhook_url = settings.notify_webhook_url if webhook_url is None else webhook_url
        self.timeout = httpx.Timeout(
            timeout=settings.notify_timeout,
            connect=settings.notify_connect_timeout,
        )
        self.transport = transport

    def notify_results_ready(
        self,
        barcode: str,
        product_name: str,
        product_id: Optional[int] = None,
        subscribers: Optional[List[str]] = None,
    ) -> bool:
        """
        Notify subscribers that a barcode's test results are ready.

        Returns:
            True if the dispatcher accepted the event, False if no webhook
            is configured

        Raises:
            ServiceUnavailableError: The dispatcher is unreachable or
                rejected the event
        """
        if not self.webhook_url:
            logger.info("No notification webhook configured; skipping results-ready for %s", barcode)
            return False

        payload = {
            "event": "results_ready",
            "barcode": barcode,
            "productName": product_name,
            "productId": product_id,
            "subscribers": list(subscribers or []),
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Results-ready notification failed for %s: %s", barcode, e)
            raise ServiceUnavailableError("Notification dispatcher unavailable") from e

        logger.info(
            "Results-ready notification sent for %s (%s) to %d subscribers",
            barcode,
            product_name,
            len(payload["subscribers"]),
        )
        return True

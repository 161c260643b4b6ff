"""
Delivery of captured email leads.

Leads are posted as JSON to EMAIL_WEBHOOK_URL. Without a webhook the lead is
only logged, which is enough for local development.
"""

import logging
import re
from typing import Optional

import httpx

from config import settings
from core.errors import EmailDispatchError

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email.strip()) is not None


class EmailDeliveryClient:
    def __init__(self, webhook_url: Optional[str] = None, timeout: Optional[float] = None):
        self.webhook_url = webhook_url if webhook_url is not None else settings.EMAIL_WEBHOOK_URL
        self.timeout = timeout or settings.EMAIL_TIMEOUT

    async def deliver(self, email: str, analysis_id: str) -> None:
        """
        Send one lead.

        Raises:
            EmailDispatchError: webhook unreachable or returned an error status
        """
        if not self.webhook_url:
            logger.info(f"📧 Email lead captured for analysis {analysis_id} (no webhook configured)")
            return

        payload = {"email": email, "analysisId": analysis_id}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise EmailDispatchError(f"Email delivery failed: {str(e)}") from e

        logger.info(f"📧 Email lead delivered for analysis {analysis_id}")

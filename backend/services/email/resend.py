"""Outbound email through the Resend HTTP API."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

import httpx

from core import config as core_config
from core.errors import ConfigurationError, DeserializationError, ProviderError

logger = logging.getLogger(__name__)


@dataclass
class EmailResponse:
    id: str
    sender: str
    to: str
    subject: str
    created_at: str


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, html_body: str) -> EmailResponse: ...


class ResendClient:
    """Send HTML email with Resend; failures propagate, nothing is retried."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        api_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else core_config.RESEND_API_KEY
        self.from_email = from_email if from_email is not None else core_config.RESEND_FROM
        self.api_url = api_url or core_config.RESEND_API_URL
        self.transport = transport

    async def send(self, to: str, subject: str, html_body: str) -> EmailResponse:
        if not self.api_key or not self.from_email:
            logger.warning("RESEND_API_KEY or RESEND_FROM is not set; cannot send email")
            raise ConfigurationError("Email delivery is not configured")

        logger.debug("Sending email to %s with subject %r", to, subject)
        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
                response = await client.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={
                        "from": self.from_email,
                        "to": [to],
                        "subject": subject,
                        "html": html_body,
                    },
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Email delivery to %s failed: %s", to, exc)
            raise ProviderError(f"Failed to send email: {exc}") from exc

        try:
            message_id = response.json()["id"]
        except (ValueError, KeyError, TypeError) as exc:
            raise DeserializationError("Malformed email service response") from exc

        return EmailResponse(
            id=str(message_id),
            sender=self.from_email,
            to=to,
            subject=subject,
            created_at=datetime.now(timezone.utc).isoformat(),
        )

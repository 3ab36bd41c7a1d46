"""Resend transactional email adapter."""

from __future__ import annotations

import logging
from html import escape

import httpx

from thumbai.config import get_settings
from thumbai.errors import MailDeliveryError


logger = logging.getLogger(__name__)

VERIFICATION_SUBJECT = "Sign in to ThumbAI"


class ResendMailer:
    """Sends email through the Resend HTTP API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        sender: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.resend_api_key
        self.base_url = base_url or settings.resend_base_url
        self.sender = sender or settings.email_from

        if not self.api_key:
            raise ValueError("Resend API key not configured")

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> str:
        """Send one message and return the provider's message id."""
        payload = {"from": self.sender, "to": [to], "subject": subject, "html": html}
        if text:
            payload["text"] = text

        try:
            response = await self._client.post("/emails", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Resend rejected email to {to}: {e.response.status_code} {e.response.text}")
            raise MailDeliveryError() from e
        except (httpx.TransportError, ValueError) as e:
            logger.error(f"Resend request failed for {to}: {e}")
            raise MailDeliveryError() from e

        message_id = data.get("id", "")
        logger.info(f"Sent '{subject}' to {to} ({message_id})")
        return message_id

    async def send_verification_email(self, url: str, email: str, name: str | None = None) -> str:
        """Send the sign-in link."""
        greeting = f"Hi {name}," if name else "Hi,"
        html = (
            f"<p>{escape(greeting)}</p>"
            f"<p>Click the link below to sign in to ThumbAI.</p>"
            f'<p><a href="{escape(url, quote=True)}">Sign in</a></p>'
            f"<p>If you did not request this email you can safely ignore it.</p>"
        )
        text = f"{greeting}\n\nSign in to ThumbAI: {url}\n\nIf you did not request this email you can safely ignore it.\n"
        return await self.send(email, VERIFICATION_SUBJECT, html, text)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

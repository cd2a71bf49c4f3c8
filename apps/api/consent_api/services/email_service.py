"""Transactional email delivery using the Resend API."""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

import httpx

from consent_api.core.config import settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


def public_link(path: str) -> str:
    """Absolute URL for a route under the versioned API prefix."""
    return f"{settings.public_url.rstrip('/')}{settings.api_v1_prefix}{path}"


class EmailService:
    """Sends subscription and data-request emails via the Resend API.

    Every send returns the Resend email ID on success and None on failure.
    Delivery problems are logged, never raised: no caller's state change
    depends on an email going out.
    """

    async def send_verification_email(self, to_email: str, token: str) -> str | None:
        link = public_link(f"/email/verify/{token}")
        html = (
            "<h2>Almost there! Verify your email address</h2>"
            "<p>You've just subscribed to the Queer Grid newsletter. "
            "Please confirm your address to start receiving updates.</p>"
            f'<p><a href="{link}">Verify my email</a></p>'
            f"<p>This link expires in {settings.email_verification_expiry_hours} hours.</p>"
        )
        return await self._send(
            to_email,
            "Verify your Queer Grid subscription",
            html,
            tags=[{"name": "category", "value": "verification"}],
        )

    async def send_welcome_email(self, to_email: str, unsubscribe_token: str) -> str | None:
        link = public_link(f"/email/unsubscribe/{unsubscribe_token}")
        html = (
            "<h2>Welcome to the Queer Grid community!</h2>"
            "<p>Your email is verified. You'll hear from us about new posters, "
            "events and community news.</p>"
            f'<p>Changed your mind? <a href="{link}">Unsubscribe</a> at any time.</p>'
        )
        return await self._send(
            to_email,
            "Welcome to the Queer Grid community!",
            html,
            tags=[{"name": "category", "value": "welcome"}],
        )

    async def send_data_request_verification(
        self, to_email: str, token: str, request_type: str
    ) -> str | None:
        link = public_link(f"/gdpr/verify-request/{token}")
        html = (
            f"<h2>Verify your {request_type.lower()} request</h2>"
            f"<p>We received a request to {request_type.lower()} your personal data. "
            "To protect your privacy we need to confirm it came from you.</p>"
            f'<p><a href="{link}">Verify this request</a></p>'
            f"<p>This link expires in {settings.dsr_verification_expiry_days} days. "
            "If you did not make this request you can ignore this email.</p>"
        )
        return await self._send(
            to_email,
            f"Verify your {request_type.lower()} request - Queer Grid",
            html,
            tags=[{"name": "category", "value": "data_request"}],
        )

    async def send_export_ready(
        self, to_email: str, export_id: UUID, expires_at: datetime
    ) -> str | None:
        link = public_link(f"/gdpr/download-export/{export_id}")
        html = (
            "<h2>Your data export is ready</h2>"
            "<p>Your export contains your subscription details, consent records "
            "and the audit trail of actions taken on your account.</p>"
            f'<p><a href="{link}">Download my data</a></p>'
            f"<p>This download link expires on {expires_at.isoformat()}.</p>"
        )
        return await self._send(
            to_email,
            "Your data export is ready - Queer Grid",
            html,
            tags=[{"name": "category", "value": "data_export"}],
        )

    async def _send(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        tags: list[dict[str, str]] | None = None,
    ) -> str | None:
        payload: dict[str, Any] = {
            "from": settings.mail_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }
        if tags:
            payload["tags"] = tags

        if not settings.resend_api_key:
            logger.warning("Resend API key not configured, email not sent: %s", subject)
            return None

        try:
            async with httpx.AsyncClient(timeout=15.0) as client:
                response = await client.post(
                    RESEND_API_URL,
                    headers={
                        "Authorization": f"Bearer {settings.resend_api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
                if response.is_success:
                    email_id = response.json().get("id")
                    logger.info("Email sent: subject=%r id=%s", subject, email_id)
                    return str(email_id) if email_id else None
                logger.error(
                    "Failed to send email: subject=%r status=%s body=%s",
                    subject,
                    response.status_code,
                    response.text[:500],
                )
                return None
        except Exception:
            logger.exception("Error sending email: subject=%r", subject)
            return None

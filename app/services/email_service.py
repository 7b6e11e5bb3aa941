"""
Email service sending notifications through SendGrid.
"""
import asyncio
import logging
from typing import Optional

from python_http_client.exceptions import HTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Content, Email, Mail, To

from app.core.config import settings
from app.schemas.notification import EmailMessage, SendEmailResult

logger = logging.getLogger(__name__)


class EmailService:
    """Sends transactional emails. Never raises into the caller."""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.SENDGRID_API_KEY
        self.from_email = Email(settings.EMAIL_FROM_ADDRESS, settings.EMAIL_FROM_NAME)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def build_message(self, to: str, subject: str, html: str, text: str) -> Mail:
        return Mail(
            from_email=self.from_email,
            to_emails=To(to),
            subject=subject,
            plain_text_content=Content("text/plain", text),
            html_content=Content("text/html", html),
        )

    async def send_email(self, to: str, subject: str, html: str, text: str) -> SendEmailResult:
        """Send a single email and report the outcome."""
        if not settings.ENABLE_EMAIL:
            logger.info(f"Email sending is disabled. Skipped '{subject}' to {to}")
            return SendEmailResult(success=True)

        if not self.is_configured:
            logger.warning(f"SENDGRID_API_KEY not configured. Would send '{subject}' to {to}")
            return SendEmailResult(success=True)

        message = self.build_message(to, subject, html, text)
        try:
            sg = SendGridAPIClient(self.api_key)
            # The SendGrid client is blocking
            response = await asyncio.to_thread(sg.send, message)

            if 200 <= response.status_code < 300:
                logger.info(f"Email '{subject}' sent to {to}")
                return SendEmailResult(success=True, message_id=response.headers.get("X-Message-Id"))

            logger.error(f"SendGrid returned status {response.status_code}: {response.body}")
            return SendEmailResult(success=False, error=f"SendGrid status {response.status_code}")

        except HTTPError as e:
            logger.error(f"SendGrid returned status {e.status_code} for '{subject}' to {to}: {e.body}")
            return SendEmailResult(success=False, error=f"SendGrid status {e.status_code}")
        except Exception as e:
            logger.error(f"Failed to send email '{subject}' to {to}: {str(e)}")
            return SendEmailResult(success=False, error=str(e))

    async def send_message(self, to: Optional[str], message: EmailMessage) -> SendEmailResult:
        """Send a rendered template."""
        if not to:
            return SendEmailResult(success=False, error="Recipient has no email address")
        return await self.send_email(to, message.subject, message.html, message.text)


# Global email service instance
email_service = EmailService()

"""Email service for sending transactional emails."""

import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

import aiosmtplib
import httpx

from sealedlove.config import settings
from sealedlove.services import email_templates
from sealedlove.services.resilience import CircuitBreaker, get_circuit_breaker, with_retry

logger = logging.getLogger(__name__)

SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailDeliveryError(Exception):
    """A required email could not be delivered."""

    pass


@dataclass(frozen=True)
class EmailAttachment:
    """Raw attachment: base64 content plus filename, MIME type and disposition."""

    content: str
    filename: str
    type: str = "application/octet-stream"
    disposition: str = "attachment"


class EmailBackend(ABC):
    """Abstract base class for email backends."""

    @abstractmethod
    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
        *,
        reply_to: str | None = None,
        from_address: str | None = None,
        attachments: list[EmailAttachment] | None = None,
    ) -> bool:
        """Send an email.

        Args:
            to: Recipient email address
            subject: Email subject
            html: HTML content
            text: Plain text content (optional)
            reply_to: Address replies should go to
            from_address: Overrides the configured sender
            attachments: Files to attach

        Returns:
            True if sent successfully
        """
        pass


class ConsoleEmailBackend(EmailBackend):
    """Email backend that logs to console (for development)."""

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
        *,
        reply_to: str | None = None,
        from_address: str | None = None,
        attachments: list[EmailAttachment] | None = None,
    ) -> bool:
        """Log email to console instead of sending."""
        extra = f"Reply-To: {reply_to}\n" if reply_to else ""
        if attachments:
            extra += f"Attachments: {', '.join(a.filename for a in attachments)}\n"
        logger.info(
            f"\n{'='*60}\n"
            f"EMAIL (console backend - not sent)\n"
            f"{'='*60}\n"
            f"To: {to}\n"
            f"Subject: {subject}\n"
            f"{extra}"
            f"{'='*60}\n"
            f"{text or html}\n"
            f"{'='*60}\n"
        )
        return True


class SMTPEmailBackend(EmailBackend):
    """Email backend using SMTP."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        use_tls: bool = True,
        from_address: str = "",
        timeout: float = 30.0,
        circuit: CircuitBreaker | None = None,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address
        self.timeout = timeout
        self.circuit = circuit or CircuitBreaker(name="smtp")

    def build_message(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
        *,
        reply_to: str | None = None,
        from_address: str | None = None,
        attachments: list[EmailAttachment] | None = None,
    ) -> MIMEMultipart:
        body = MIMEMultipart("alternative")
        if text:
            body.attach(MIMEText(text, "plain"))
        body.attach(MIMEText(html, "html"))

        if attachments:
            message = MIMEMultipart("mixed")
            message.attach(body)
            for attachment in attachments:
                maintype, _, subtype = attachment.type.partition("/")
                part = MIMEBase(maintype or "application", subtype or "octet-stream")
                part.set_payload(base64.b64decode(attachment.content))
                encoders.encode_base64(part)
                part.add_header(
                    "Content-Disposition", attachment.disposition, filename=attachment.filename
                )
                message.attach(part)
        else:
            message = body

        message["From"] = from_address or self.from_address
        message["To"] = to
        message["Subject"] = subject
        if reply_to:
            message["Reply-To"] = reply_to
        return message

    async def _deliver(self, message: MIMEMultipart) -> None:
        await aiosmtplib.send(
            message,
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            start_tls=self.use_tls,
            timeout=self.timeout,
        )

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
        *,
        reply_to: str | None = None,
        from_address: str | None = None,
        attachments: list[EmailAttachment] | None = None,
    ) -> bool:
        """Send email via SMTP."""
        message = self.build_message(
            to,
            subject,
            html,
            text,
            reply_to=reply_to,
            from_address=from_address,
            attachments=attachments,
        )

        try:
            await self.circuit.call(with_retry, self._deliver, message)
            logger.info(f"Email sent via SMTP to {to}")
            return True
        except Exception as e:
            logger.error(f"Failed to send email via SMTP to {to}: {e}")
            return False


class SendGridEmailBackend(EmailBackend):
    """Email backend using the SendGrid v3 API."""

    def __init__(
        self,
        api_key: str,
        from_address: str,
        from_name: str | None = None,
        timeout: float = 30.0,
        circuit: CircuitBreaker | None = None,
    ):
        self.api_key = api_key
        self.from_address = from_address
        self.from_name = from_name
        self.timeout = timeout
        self.circuit = circuit or CircuitBreaker(name="sendgrid")

    def build_payload(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
        *,
        reply_to: str | None = None,
        from_address: str | None = None,
        attachments: list[EmailAttachment] | None = None,
    ) -> dict:
        sender: dict[str, str] = {"email": from_address or self.from_address}
        if self.from_name and not from_address:
            sender["name"] = self.from_name

        content = []
        if text:
            content.append({"type": "text/plain", "value": text})
        content.append({"type": "text/html", "value": html})

        payload: dict = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": sender,
            "subject": subject,
            "content": content,
        }
        if reply_to:
            payload["reply_to"] = {"email": reply_to}
        if attachments:
            payload["attachments"] = [
                {
                    "content": a.content,
                    "filename": a.filename,
                    "type": a.type,
                    "disposition": a.disposition,
                }
                for a in attachments
            ]
        return payload

    async def _post(self, payload: dict) -> None:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                SENDGRID_API_URL,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
        *,
        reply_to: str | None = None,
        from_address: str | None = None,
        attachments: list[EmailAttachment] | None = None,
    ) -> bool:
        """Send email via SendGrid."""
        payload = self.build_payload(
            to,
            subject,
            html,
            text,
            reply_to=reply_to,
            from_address=from_address,
            attachments=attachments,
        )

        try:
            await self.circuit.call(with_retry, self._post, payload)
            logger.info(f"Email sent via SendGrid to {to}")
            return True
        except httpx.HTTPStatusError as e:
            logger.error(f"SendGrid API error: {e.response.status_code} - {e.response.text}")
            return False
        except Exception as e:
            logger.error(f"Failed to send email via SendGrid to {to}: {e}")
            return False


def get_email_backend() -> EmailBackend:
    """Get the configured email backend."""
    if settings.email_backend == "console":
        return ConsoleEmailBackend()
    elif settings.email_backend == "smtp":
        return SMTPEmailBackend(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_address=formataddr((settings.email_from_name, settings.email_from)),
            timeout=settings.email_timeout_seconds,
            circuit=get_circuit_breaker("smtp"),
        )
    elif settings.email_backend == "sendgrid":
        return SendGridEmailBackend(
            api_key=settings.sendgrid_api_key,
            from_address=settings.email_from,
            from_name=settings.email_from_name,
            timeout=settings.email_timeout_seconds,
            circuit=get_circuit_breaker("sendgrid"),
        )
    else:
        raise ValueError(f"Unknown email backend: {settings.email_backend}")


class EmailService:
    """High-level email service for sending application emails."""

    def __init__(self, backend: EmailBackend | None = None):
        self._backend = backend

    @property
    def backend(self) -> EmailBackend:
        """Lazy-load the backend."""
        if self._backend is None:
            self._backend = get_email_backend()
        return self._backend

    async def _send(self, to: str, rendered: email_templates.RenderedEmail, **kwargs) -> bool:
        return await self.backend.send(
            to=to, subject=rendered.subject, html=rendered.html, text=rendered.text, **kwargs
        )

    async def send_verification(self, to: str, verification_code: str, url: str) -> bool:
        """Send the sign-in email with the login code and magic link."""
        rendered = email_templates.verification_email(
            verification_code, url, ttl_minutes=settings.verification_ttl_seconds // 60
        )
        return await self._send(to, rendered)

    async def send_welcome(self, to: str, name: str | None = None) -> bool:
        """Send the first-sign-in welcome email."""
        return await self._send(to, email_templates.welcome_email(to, name))

    async def send_contact_message(
        self, name: str, email: str, subject: str, message: str
    ) -> bool:
        """Forward a contact form submission to the site owner."""
        if not settings.contact_email:
            raise EmailDeliveryError("Contact email address is not configured")
        rendered = email_templates.contact_form_email(name, email, subject, message)
        return await self._send(settings.contact_email, rendered, reply_to=email)


# Global email service instance
email_service = EmailService()


def get_email_service() -> EmailService:
    """FastAPI dependency returning the global email service."""
    return email_service

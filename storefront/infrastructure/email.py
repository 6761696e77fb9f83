"""Outbound email.

Two dispatchers share one interface: ``SmtpEmailDispatcher`` hands mail to
an SMTP server with aiosmtplib, ``LogEmailDispatcher`` writes it to the log
for local development. ``get_email_dispatcher`` picks one from settings.
"""

from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

import aiosmtplib
import structlog

from storefront.domain.exceptions import EmailDeliveryError
from storefront.domain.value_objects import OtpPurpose
from storefront.infrastructure.config import settings

logger = structlog.get_logger()


class EmailDispatcher(Protocol):
    """Anything that can deliver an HTML email."""

    async def send(self, to: str, subject: str, html: str) -> None:
        """Deliver a message or raise EmailDeliveryError."""
        ...


# ============================================================================
# Dispatchers
# ============================================================================


class SmtpEmailDispatcher:
    """Send mail through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        from_email: str = "",
        from_name: str = "",
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = f"{from_name} <{from_email}>" if from_name else from_email

    async def send(self, to: str, subject: str, html: str) -> None:
        """Send an HTML email with a plain-text fallback.

        Args:
            to: Recipient address.
            subject: Subject line.
            html: HTML body.

        Raises:
            EmailDeliveryError: If the SMTP exchange fails.
        """
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML-capable email client.")
        message.add_alternative(html, subtype="html")

        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                start_tls=self.use_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("Email delivery failed", recipient=to, subject=subject, error=str(e))
            raise EmailDeliveryError(to, str(e)) from e

        logger.info("Email sent", recipient=to, subject=subject)


class LogEmailDispatcher:
    """Write outgoing mail to the log instead of sending it."""

    async def send(self, to: str, subject: str, html: str) -> None:
        logger.info("Email captured (no SMTP host configured)", recipient=to, subject=subject)


_dispatcher: EmailDispatcher | None = None


def get_email_dispatcher() -> EmailDispatcher:
    """Get the process-wide email dispatcher.

    Returns:
        SMTP dispatcher when an SMTP host is configured, log dispatcher otherwise.
    """
    global _dispatcher
    if _dispatcher is None:
        if settings.smtp_host:
            _dispatcher = SmtpEmailDispatcher(
                host=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_username,
                password=settings.smtp_password,
                use_tls=settings.smtp_use_tls,
                from_email=settings.smtp_from_email,
                from_name=settings.smtp_from_name,
            )
        else:
            _dispatcher = LogEmailDispatcher()
    return _dispatcher


# ============================================================================
# Templates
# ============================================================================


@dataclass(frozen=True)
class RenderedEmail:
    """Subject and body ready to dispatch."""

    subject: str
    html: str


_OTP_COPY: dict[OtpPurpose, tuple[str, str]] = {
    OtpPurpose.REGISTER: (
        "Verify your email",
        "Thanks for signing up. Use the code below to verify your email address.",
    ),
    OtpPurpose.LOGIN: (
        "Your login code",
        "Use the code below to finish signing in.",
    ),
    OtpPurpose.PASSWORD_RESET: (
        "Reset your password",
        "Use the code below to reset your password. If you did not ask for this, ignore this email.",
    ),
}


def render_otp_email(purpose: OtpPurpose, username: str, code: str, ttl_minutes: int) -> RenderedEmail:
    """Render the passcode email for a purpose.

    Args:
        purpose: What the code authorizes.
        username: Recipient display name.
        code: Plaintext code.
        ttl_minutes: Minutes until the code expires.

    Returns:
        Subject and HTML body.
    """
    subject, intro = _OTP_COPY[purpose]
    name = username or "there"
    html = (
        '<div style="font-family: Arial, sans-serif; max-width: 480px; margin: auto;">'
        f"<h2>{settings.smtp_from_name}</h2>"
        f"<p>Hi {name},</p>"
        f"<p>{intro}</p>"
        f'<p style="font-size: 28px; font-weight: bold; letter-spacing: 6px;">{code}</p>'
        f"<p>This code expires in {ttl_minutes} minutes.</p>"
        "</div>"
    )
    return RenderedEmail(subject=f"{settings.smtp_from_name}: {subject}", html=html)

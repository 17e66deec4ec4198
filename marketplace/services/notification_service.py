"""
Mail notifications for split billing.

Handles:
- Invitation emails to the invitee address
- SMTP transport for production, in-memory transport for tests

Delivery is fire-and-forget: transports log failures and return False
instead of raising, so a slow or broken mail server never affects the
invitation that triggered the message.
"""

import logging
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

from marketplace.config import settings
from marketplace.models import BillingInvitation
from marketplace.services.locale_service import format_date

logger = logging.getLogger(__name__)


@dataclass
class MailMessage:
    """Composed email ready for a transport."""

    to: str
    subject: str
    body: str


class MailTransport(ABC):
    """Abstract base class for mail transports."""

    @abstractmethod
    def send(self, message: MailMessage) -> bool:
        """Send a message.

        Returns:
            bool: True if successful, False otherwise
        """


class MockTransport(MailTransport):
    """In-memory transport that records messages instead of sending them."""

    def __init__(self):
        self.messages: list[MailMessage] = []

    def send(self, message: MailMessage) -> bool:
        self.messages.append(message)
        logger.debug(f"[MOCK] Mail queued for {message.to}: {message.subject}")
        return True

    def get_messages(self, to: Optional[str] = None) -> list[MailMessage]:
        if to is None:
            return self.messages
        return [m for m in self.messages if m.to == to]

    def clear(self):
        self.messages = []


class SmtpTransport(MailTransport):
    """SMTP transport configured from settings (SMTP_HOST, SMTP_USER, ...)."""

    def send(self, message: MailMessage) -> bool:
        if not settings.smtp_host:
            logger.warning(f"SMTP not configured, skipping mail to {message.to}")
            return False

        email = EmailMessage()
        email["Subject"] = message.subject
        email["From"] = f"{settings.mail_from_name} <{settings.mail_from}>"
        email["To"] = message.to
        email.set_content(message.body)

        try:
            with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as smtp:
                smtp.ehlo()
                if settings.smtp_user:
                    smtp.starttls()
                    smtp.login(settings.smtp_user, settings.smtp_password)
                smtp.send_message(email)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send mail to {message.to}: {e}")
            return False

        logger.info(f"Mail sent to {message.to}: {message.subject}")
        return True


class NotificationService:
    """Composes billing emails and hands them to a transport."""

    def __init__(self, transport: Optional[MailTransport] = None):
        self.transport = transport or SmtpTransport()

    def build_invitation_message(self, invitation: BillingInvitation) -> MailMessage:
        """Compose the invitation email. Must run while the invitation is attached to a session."""
        inviter = invitation.inviter
        accept_url = f"{settings.panel_url.rstrip('/')}/billing/invitations/{invitation.token}"

        lines = [
            f"{inviter.full_name} ({inviter.email}) invited you to split the billing "
            f"of the server \"{invitation.server.name}\".",
            "",
            f"Your share: {invitation.share_percentage}% of the recurring cost.",
        ]
        if invitation.message:
            lines += ["", f"Message: {invitation.message}"]
        lines += [
            "",
            f"Accept or decline here: {accept_url}",
            f"This invitation expires on {format_date(invitation.expires_at)}.",
        ]

        return MailMessage(
            to=invitation.invitee_email,
            subject=f"Billing invitation for {invitation.server.name}",
            body="\n".join(lines),
        )

    def deliver(self, message: MailMessage) -> bool:
        logger.info(f"Delivering '{message.subject}' to {message.to}")
        return self.transport.send(message)


# Global service instance (initialized in main.py or by tests)
_service_instance: Optional[NotificationService] = None


def init_notification_service(transport: Optional[MailTransport] = None) -> NotificationService:
    """Initialize global notification service.

    Args:
        transport: Optional transport implementation
    """
    global _service_instance
    _service_instance = NotificationService(transport)
    return _service_instance


def get_notification_service() -> NotificationService:
    """Get the global notification service instance (SMTP by default)."""
    global _service_instance
    if _service_instance is None:
        _service_instance = NotificationService()
    return _service_instance


__all__ = [
    "MailMessage",
    "MailTransport",
    "MockTransport",
    "SmtpTransport",
    "NotificationService",
    "init_notification_service",
    "get_notification_service",
]

"""Email notifier for verification and password-reset links."""

from __future__ import annotations

import logging
from typing import Optional, Protocol
from urllib.parse import urlencode

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import ClickTracking, Mail, TrackingSettings

from .tokens import TokenPurpose

logger = logging.getLogger(__name__)

LINK_PATHS = {
    TokenPurpose.EMAIL_VERIFICATION: "/verify-email",
    TokenPurpose.PASSWORD_RESET: "/reset-password",
}

_MESSAGES = {
    TokenPurpose.EMAIL_VERIFICATION: (
        "Verify your email",
        "Hello,\n\n"
        "Thank you for creating an account. Please verify your email address "
        "by opening the link below within 24 hours:\n"
        "{link}\n\n"
        "If you did not create an account, you can ignore this email.",
    ),
    TokenPurpose.PASSWORD_RESET: (
        "Reset your password",
        "Hello,\n\n"
        "A password reset was requested for your account.\n"
        "Use the following link to set a new password:\n{link}\n\n"
        "If you did not request this, you can safely ignore this message.",
    ),
}
_DEFAULT_MESSAGE = ("Account notification", "Hello,\n\n{link}\n")


class Notifier(Protocol):
    def send(self, to_address: str, link: str, purpose: Optional[TokenPurpose] = None) -> None:
        ...


def build_link(base_url: str, purpose: TokenPurpose, token: str) -> str:
    path = LINK_PATHS[TokenPurpose(purpose)]
    return f"{base_url.rstrip('/')}{path}?{urlencode({'token': token})}"


class EmailService:
    """Deliver links through SendGrid, or log them when no API key is set."""

    def __init__(self, *, sender: str, api_key: Optional[str] = None) -> None:
        self.sender = sender
        self.api_key = api_key

    def send(self, to_address: str, link: str, purpose: Optional[TokenPurpose] = None) -> None:
        subject, template = _MESSAGES.get(purpose, _DEFAULT_MESSAGE)
        body = template.format(link=link)
        if not self.api_key:
            logger.warning("SendGrid API key missing; logging message instead.")
            logger.info("Email to %s\nSubject: %s\n%s", to_address, subject, body)
            return
        self._send_via_sendgrid(to_address, subject, body)

    def _send_via_sendgrid(self, recipient: str, subject: str, body: str) -> None:
        message = Mail(
            from_email=self.sender,
            to_emails=recipient,
            subject=subject,
            plain_text_content=body,
        )
        # Links must reach the recipient unmodified.
        message.tracking_settings = TrackingSettings(
            click_tracking=ClickTracking(enable=False, enable_text=False)
        )

        client = SendGridAPIClient(self.api_key)
        response = client.send(message)

        status = getattr(response, "status_code", None)
        if status and status >= 400:
            body_bytes = getattr(response, "body", b"")
            detail = (
                body_bytes.decode("utf-8", errors="ignore")
                if isinstance(body_bytes, (bytes, bytearray))
                else body_bytes
            )
            raise RuntimeError(f"SendGrid API responded with {status}: {detail}")

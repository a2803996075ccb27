"""Transactional mail delivered through the Gmail API."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Dict, Optional, Tuple

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..config import CONFIG
from ..db import VerificationPurpose
from ..logger import tagged


GMAIL_SEND_SCOPES: Tuple[str, ...] = ("https://www.googleapis.com/auth/gmail.send",)
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


class MailNotConfiguredError(RuntimeError):
    """Raised when the Gmail sender credentials are not configured."""


class MailDeliveryError(RuntimeError):
    """Raised when Gmail refuses or fails to deliver a message."""


_mail_log = tagged("mail")


_TEXT_STYLE = (
    "padding-top: 8px; display: block; font-size: 16px; color: #525f7f; "
    "font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', 'Roboto', 'Helvetica Neue', 'Ubuntu';"
)
_TITLE_STYLE = (
    "line-height: 28px; font-size: 20px; color: #32325d; "
    "font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', 'Roboto', 'Helvetica Neue', 'Ubuntu';"
)


@dataclass(frozen=True)
class VerificationTemplate:
    subject: str
    title: str
    lines: Tuple[str, ...]


VERIFICATION_TEMPLATES: Dict[VerificationPurpose, VerificationTemplate] = {
    VerificationPurpose.SIGNUP: VerificationTemplate(
        subject="Signup verification",
        title="Signup verification",
        lines=(
            "We are happy that you've chosen to sign up!",
            "To complete your signup process, please verify your account by entering the verification code provided below:",
        ),
    ),
    VerificationPurpose.FORGOT_PASSWORD: VerificationTemplate(
        subject="Forgot Password",
        title="Forgot your password?",
        lines=(
            "We received a request to reset the password for your account.",
            "To complete your password reset process, please verify your account by entering the verification code provided below:",
        ),
    ),
}


def render_verification_mail(
    purpose: VerificationPurpose,
    *,
    code: int,
    name: Optional[str] = None,
    sender_name: Optional[str] = None,
) -> Tuple[str, str]:
    """Return ``(subject, html)`` for a verification code message."""

    template = VERIFICATION_TEMPLATES[VerificationPurpose(purpose)]
    signature = sender_name or CONFIG.mail_sender_name
    greeting = f"Hello {name}," if name else "Hello,"
    paragraphs = "".join(f'<span style="{_TEXT_STYLE}">{line}</span>' for line in template.lines)
    html = (
        '<div style="width: 100%; margin: 0; background-color: #f6f9fc;">'
        '<div style="width: 100%; max-width: 600px; margin: 0 auto; background-color: #fff; padding: 32px 40px;">'
        f'<span style="{_TITLE_STYLE}">{template.title}</span>'
        f'<span style="{_TEXT_STYLE}">{greeting}</span>'
        f"{paragraphs}"
        f'<span style="{_TEXT_STYLE} font-size: 24px; letter-spacing: 4px;">{code}</span>'
        f'<span style="{_TEXT_STYLE}">-- {signature}</span>'
        "</div></div>"
    )
    return template.subject, html


class GmailMailService:
    """Send HTML mail from a single sender account using a stored refresh token."""

    def __init__(
        self,
        *,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        refresh_token: Optional[str] = None,
        sender_address: Optional[str] = None,
        sender_name: Optional[str] = None,
    ) -> None:
        self.client_id = client_id or CONFIG.google_client_id
        self.client_secret = client_secret or CONFIG.google_client_secret
        self.refresh_token = refresh_token or CONFIG.google_refresh_token
        self.sender_address = sender_address or CONFIG.mail_sender_address
        self.sender_name = sender_name or CONFIG.mail_sender_name
        if not all([self.client_id, self.client_secret, self.refresh_token, self.sender_address]):
            raise MailNotConfiguredError(
                "Gmail sender is not configured. Please set GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, "
                "GOOGLE_REFRESH_TOKEN and MAIL_SENDER_ADDRESS.",
            )
        self._credentials: Optional[Credentials] = None

    def _build_credentials(self) -> Credentials:
        if self._credentials is None:
            self._credentials = Credentials(
                token=None,
                refresh_token=self.refresh_token,
                token_uri=GOOGLE_TOKEN_URI,
                client_id=self.client_id,
                client_secret=self.client_secret,
                scopes=list(GMAIL_SEND_SCOPES),
            )
        if not self._credentials.valid:
            try:
                self._credentials.refresh(Request())
            except RefreshError as exc:
                raise MailDeliveryError(f"Gmail credentials could not be refreshed: {exc}") from exc
        return self._credentials

    def _build_service(self, credentials: Credentials):
        return build("gmail", "v1", credentials=credentials, cache_discovery=False)

    def send_html(self, *, to: str, subject: str, html: str) -> Dict[str, Any]:
        message = EmailMessage()
        message["From"] = formataddr((self.sender_name, self.sender_address))
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html, subtype="html")

        raw_message = base64.urlsafe_b64encode(message.as_bytes()).decode("utf-8")
        service = self._build_service(self._build_credentials())
        try:
            response = service.users().messages().send(userId="me", body={"raw": raw_message}).execute()
        except HttpError as exc:
            raise MailDeliveryError(f"Gmail API error when sending message: {exc}") from exc
        _mail_log("sent message", subject=subject, message_id=response.get("id"))
        return response

    def send_verification_code(
        self,
        purpose: VerificationPurpose,
        *,
        email: str,
        code: int,
        name: Optional[str] = None,
    ) -> Dict[str, Any]:
        subject, html = render_verification_mail(purpose, code=code, name=name, sender_name=self.sender_name)
        return self.send_html(to=email, subject=subject, html=html)


_mail_service: Optional[GmailMailService] = None


def get_mail_service() -> GmailMailService:
    """Get the global mail service instance."""
    global _mail_service
    if _mail_service is None:
        _mail_service = GmailMailService()
    return _mail_service


def reset_mail_service() -> None:
    global _mail_service
    _mail_service = None


__all__ = [
    "GmailMailService",
    "MailDeliveryError",
    "MailNotConfiguredError",
    "VERIFICATION_TEMPLATES",
    "get_mail_service",
    "render_verification_mail",
    "reset_mail_service",
]

"""
Transactional email delivery.

Account emails (verification links, recovery codes) go out through SMTP
when it is configured. Without SMTP the console provider logs them, which
is what development and the test suite use.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.message import EmailMessage as MIMEMessage
from typing import Optional

import aiosmtplib

from marketplace.config import settings

logger = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465


@dataclass
class EmailMessage:
    to: str
    subject: str
    html_body: str
    plain_text_body: str
    reply_to: Optional[str] = None
    tag: str = ""  # verification | recovery, used in logs only


@dataclass
class SendResult:
    success: bool
    provider: str = ""
    error: Optional[str] = None


class EmailProvider(ABC):
    name = "abstract"

    @abstractmethod
    async def send(self, message: EmailMessage) -> SendResult:
        ...

    @abstractmethod
    def is_configured(self) -> bool:
        ...


class SMTPProvider(EmailProvider):
    """Sends through an SMTP relay; port 465 means implicit TLS, anything else STARTTLS."""

    name = "smtp"

    def __init__(self, host: str, port: int, username: str, password: str, from_email: str):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email

    @classmethod
    def from_settings(cls) -> "SMTPProvider":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USER,
            password=settings.SMTP_PASS,
            from_email=settings.EMAIL_FROM or settings.SMTP_USER,
        )

    def is_configured(self) -> bool:
        return all((self.host, self.username, self.password))

    def build(self, message: EmailMessage) -> MIMEMessage:
        mime = MIMEMessage()
        mime["From"] = self.from_email
        mime["To"] = message.to
        mime["Subject"] = message.subject
        if message.reply_to:
            mime["Reply-To"] = message.reply_to
        mime.set_content(message.plain_text_body)
        mime.add_alternative(message.html_body, subtype="html")
        return mime

    async def send(self, message: EmailMessage) -> SendResult:
        if not self.is_configured():
            return SendResult(success=False, provider=self.name, error="SMTP not configured")

        implicit_tls = self.port == IMPLICIT_TLS_PORT
        try:
            await aiosmtplib.send(
                self.build(message),
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                use_tls=implicit_tls,
                start_tls=not implicit_tls,
                timeout=30,
            )
        except aiosmtplib.SMTPException as e:
            logger.exception(f"SMTP delivery of {message.tag or 'email'} to {message.to} failed")
            return SendResult(success=False, provider=self.name, error=str(e))

        logger.info(f"Sent {message.tag or 'email'} to {message.to}")
        return SendResult(success=True, provider=self.name)


class ConsoleProvider(EmailProvider):
    """Logs the plain text body instead of sending anything."""

    name = "console"

    def is_configured(self) -> bool:
        return True

    async def send(self, message: EmailMessage) -> SendResult:
        logger.info(
            f"[email:{message.tag or 'generic'}] to={message.to} subject={message.subject!r}\n"
            f"{message.plain_text_body}"
        )
        return SendResult(success=True, provider=self.name)


def get_email_provider(console_mode: Optional[bool] = None) -> EmailProvider:
    """SMTP when configured, otherwise (or when ``console_mode`` is set) the console."""
    if console_mode:
        return ConsoleProvider()

    smtp = SMTPProvider.from_settings()
    if smtp.is_configured():
        return smtp

    if settings.is_production:
        logger.warning("SMTP is not configured; emails will only be logged")
    return ConsoleProvider()

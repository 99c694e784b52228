"""
Outbound mail over SMTP (STARTTLS).

One Mailer per process, built from app config. Send failures raise
MailerError; callers decide whether a failed recipient fails their job.
"""
import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Optional

logger = logging.getLogger(__name__)


class MailerError(RuntimeError):
    """SMTP is not configured or the server rejected the message."""
    pass


class Mailer:
    def __init__(
        self,
        host: Optional[str],
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: int = 15,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "Mailer":
        return cls(
            host=config.get("SMTP_HOST"),
            port=config.get("SMTP_PORT", 587),
            username=config.get("SMTP_USER"),
            password=config.get("SMTP_PASS"),
            sender=config.get("SMTP_FROM"),
        )

    @property
    def configured(self) -> bool:
        return bool(self.host and self.username and self.password)

    def build_message(self, to: str, subject: str, html: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg.set_content("This email requires an HTML capable client.")
        msg.add_alternative(html, subtype="html")
        return msg

    def send(self, to: str, subject: str, html: str) -> None:
        if not self.configured:
            raise MailerError("SMTP_HOST, SMTP_USER and SMTP_PASS are required")

        msg = self.build_message(to, subject, html)
        try:
            if self.port == 465:
                server = smtplib.SMTP_SSL(
                    self.host, self.port, timeout=self.timeout, context=ssl.create_default_context()
                )
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            with server:
                if self.port != 465:
                    server.starttls(context=ssl.create_default_context())
                server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("failed to send email to=%s subject=%s err=%s", to, subject, e)
            raise MailerError(str(e)) from e

        logger.info("email sent to=%s subject=%s", to, subject)

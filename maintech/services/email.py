"""Transactional email delivery."""
import html
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional
from urllib.parse import urlencode

import structlog
from starlette.concurrency import run_in_threadpool

from ..config import settings
from ..core.logging import redact_email

logger = structlog.get_logger(__name__)


APPROVAL_TEMPLATE = """\
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; color: #1f2933;">
  <h2>Bienvenue sur MainTech</h2>
  <p>Voici votre code d'approbation :</p>
  <p style="font-size: 28px; font-weight: bold; letter-spacing: 6px;">{approval_code}</p>
  <p>Saisissez ce code dans l'application pour activer votre compte.</p>
</body>
</html>
"""

RESET_TEMPLATE = """\
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; color: #1f2933;">
  <p>Vous avez demandé une réinitialisation de mot de passe.</p>
  <p>Cliquez sur le lien ci-dessous pour réinitialiser votre mot de passe :</p>
  <a href="{reset_link}">Réinitialiser le mot de passe</a>
  <p>Ce lien expire dans {expire_minutes} minutes.</p>
</body>
</html>
"""


class EmailService:
    """Email service for sending transactional emails.

    Falls back to logging when SMTP is not configured (dev mode). Sending
    never raises: failures are logged and reported as False.
    """

    def __init__(
        self,
        *,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_use_tls: bool = True,
        from_email: Optional[str] = None,
        from_name: str = "MainTech",
        frontend_url: str = "http://localhost:5173",
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.frontend_url = frontend_url.rstrip("/")

    @classmethod
    def from_settings(cls) -> "EmailService":
        return cls(
            smtp_host=settings.smtp.host,
            smtp_port=settings.smtp.port,
            smtp_user=settings.smtp.user,
            smtp_password=settings.smtp.password,
            smtp_use_tls=settings.smtp.use_tls,
            from_email=settings.smtp.from_email,
            from_name=settings.smtp.from_name,
            frontend_url=settings.api.frontend_url,
        )

    @property
    def is_configured(self) -> bool:
        """Check if email sending is properly configured."""
        return bool(self.smtp_host and self.from_email)

    def _send_email(self, to_email: str, subject: str, html_body: str) -> bool:
        """Send an email via SMTP.

        Returns True if sent successfully, False otherwise.
        """
        if not self.is_configured:
            logger.info(
                "email_dev_mode",
                to=redact_email(to_email),
                subject=subject,
            )
            return True

        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = f"{self.from_name} <{self.from_email}>"
            msg["To"] = to_email
            msg.attach(MIMEText(html_body, "html", "utf-8"))

            context = ssl.create_default_context()

            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
            else:
                with smtplib.SMTP_SSL(
                    self.smtp_host, self.smtp_port, context=context, timeout=30
                ) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())

            logger.info("email_sent", to=redact_email(to_email), subject=subject)
            return True

        except smtplib.SMTPAuthenticationError as e:
            logger.error(
                "email_auth_failed",
                to=redact_email(to_email),
                host=self.smtp_host,
                error=str(e),
            )
            return False
        except smtplib.SMTPRecipientsRefused as e:
            logger.error(
                "email_recipient_refused",
                to=redact_email(to_email),
                error=str(e),
            )
            return False
        except (smtplib.SMTPException, ssl.SSLError, OSError) as e:
            logger.error(
                "email_send_failed",
                to=redact_email(to_email),
                host=self.smtp_host,
                port=self.smtp_port,
                error_type=type(e).__name__,
                error=str(e),
            )
            return False

    async def send(self, to_email: str, subject: str, html_body: str) -> bool:
        """Send without blocking the event loop."""
        return await run_in_threadpool(self._send_email, to_email, subject, html_body)

    async def send_approval_code(self, to_email: str, approval_code: str) -> bool:
        """Send the account approval code."""
        body = APPROVAL_TEMPLATE.format(approval_code=html.escape(approval_code))
        return await self.send(to_email, "Code d'approbation de votre compte", body)

    def reset_link(self, to_email: str, token: str) -> str:
        query = urlencode({"token": token, "email": to_email})
        return f"{self.frontend_url}/reset-password?{query}"

    async def send_password_reset(
        self,
        to_email: str,
        token: str,
        expire_minutes: int
    ) -> bool:
        """Send password reset email with reset link."""
        body = RESET_TEMPLATE.format(
            reset_link=html.escape(self.reset_link(to_email, token), quote=True),
            expire_minutes=expire_minutes,
        )
        return await self.send(to_email, "Demande de réinitialisation de mot de passe", body)


# Global email service instance
email_service = EmailService.from_settings()


def get_email_service() -> EmailService:
    """Dependency returning the email service."""
    return email_service

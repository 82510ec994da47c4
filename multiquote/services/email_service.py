"""Service for sending emails."""

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from ..domain.errors import UpstreamDispatchFailure

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending emails via SMTP."""

    def __init__(
        self,
        smtp_host: str = "",
        smtp_port: int = 465,
        smtp_username: str = "",
        smtp_password: str = "",
        from_email: str = "",
        from_name: str = "Multiquote-app",
        max_retries: int = 3,
        retry_backoff_seconds: float = 0.5,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.from_email = from_email
        self.from_name = from_name
        self.max_retries = max(1, max_retries)
        self.retry_backoff_seconds = retry_backoff_seconds
        self.enabled = bool(self.smtp_host and self.smtp_username and self.from_email)

    async def send(self, to_email: str, subject: str, text_body: str, html_body: Optional[str] = None) -> None:
        """
        Deliver a message, retrying transient failures with exponential backoff.

        Raises:
            UpstreamDispatchFailure: If every attempt failed
        """
        if not self.enabled:
            logger.warning("SMTP is not configured; email '%s' to %s was not sent.", subject, to_email)
            logger.debug("Undelivered email body for %s:\n%s", to_email, text_body)
            return

        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                await asyncio.to_thread(self._send_email, to_email, subject, html_body, text_body)
                logger.info("Email '%s' sent to %s", subject, to_email)
                return
            except (smtplib.SMTPException, OSError) as exc:
                last_error = exc
                logger.warning(
                    "Email attempt %s/%s to %s failed: %s", attempt, self.max_retries, to_email, exc
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(self.retry_backoff_seconds * (2 ** (attempt - 1)))

        logger.error("Giving up on email '%s' to %s after %s attempts", subject, to_email, self.max_retries)
        raise UpstreamDispatchFailure() from last_error

    async def send_verification_code_email(self, to_email: str, full_name: str, code: str, ttl_minutes: int) -> None:
        text_body = f"""
Hi {full_name},

Your verification code is:

{code}

This code will expire in {ttl_minutes} minutes.

Best,
Your Multiquote-app Team
"""
        html_body = f"""
<!DOCTYPE html>
<html>
<body style="font-family: sans-serif;">
  <p>Hi {full_name},</p>
  <p>Your verification code is:</p>
  <h2>{code}</h2>
  <p>This code will expire in {ttl_minutes} minutes.</p>
  <p>Best regards,<br/>Your Multiquote-app Team</p>
</body>
</html>
"""
        await self.send(to_email, "Your Verification Code", text_body, html_body)

    async def send_user_password_email(self, to_email: str, first_name: str, password: str, reason: str = "create") -> None:
        if reason == "update":
            intro = "Your password has been updated by an administrator."
        else:
            intro = "Your account has been created."
        text_body = f"""
Hi {first_name},

{intro} You can now log in using this password:

Password: {password}

Please change it after logging in.

Best regards,
Multiquote-app Team
"""
        html_body = f"""
<!DOCTYPE html>
<html>
<body style="font-family: sans-serif;">
  <div style="max-width: 600px; margin: auto; padding: 20px;">
    <h3>Hi {first_name},</h3>
    <p>{intro} You can now log in with the password below:</p>
    <p style="font-size: 20px; font-weight: bold;">{password}</p>
    <br/>
    <p>Best regards,<br/>Multiquote-app Team</p>
  </div>
</body>
</html>
"""
        await self.send(to_email, "Your Account Password", text_body, html_body)

    def _send_email(self, to_email: str, subject: str, html_body: Optional[str], text_body: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email

        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        if html_body:
            msg.attach(MIMEText(html_body, "html", "utf-8"))

        if self.smtp_port == 465:
            with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, timeout=30) as server:
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)
            return

        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
            server.starttls()
            server.login(self.smtp_username, self.smtp_password)
            server.send_message(msg)

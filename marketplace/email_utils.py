import smtplib
from email.mime.text import MIMEText
from email.utils import formataddr
import logging

from marketplace.config import settings

logger = logging.getLogger(__name__)


def _frontend_url(path: str) -> str:
    base_url = str(settings.frontend_base_url).rstrip("/")
    return f"{base_url}{path}"


def _send(to_email: str, subject: str, body: str) -> None:
    if not settings.smtp_host:
        logger.info(f"SMTP not configured; skipping '{subject}' email to {to_email}")
        return

    msg = MIMEText(body)
    msg["Subject"] = subject
    msg["From"] = formataddr((settings.smtp_from_name, settings.smtp_from_email))
    msg["To"] = to_email

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            server.starttls()
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password)
            server.sendmail(settings.smtp_from_email, [to_email], msg.as_string())
        logger.info(f"'{subject}' email sent to {to_email}")
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send '{subject}' email to {to_email}: {e}")
        # Do not raise; account flows respond the same whether or not mail went out


def send_verification_email(to_email: str, first_name: str, raw_token: str) -> None:
    verify_url = _frontend_url(f"/auth/verify-email/{raw_token}")
    body = (
        f"Hi {first_name},\n\n"
        f"Please confirm your email address to start buying and publishing courses:\n"
        f"{verify_url}\n\n"
        f"This link expires in {settings.email_verification_expire_hours} hours.\n\n"
        f"Thanks,\n"
        f"{settings.smtp_from_name}"
    )
    _send(to_email, "Verify your email address", body)


def send_reset_password_email(to_email: str, first_name: str, raw_token: str) -> None:
    reset_url = _frontend_url(f"/auth/reset-password/{raw_token}")
    body = (
        f"Hi {first_name},\n\n"
        f"We received a request to reset your password.\n\n"
        f"Click the link below to choose a new password:\n{reset_url}\n\n"
        f"If you did not request this, you can safely ignore this email.\n\n"
        f"Thanks,\n"
        f"{settings.smtp_from_name}"
    )
    _send(to_email, "Reset your password", body)

import logging
import smtplib
from email.message import EmailMessage
from urllib.parse import urlencode

from proflink.core import config

logger = logging.getLogger(__name__)


def build_verification_link(token: str) -> str:
    return f"{config.FRONTEND_BASE_URL.rstrip('/')}/verify-email?{urlencode({'token': token})}"


def send_email(to_address: str, subject: str, body: str) -> None:
    if not config.SMTP_HOST:
        # No mail relay configured; log the message instead.
        logger.info("Email to %s not sent (SMTP_HOST unset). Subject: %s\n%s", to_address, subject, body)
        return

    message = EmailMessage()
    message["From"] = config.EMAIL_FROM_ADDRESS
    message["To"] = to_address
    message["Subject"] = subject
    message.set_content(body)

    with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=10) as smtp:
        if config.SMTP_USE_TLS:
            smtp.starttls()
        if config.SMTP_USERNAME:
            smtp.login(config.SMTP_USERNAME, config.SMTP_PASSWORD)
        smtp.send_message(message)
    logger.info("Email sent to %s: %s", to_address, subject)


def send_verification_email(to_address: str, name: str, token: str) -> None:
    link = build_verification_link(token)
    body = (
        f"Hi {name or to_address},\n\n"
        "Welcome to ProfLink. Please verify your email address to finish setting up your account:\n\n"
        f"{link}\n\n"
        "If you did not create this account you can ignore this message.\n"
    )
    send_email(to_address, "Verify your ProfLink email", body)

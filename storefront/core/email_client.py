# storefront/core/email_client.py
"""
Outgoing mail for order notifications.

SMTP settings come from `Settings` (SMTP_HOST, SMTP_PORT, SMTP_USERNAME,
SMTP_PASSWORD, SMTP_FROM_EMAIL, SMTP_FROM_NAME, SMTP_USE_TLS, SMTP_USE_SSL).

Typical setups:
  * SSL:      SMTP_PORT=465, SMTP_USE_SSL=true,  SMTP_USE_TLS=false
  * STARTTLS: SMTP_PORT=587, SMTP_USE_SSL=false, SMTP_USE_TLS=true
"""

import logging
import smtplib
from email.message import EmailMessage

from storefront.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def is_configured(settings: Settings | None = None) -> bool:
    """True when host and credentials are all present."""
    settings = settings or get_settings()
    return bool(settings.SMTP_HOST and settings.SMTP_USERNAME and settings.SMTP_PASSWORD)


def build_message(
    to_email: str,
    subject: str,
    text_body: str,
    html_body: str | None = None,
    settings: Settings | None = None,
) -> EmailMessage:
    settings = settings or get_settings()
    sender = settings.SMTP_FROM_EMAIL or settings.SMTP_USERNAME

    msg = EmailMessage()
    msg["From"] = f"{settings.SMTP_FROM_NAME} <{sender}>"
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(text_body)
    if html_body:
        msg.add_alternative(html_body, subtype="html")
    return msg


def _connect(settings: Settings) -> smtplib.SMTP:
    if settings.SMTP_USE_SSL:
        return smtplib.SMTP_SSL(
            settings.SMTP_HOST,
            settings.SMTP_PORT,
            timeout=settings.SMTP_TIMEOUT_SECONDS,
        )

    server = smtplib.SMTP(
        settings.SMTP_HOST,
        settings.SMTP_PORT,
        timeout=settings.SMTP_TIMEOUT_SECONDS,
    )
    if settings.SMTP_USE_TLS:
        server.starttls()
    return server


def send_email(
    to_email: str,
    subject: str,
    text_body: str,
    html_body: str | None = None,
) -> None:
    """
    Send one message to a single recipient.

    Raises:
        RuntimeError: SMTP host or credentials are missing.
        smtplib.SMTPException: connection, login or delivery failed.
    """
    settings = get_settings()
    if not is_configured(settings):
        raise RuntimeError("SMTP is not configured (SMTP_HOST, SMTP_USERNAME, SMTP_PASSWORD)")

    msg = build_message(to_email, subject, text_body, html_body, settings)

    with _connect(settings) as server:
        server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.send_message(msg)

    logger.debug("Mail %r sent to %s", subject, to_email)

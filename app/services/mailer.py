"""Outbound email through the HTTP mail relay.

Fire-and-forget from the caller's perspective: send_email never raises,
it returns False when the relay is not configured or the call fails, and the
state transition that triggered it stays committed either way.
"""

import logging

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


def send_email(to: str | None, subject: str, html: str) -> bool:
    """
    Post one message to the mail relay.

    Args:
        to: Recipient address; nothing is sent when missing.
        subject: Subject line.
        html: HTML body.

    Returns:
        True if the relay accepted the message, False otherwise.
    """
    if not settings.mail_relay_url:
        logger.debug("Mail relay not configured; skipping email subject=%r", subject)
        return False
    if not to:
        logger.info("No recipient address; skipping email subject=%r", subject)
        return False

    payload = {
        "from": settings.mail_from,
        "to": to,
        "subject": subject,
        "html": html,
    }
    try:
        response = httpx.post(settings.mail_relay_url, json=payload, timeout=settings.mail_timeout_seconds)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("Mail relay call failed: to=%s subject=%r error=%s", to, subject, e)
        return False

    logger.info("Email sent via relay: to=%s subject=%r status=%s", to, subject, response.status_code)
    return True

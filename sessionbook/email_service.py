"""
Email Service using Resend
Booking emails are written in MJML and compiled to responsive HTML before sending
"""

import asyncio
import logging
from typing import Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .errors import DependencyError

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise DependencyError(f"Failed to compile MJML template: {e}") from e

    # mjml_to_html returns an object with .html/.errors, older builds a dict or str
    if isinstance(result, dict):
        if result.get("errors"):
            logger.warning(f"MJML compilation warnings: {result['errors']}")
        return result.get("html", "")
    if hasattr(result, "html"):
        if getattr(result, "errors", None):
            logger.warning(f"MJML compilation warnings: {result.errors}")
        return result.html
    return str(result)


async def send_email(to: Union[str, list[str]], subject: str, mjml_content: str) -> str:
    """
    Send an email through Resend.

    Returns:
        Resend message id

    Raises:
        DependencyError: Email is not configured or Resend rejected the message
    """
    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to

    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise DependencyError("Email service not configured")

    email_data = {
        "from": EMAIL_FROM_ADDRESS,
        "to": recipients,
        "subject": subject,
        "html": html_content,
    }

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        # resend's client is blocking
        response = await asyncio.to_thread(resend.Emails.send, email_data)
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise DependencyError(f"Failed to send email: {e}") from e

    message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
    logger.info(f"✅ Email sent successfully via Resend: {message_id}")
    return message_id or ""

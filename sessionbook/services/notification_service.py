"""
Unified Notification Service
Routes booking notifications to email (Resend) or SMS (Twilio) by recipient
"""

import logging
from typing import Optional

from ..email_service import send_email
from ..email_templates import (
    booking_cancelled_template,
    booking_confirmation_template,
    new_booking_provider_template,
)
from ..errors import DependencyError
from .twilio_service import booking_cancelled_sms, booking_confirmation_sms, send_sms, sms_configured

logger = logging.getLogger(__name__)

BOOKING_CONFIRMATION = "booking_confirmation"
BOOKING_CANCELLED = "booking_cancelled"
PROVIDER_NEW_BOOKING = "provider_new_booking"

EMAIL_SUBJECTS = {
    BOOKING_CONFIRMATION: "Your session is booked",
    BOOKING_CANCELLED: "Your session was cancelled",
    PROVIDER_NEW_BOOKING: "New booking",
}


def _is_phone(recipient: str) -> bool:
    return recipient.startswith("+")


def render_email(template: str, data: dict) -> str:
    when = {
        "local_date": data["localDate"],
        "local_time": data["localTime"],
        "duration": data["duration"],
        "timezone": data["timezone"],
    }
    if template == BOOKING_CONFIRMATION:
        return booking_confirmation_template(data["clientName"], data["providerName"], **when)
    if template == BOOKING_CANCELLED:
        return booking_cancelled_template(data["clientName"], data["providerName"], **when)
    if template == PROVIDER_NEW_BOOKING:
        return new_booking_provider_template(
            data["providerName"],
            data["clientName"],
            data["clientEmail"],
            data.get("clientPhone"),
            notes=data.get("notes"),
            **when,
        )
    raise ValueError(f"Unknown notification template: {template}")


def render_sms(template: str, data: dict) -> str:
    args = (data["clientName"], data["providerName"], data["localDate"], data["localTime"])
    if template == BOOKING_CONFIRMATION:
        return booking_confirmation_sms(*args)
    if template == BOOKING_CANCELLED:
        return booking_cancelled_sms(*args)
    raise ValueError(f"No SMS version of template: {template}")


class NotificationDispatcher:
    """send(template, recipient, data) -> delivery id; raises DependencyError on failure"""

    @property
    def sms_enabled(self) -> bool:
        return sms_configured()

    async def send(self, template: str, recipient: str, data: dict) -> str:
        if _is_phone(recipient):
            return await send_sms(recipient, render_sms(template, data))
        return await send_email(recipient, EMAIL_SUBJECTS[template], render_email(template, data))


async def send_notification(
    notifier: NotificationDispatcher,
    template: str,
    email: Optional[str],
    phone: Optional[str],
    data: dict,
) -> dict:
    """
    Send one notification on every channel the recipient has.

    Channel failures are collected and logged, never raised: a lost
    notification must not roll back or retry the booking change.

    Returns:
        Dict with email_sent and sms_sent status
    """
    result = {"email_sent": False, "sms_sent": False, "email_error": None, "sms_error": None}

    if email:
        try:
            logger.info(f"📧 Sending {template} email to {email}")
            await notifier.send(template, email, data)
            result["email_sent"] = True
        except DependencyError as e:
            result["email_error"] = str(e)
            logger.error(f"❌ Failed to send {template} email to {email}: {e}")

    if phone and phone.startswith("+"):
        if not notifier.sms_enabled:
            logger.debug(f"ℹ️ {template} SMS skipped: SMS not configured")
        else:
            try:
                logger.info(f"📱 Attempting to send {template} SMS to {phone}")
                await notifier.send(template, phone, data)
                result["sms_sent"] = True
            except DependencyError as e:
                result["sms_error"] = str(e)
                logger.warning(f"⚠️ {template} SMS not sent to {phone}: {e}")

    return result


async def notify_booking_created(notifier: NotificationDispatcher, payload: dict) -> dict:
    """Confirmation to the client, heads-up to the provider"""
    client_result = await send_notification(
        notifier, BOOKING_CONFIRMATION, payload.get("clientEmail"), payload.get("clientPhone"), payload
    )
    provider_result = await send_notification(
        notifier, PROVIDER_NEW_BOOKING, payload.get("providerEmail"), None, payload
    )
    return {"client": client_result, "provider": provider_result}


async def notify_booking_cancelled(notifier: NotificationDispatcher, payload: dict) -> dict:
    return {
        "client": await send_notification(
            notifier, BOOKING_CANCELLED, payload.get("clientEmail"), payload.get("clientPhone"), payload
        )
    }

"""
Twilio SMS Service
Sends booking text messages through the Twilio REST API
"""

import logging
from typing import Optional

import httpx

from ..config import TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_FROM_NUMBER
from ..errors import DependencyError

logger = logging.getLogger(__name__)

TWILIO_API = "https://api.twilio.com/2010-04-01"


def sms_configured() -> bool:
    return bool(TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_FROM_NUMBER)


async def send_sms(
    to_phone: str,
    message_body: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """
    Send an SMS via Twilio

    Args:
        to_phone: Recipient phone number in E.164 format
        message_body: SMS message content
        transport: Optional httpx transport (tests)

    Returns:
        Twilio message SID

    Raises:
        DependencyError: Twilio is not configured, unreachable or rejected the message
    """
    if not to_phone or not to_phone.startswith("+"):
        raise DependencyError("Phone number must be in E.164 format (e.g., +972501234567)")
    if not sms_configured():
        raise DependencyError("SMS service not configured")

    logger.info(f"📱 Sending SMS to Twilio API for {to_phone}")
    try:
        async with httpx.AsyncClient(transport=transport) as client:
            response = await client.post(
                f"{TWILIO_API}/Accounts/{TWILIO_ACCOUNT_SID}/Messages.json",
                auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
                data={"To": to_phone, "From": TWILIO_FROM_NUMBER, "Body": message_body},
                timeout=10.0,
            )
    except httpx.HTTPError as e:
        logger.error(f"Twilio API error: {e}")
        raise DependencyError(f"Twilio unreachable: {e}") from e

    logger.info(f"📡 Twilio API response status: {response.status_code}")

    try:
        data = response.json()
    except ValueError:
        # Proxies and gateway errors answer with HTML
        data = {}
    if not isinstance(data, dict):
        data = {}

    if response.status_code not in (200, 201):
        error_message = data.get("message") or f"HTTP {response.status_code}"
        error_code = data.get("code")
        logger.error(f"❌ Twilio API error [{error_code}]: {error_message}")
        raise DependencyError(f"Twilio rejected SMS: {error_message}")

    message_sid = data.get("sid")
    if not message_sid:
        raise DependencyError("Twilio response has no message SID")
    logger.info(f"✅ SMS sent successfully to {to_phone} (SID: {message_sid})")
    return message_sid


# SMS Template Functions
def booking_confirmation_sms(client_name: str, provider_name: str, local_date: str, local_time: str) -> str:
    return (
        f"Hi {client_name}! Your session with {provider_name} is booked for "
        f"{local_date} at {local_time}."
    )


def booking_cancelled_sms(client_name: str, provider_name: str, local_date: str, local_time: str) -> str:
    return (
        f"Hi {client_name}, your session with {provider_name} on "
        f"{local_date} at {local_time} has been cancelled."
    )

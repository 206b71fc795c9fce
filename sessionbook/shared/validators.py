"""Shared validation utilities"""

import re
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a phone number.

    International numbers ("+972 50-123-4567", "00972501234567") become E.164.
    Local numbers keep their digits only, since the country is not known here.

    Raises:
        ValueError: If the number has too few or too many digits
    """
    if not phone or not phone.strip():
        return None

    phone = phone.strip()
    international = phone.startswith("+") or phone.startswith("00")

    # Remove all non-digit characters
    digits = re.sub(r"\D", "", phone)
    if phone.startswith("00"):
        digits = digits[2:]

    if not 7 <= len(digits) <= 15:
        raise ValueError("Phone number must have between 7 and 15 digits")

    return f"+{digits}" if international else digits


def validate_timezone(tz_name: Optional[str]) -> Optional[str]:
    """Validate an IANA timezone name (e.g. Asia/Jerusalem)"""
    if not tz_name:
        return tz_name
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {tz_name}") from e
    return tz_name


def validate_hhmm(value: str, allow_end_of_day: bool = False) -> str:
    """
    Validate a 24h time of day and return it zero-padded ("9:00" -> "09:00").

    "24:00" is accepted only with allow_end_of_day, for window ends.
    """
    match = re.match(r"^(\d{1,2}):([0-5]\d)$", value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError("Time must be in HH:MM (24h) format")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 and not (allow_end_of_day and hours == 24 and minutes == 0):
        raise ValueError("Time must be in HH:MM (24h) format")
    return f"{hours:02d}:{minutes:02d}"

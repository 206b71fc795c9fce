import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./sessionbook.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Public booking page base URL (used in notification links)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "SessionBook <bookings@sessionbook.app>")

# Twilio SMS Configuration (optional channel)
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")

# Google Calendar OAuth Configuration
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")

# System defaults - lowest precedence in resolve_setting()
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Asia/Jerusalem")
DEFAULT_SESSION_DURATION = int(os.getenv("DEFAULT_SESSION_DURATION", "60"))
DEFAULT_BREAK_MINUTES = int(os.getenv("DEFAULT_BREAK_MINUTES", "15"))
DEFAULT_SESSION_PRICE = int(os.getenv("DEFAULT_SESSION_PRICE", "180"))
MAX_SESSION_MINUTES = int(os.getenv("MAX_SESSION_MINUTES", "480"))

# "mark" keeps cancelled bookings with status=cancelled, "delete" removes the row
CANCELLATION_POLICY = os.getenv("CANCELLATION_POLICY", "mark").lower()

# Non-forced auto-completion runs are skipped if the last run is newer than this
AUTO_COMPLETE_MIN_INTERVAL_MINUTES = int(os.getenv("AUTO_COMPLETE_MIN_INTERVAL_MINUTES", "60"))

# Outbox dispatch
OUTBOX_DISPATCH_ENABLED = os.getenv("OUTBOX_DISPATCH_ENABLED", "true").lower() == "true"
OUTBOX_MAX_ATTEMPTS = int(os.getenv("OUTBOX_MAX_ATTEMPTS", "5"))
OUTBOX_ENQUEUE_TIMEOUT = float(os.getenv("OUTBOX_ENQUEUE_TIMEOUT", "5.0"))


def resolve_setting(*candidates: Optional[Any], default: Any) -> Any:
    """
    Return the first candidate that is set, else the system default.

    Callers pass candidates in precedence order:
    per-booking override > per-client default > provider default.
    Zero is a valid value (e.g. a break of 0 minutes), only None is skipped.
    """
    for value in candidates:
        if value is not None:
            return value
    return default


def resolve_session_price(
    booking_price: Optional[int] = None,
    client_price: Optional[int] = None,
    provider_price: Optional[int] = None,
) -> int:
    return resolve_setting(booking_price, client_price, provider_price, default=DEFAULT_SESSION_PRICE)


def resolve_session_duration(
    booking_duration: Optional[int] = None,
    provider_duration: Optional[int] = None,
) -> int:
    return resolve_setting(booking_duration, provider_duration, default=DEFAULT_SESSION_DURATION)


def resolve_break_minutes(
    schedule_break: Optional[int] = None,
    provider_break: Optional[int] = None,
) -> int:
    return resolve_setting(schedule_break, provider_break, default=DEFAULT_BREAK_MINUTES)

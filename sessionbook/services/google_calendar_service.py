"""
Google Calendar Service
Mirrors bookings into the provider's Google Calendar (create on booking, delete on cancellation)
"""

import base64
import hashlib
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

import httpx
from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from ..config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, SECRET_KEY
from ..errors import DependencyError
from ..models import CalendarIntegration
from ..timeutils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"


def _cipher() -> Fernet:
    # Fernet needs 32 url-safe base64 bytes; derive them from SECRET_KEY
    key = base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest())
    return Fernet(key)


def encrypt_token(value: str) -> str:
    return _cipher().encrypt(value.encode()).decode()


def decrypt_token(value: str) -> str:
    return _cipher().decrypt(value.encode()).decode()


def _json_body(response: httpx.Response) -> dict:
    """Response JSON object, or DependencyError when Google (or a proxy) sent something else"""
    try:
        data = response.json()
    except ValueError as e:
        raise DependencyError(f"Google returned a non-JSON response ({response.status_code})") from e
    if not isinstance(data, dict):
        raise DependencyError(f"Google returned an unexpected response ({response.status_code})")
    return data


def build_event_body(payload: dict) -> dict:
    """Google Calendar event resource for a booking outbox payload"""
    start = datetime.fromisoformat(payload["startInstant"])
    end = start + timedelta(minutes=payload["duration"])
    description = f"Session with {payload['clientName']} ({payload['clientEmail']})"
    if payload.get("clientPhone"):
        description += f"\nPhone: {payload['clientPhone']}"
    if payload.get("notes"):
        description += f"\n\nNotes: {payload['notes']}"

    return {
        "summary": f"Session - {payload['clientName']}",
        "description": description,
        "start": {"dateTime": start.isoformat(), "timeZone": payload.get("timezone") or "UTC"},
        "end": {"dateTime": end.isoformat(), "timeZone": payload.get("timezone") or "UTC"},
        "attendees": [{"email": payload["clientEmail"]}],
        "extendedProperties": {"private": {"bookingId": str(payload.get("bookingId"))}},
    }


class GoogleCalendarClient:
    """Thin REST client; every failure surfaces as DependencyError"""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 10.0):
        self.transport = transport
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=self.timeout)

    async def refresh_access_token(self, refresh_token: str) -> tuple[str, int]:
        """Returns (access_token, expires_in_seconds)"""
        try:
            async with self._client() as client:
                response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "client_id": GOOGLE_CLIENT_ID,
                        "client_secret": GOOGLE_CLIENT_SECRET,
                        "refresh_token": refresh_token,
                        "grant_type": "refresh_token",
                    },
                )
        except httpx.HTTPError as e:
            raise DependencyError(f"Google token refresh failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"❌ Token refresh failed: {response.text}")
            raise DependencyError("Google token refresh was rejected")

        tokens = _json_body(response)
        access_token = tokens.get("access_token")
        if not access_token:
            raise DependencyError("No access token in Google refresh response")
        return access_token, int(tokens.get("expires_in", 3600))

    async def create_event(self, credentials: dict, payload: dict) -> str:
        """Create the calendar event for a booking. Returns the Google event id."""
        calendar_id = credentials.get("calendar_id") or "primary"
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events",
                    headers={"Authorization": f"Bearer {credentials['access_token']}"},
                    json=build_event_body(payload),
                )
        except httpx.HTTPError as e:
            raise DependencyError(f"Google Calendar unreachable: {e}") from e

        if response.status_code not in (200, 201):
            logger.error(f"❌ Failed to create calendar event: {response.text}")
            raise DependencyError(f"Google Calendar returned {response.status_code}")

        event_id = _json_body(response).get("id")
        if not event_id:
            raise DependencyError("Google Calendar response has no event id")
        logger.info(f"✅ Google Calendar event created: {event_id}")
        return event_id

    async def delete_event(self, credentials: dict, external_id: str) -> None:
        calendar_id = credentials.get("calendar_id") or "primary"
        try:
            async with self._client() as client:
                response = await client.delete(
                    f"{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events/{external_id}",
                    headers={"Authorization": f"Bearer {credentials['access_token']}"},
                )
        except httpx.HTTPError as e:
            raise DependencyError(f"Google Calendar unreachable: {e}") from e

        # 404/410: already gone on Google's side
        if response.status_code in (404, 410):
            logger.info(f"ℹ️ Calendar event {external_id} already removed")
            return
        if response.status_code not in (200, 204):
            logger.error(f"❌ Failed to delete calendar event: {response.text}")
            raise DependencyError(f"Google Calendar returned {response.status_code}")
        logger.info(f"✅ Google Calendar event deleted: {external_id}")


class CalendarSync:
    """
    Calendar adapter used by the outbox processor.

    Providers without a connected calendar (or with auto-sync off) are
    skipped silently.
    """

    def __init__(self, client: Optional[GoogleCalendarClient] = None):
        self.client = client or GoogleCalendarClient()

    def get_integration(self, db: Session, provider_id: int) -> Optional[CalendarIntegration]:
        integration = (
            db.query(CalendarIntegration).filter(CalendarIntegration.provider_id == provider_id).first()
        )
        if not integration or not integration.auto_sync_enabled:
            return None
        return integration

    async def get_credentials(self, db: Session, integration: CalendarIntegration) -> dict[str, Any]:
        """Decrypted credentials, refreshing the access token when it expires within 5 minutes"""
        try:
            if ensure_utc(integration.token_expires_at) <= utcnow() + timedelta(minutes=5):
                logger.info("🔄 Google Calendar token expired, refreshing...")
                access_token, expires_in = await self.client.refresh_access_token(
                    decrypt_token(integration.refresh_token)
                )
                integration.access_token = encrypt_token(access_token)
                integration.token_expires_at = utcnow() + timedelta(seconds=expires_in)
                db.flush()
                logger.info("✅ Google Calendar token refreshed successfully")
            else:
                access_token = decrypt_token(integration.access_token)
        except InvalidToken as e:
            raise DependencyError("Stored Google Calendar tokens cannot be decrypted") from e

        return {"access_token": access_token, "calendar_id": integration.google_calendar_id}

    async def sync_booking_created(self, db: Session, provider_id: int, payload: dict) -> Optional[str]:
        integration = self.get_integration(db, provider_id)
        if integration is None:
            logger.info(f"ℹ️ Google Calendar not connected for provider {provider_id}")
            return None
        credentials = await self.get_credentials(db, integration)
        return await self.client.create_event(credentials, payload)

    async def sync_booking_cancelled(self, db: Session, provider_id: int, payload: dict) -> None:
        external_id = payload.get("externalEventId")
        if not external_id:
            return
        integration = self.get_integration(db, provider_id)
        if integration is None:
            return
        credentials = await self.get_credentials(db, integration)
        await self.client.delete_event(credentials, external_id)

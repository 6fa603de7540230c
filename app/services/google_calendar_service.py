"""
Google Calendar Service
Thin async client over the Calendar REST API plus the two ways we obtain access tokens:
a user's own OAuth connection and the backoffice service account
"""
import asyncio
import base64
import hashlib
import logging
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote, urlencode
from zoneinfo import ZoneInfo

import httpx
from cryptography.fernet import Fernet
from sqlalchemy.orm import Session

from ..config import (
    CALENDAR_TIMEZONE,
    GOOGLE_APPLICATION_CREDENTIALS,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REDIRECT_URI,
    GOOGLE_SCOPES,
    SECRET_KEY,
)
from ..models_google_calendar import GoogleCalendarIntegration
from .calendar_errors import CalendarApiError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"

APP_SOURCE = "construction_management"
CHANNEL_TTL_SECONDS = 604800  # Google's maximum: 7 days

GOOGLE_CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/userinfo.email",
]

TokenProvider = Callable[[], Awaitable[str]]


def build_authorization_url(state: str) -> Optional[str]:
    """OAuth consent URL for connecting a user's Google Calendar (None when OAuth is not configured)"""
    if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
        return None
    params = {
        "client_id": GOOGLE_CLIENT_ID,
        "redirect_uri": GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(GOOGLE_CALENDAR_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


def get_cipher() -> Fernet:
    # Fernet needs 32 url-safe base64 bytes; derive them from SECRET_KEY
    return Fernet(base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest()))


def encrypt_token(token: str) -> str:
    return get_cipher().encrypt(token.encode()).decode()


def decrypt_token(token: str) -> str:
    return get_cipher().decrypt(token.encode()).decode()


GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"


class OAuthExchangeError(Exception):
    """Authorization code could not be turned into a usable token pair"""


async def exchange_authorization_code(
    code: str, transport: Optional[httpx.AsyncBaseTransport] = None
) -> Dict[str, Any]:
    """
    Exchange an OAuth authorization code.
    Returns access_token, refresh_token, expires_at, scope and google_email.
    """
    async with httpx.AsyncClient(transport=transport) as client:
        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                "redirect_uri": GOOGLE_REDIRECT_URI,
                "grant_type": "authorization_code",
            },
        )
        if response.status_code != 200:
            logger.error(f"❌ Authorization code exchange failed: {response.text}")
            raise OAuthExchangeError("Failed to exchange authorization code")

        tokens = response.json()
        if not tokens.get("access_token") or not tokens.get("refresh_token"):
            raise OAuthExchangeError("Invalid token response")

        # The Google account email is informational; a failure here is not fatal
        google_email = None
        user_info = await client.get(
            GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {tokens['access_token']}"}
        )
        if user_info.status_code == 200:
            google_email = user_info.json().get("email")
        else:
            logger.warning(f"⚠️ Failed to get Google user info: {user_info.text}")

    return {
        "access_token": tokens["access_token"],
        "refresh_token": tokens["refresh_token"],
        "expires_at": datetime.utcnow() + timedelta(seconds=tokens.get("expires_in", 3600)),
        "scope": tokens.get("scope"),
        "google_email": google_email,
    }


async def revoke_token(token: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> bool:
    try:
        async with httpx.AsyncClient(transport=transport) as client:
            response = await client.post(GOOGLE_REVOKE_URL, params={"token": token})
        return response.status_code == 200
    except httpx.HTTPError as e:
        logger.warning(f"⚠️ Failed to revoke Google token: {str(e)}")
        return False


async def get_valid_access_token(
    integration: GoogleCalendarIntegration, db: Session, transport: Optional[httpx.AsyncBaseTransport] = None
) -> Optional[str]:
    """
    Get a valid access token, refreshing if necessary
    Returns None if refresh fails
    """
    try:
        if not integration.needs_refresh():
            return decrypt_token(integration.access_token)

        logger.info("🔄 Google Calendar token expired, refreshing...")
        refresh_token = decrypt_token(integration.refresh_token)

        async with httpx.AsyncClient(transport=transport) as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": GOOGLE_CLIENT_ID,
                    "client_secret": GOOGLE_CLIENT_SECRET,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )

        if response.status_code != 200:
            logger.error(f"❌ Token refresh failed: {response.text}")
            return None

        tokens = response.json()
        new_access_token = tokens.get("access_token")
        expires_in = tokens.get("expires_in", 3600)

        if not new_access_token:
            logger.error("❌ No access token in refresh response")
            return None

        integration.access_token = encrypt_token(new_access_token)
        integration.token_expires_at = datetime.utcnow() + timedelta(seconds=expires_in)
        integration.last_refreshed_at = datetime.utcnow()
        db.commit()

        logger.info("✅ Google Calendar token refreshed successfully")
        return new_access_token

    except Exception as e:
        logger.error(f"❌ Error getting valid access token: {str(e)}")
        return None


def service_account_token_provider(
    credentials_file: Optional[str] = None, scopes: Optional[List[str]] = None
) -> TokenProvider:
    """Token provider backed by a service account key file (webhooks, channel registration)"""
    from google.auth.transport.requests import Request as GoogleAuthRequest
    from google.oauth2 import service_account

    credentials_file = credentials_file or GOOGLE_APPLICATION_CREDENTIALS
    if not credentials_file:
        raise CalendarApiError("GOOGLE_APPLICATION_CREDENTIALS is not configured", status_code=401)

    credentials = service_account.Credentials.from_service_account_file(
        credentials_file, scopes=scopes or GOOGLE_SCOPES
    )

    async def _token() -> str:
        if not credentials.valid:
            # google-auth refreshes synchronously
            await asyncio.to_thread(credentials.refresh, GoogleAuthRequest())
        return credentials.token

    return _token


def static_token_provider(access_token: str) -> TokenProvider:
    async def _token() -> str:
        return access_token

    return _token


def build_event_body(
    title: Optional[str] = None,
    description: Optional[str] = None,
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    location: Optional[str] = None,
    timezone: Optional[str] = None,
    attendees: Optional[List[str]] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    project_id: Optional[str] = None,
    partial: bool = False,
) -> Dict[str, Any]:
    """
    Build a Calendar API event resource.
    With partial=True only the given fields are included (PATCH semantics).
    """
    timezone = timezone or CALENDAR_TIMEZONE
    body: Dict[str, Any] = {}

    if title is not None or not partial:
        body["summary"] = title or ""
    if description is not None or not partial:
        body["description"] = description or ""
    if location is not None or not partial:
        body["location"] = location or ""

    if start_time is not None:
        body["start"] = {"dateTime": start_time.isoformat(), "timeZone": timezone}
        if end_time is None and not partial:
            # Default 1 hour duration
            end_time = start_time + timedelta(hours=1)
    if end_time is not None:
        body["end"] = {"dateTime": end_time.isoformat(), "timeZone": timezone}

    if attendees is not None and (attendees or partial):
        body["attendees"] = [{"email": email} for email in attendees]

    if not partial:
        body["reminders"] = {
            "useDefault": False,
            "overrides": [
                {"method": "email", "minutes": 24 * 60},
                {"method": "popup", "minutes": 30},
            ],
        }
        private = {
            "appSource": APP_SOURCE,
            "entityType": entity_type or "schedule_item",
            "entityId": entity_id or "",
        }
        if project_id:
            private["projectId"] = str(project_id)
        body["extendedProperties"] = {"private": private}

    return body


class GoogleCalendarClient:
    """
    Minimal Calendar v3 client.
    Raises CalendarApiError for every failed call so the retry layer can classify it.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.token_provider = token_provider
        self.transport = transport
        self.timeout = timeout

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        ok_statuses: tuple = (200, 201, 204),
    ) -> Optional[Dict[str, Any]]:
        access_token = await self.token_provider()
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                response = await client.request(
                    method,
                    f"{GOOGLE_CALENDAR_API}{path}",
                    headers={"Authorization": f"Bearer {access_token}"},
                    json=json,
                    params=params,
                )
        except httpx.TimeoutException as e:
            raise CalendarApiError(f"Network timeout contacting Google Calendar: {e}") from e
        except httpx.TransportError as e:
            raise CalendarApiError(f"Network error contacting Google Calendar: {e}") from e

        if response.status_code not in ok_statuses:
            raise CalendarApiError(_error_message(response), status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def get_calendar(self, calendar_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/calendars/{quote(calendar_id, safe='')}")

    async def insert_event(
        self, calendar_id: str, body: Dict[str, Any], send_updates: str = "none"
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/calendars/{quote(calendar_id, safe='')}/events",
            json=body,
            params={"sendUpdates": send_updates},
        )

    async def get_event(self, calendar_id: str, event_id: str) -> Dict[str, Any]:
        return await self._request(
            "GET", f"/calendars/{quote(calendar_id, safe='')}/events/{quote(event_id, safe='')}"
        )

    async def patch_event(
        self, calendar_id: str, event_id: str, body: Dict[str, Any], send_updates: str = "none"
    ) -> Dict[str, Any]:
        return await self._request(
            "PATCH",
            f"/calendars/{quote(calendar_id, safe='')}/events/{quote(event_id, safe='')}",
            json=body,
            params={"sendUpdates": send_updates},
        )

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        # 404/410: already gone, which is what the caller wanted
        await self._request(
            "DELETE",
            f"/calendars/{quote(calendar_id, safe='')}/events/{quote(event_id, safe='')}",
            ok_statuses=(200, 204, 404, 410),
        )

    async def watch_events(
        self,
        calendar_id: str,
        channel_id: str,
        address: str,
        token: Optional[str] = None,
        ttl_seconds: int = CHANNEL_TTL_SECONDS,
    ) -> Dict[str, Any]:
        body = {
            "id": channel_id,
            "type": "web_hook",
            "address": address,
            "params": {"ttl": str(ttl_seconds)},
        }
        if token:
            body["token"] = token
        return await self._request(
            "POST", f"/calendars/{quote(calendar_id, safe='')}/events/watch", json=body
        )

    async def stop_channel(self, channel_id: str, resource_id: str) -> None:
        await self._request(
            "POST", "/channels/stop", json={"id": channel_id, "resourceId": resource_id}
        )


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if isinstance(error, str):
            return error
    except ValueError:
        pass
    return response.text or f"Google Calendar API returned HTTP {response.status_code}"


def parse_event_datetime(value: Optional[Dict[str, Any]]) -> Optional[datetime]:
    """
    Parse an event start/end block into the naive wall-clock time we store.
    Offsets are converted into the block's timeZone (CALENDAR_TIMEZONE when absent),
    the same zone build_event_body labels outbound times with.
    """
    if not value:
        return None
    if value.get("dateTime"):
        parsed = datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00"))
    elif value.get("date"):
        # All-day event
        return datetime.fromisoformat(value["date"])
    else:
        return None
    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone(ZoneInfo(value.get("timeZone") or CALENDAR_TIMEZONE)).replace(tzinfo=None)


def parse_rfc3339(value: Optional[str]) -> Optional[datetime]:
    """Revision timestamps are kept in naive UTC, like created_at/updated_at"""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone(dt_timezone.utc).replace(tzinfo=None)

"""
Webhook Security Module

Verification helpers for Google Calendar push notifications:
- Constant-time channel token comparison (prevents timing attacks)
- Resource URI parsing into calendar id + event id
- Detailed logging for security auditing
"""

import hmac
import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlparse

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

RESOURCE_URI_PATTERN = re.compile(r"/calendars/(?P<calendar_id>[^/]+)/events/(?P<event_id>[^/?#]+)")


class WebhookSignatureError(Exception):
    """Raised when webhook verification fails"""

    pass


@dataclass(frozen=True)
class GoogleChannelHeaders:
    channel_id: Optional[str]
    channel_token: Optional[str]
    resource_id: Optional[str]
    resource_state: Optional[str]
    resource_uri: Optional[str]
    message_number: Optional[str]

    @classmethod
    def from_request(cls, request: Request) -> "GoogleChannelHeaders":
        headers = request.headers
        return cls(
            channel_id=headers.get("x-goog-channel-id"),
            channel_token=headers.get("x-goog-channel-token"),
            resource_id=headers.get("x-goog-resource-id"),
            resource_state=headers.get("x-goog-resource-state"),
            resource_uri=headers.get("x-goog-resource-uri"),
            message_number=headers.get("x-goog-message-number"),
        )


def constant_time_compare(a: Optional[str], b: Optional[str]) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def verify_google_channel_token(
    headers: GoogleChannelHeaders, expected_token: Optional[str], raise_on_failure: bool = True
) -> bool:
    """
    Verify the X-Goog-Channel-Token we registered the channel with.
    An unset expected token rejects everything rather than accepting everything.
    """
    if not expected_token:
        logger.error("❌ GOOGLE_CALENDAR_WEBHOOK_TOKEN not configured - rejecting push notification")
        if raise_on_failure:
            raise HTTPException(status_code=401, detail="Webhook token not configured")
        return False

    if constant_time_compare(headers.channel_token, expected_token):
        return True

    logger.warning(f"🚫 Invalid channel token on Google push notification: channel={headers.channel_id}")
    if raise_on_failure:
        raise HTTPException(status_code=401, detail="Invalid channel token")
    return False


def parse_resource_uri(resource_uri: Optional[str]) -> tuple[str, str]:
    """
    Split .../calendars/{calendarId}/events/{eventId} into its URL-decoded parts.
    Raises WebhookSignatureError when the URI does not name a single event.
    """
    if not resource_uri:
        raise WebhookSignatureError("Missing resource URI")

    path = urlparse(resource_uri).path or resource_uri
    match = RESOURCE_URI_PATTERN.search(path)
    if not match:
        raise WebhookSignatureError(f"Unparseable resource URI: {resource_uri}")

    calendar_id = unquote(match.group("calendar_id"))
    event_id = unquote(match.group("event_id"))
    if not calendar_id or not event_id or event_id == "watch":
        raise WebhookSignatureError(f"Unparseable resource URI: {resource_uri}")
    return calendar_id, event_id

"""
Google Calendar Webhook Handler
Receives push notifications for the watched shared calendars.

Response codes:
- 401: channel token missing or wrong
- 400: resource URI does not name an event
- 200: everything else, including reconciliation failures (logged)
- 500: unexpected failure before reconciliation could run
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ..config import GOOGLE_CALENDAR_WEBHOOK_TOKEN
from ..database import get_db
from ..dependencies import get_config, get_service_client_factory
from ..services.calendar_config import CalendarConfig
from ..services.webhook_reconciler import find_channel, reconcile_notification
from ..webhook_security import (
    GoogleChannelHeaders,
    WebhookSignatureError,
    parse_resource_uri,
    verify_google_channel_token,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/google-calendar")
async def handle_google_calendar_webhook(
    request: Request,
    db: Session = Depends(get_db),
    client_factory=Depends(get_service_client_factory),
    calendar_config: CalendarConfig = Depends(get_config),
):
    headers = GoogleChannelHeaders.from_request(request)
    logger.info(
        f"📬 Google Calendar push: channel={headers.channel_id} state={headers.resource_state} "
        f"message={headers.message_number}"
    )

    verify_google_channel_token(headers, GOOGLE_CALENDAR_WEBHOOK_TOKEN)

    # The handshake sent right after watch() points at the collection, not an event
    if headers.resource_state == "sync":
        logger.info(f"🤝 Sync handshake for channel {headers.channel_id}")
        return {"status": "sync_acknowledged"}

    try:
        calendar_id, event_id = parse_resource_uri(headers.resource_uri)
    except WebhookSignatureError as e:
        logger.warning(f"⚠️ Rejecting push notification: {str(e)}")
        raise HTTPException(status_code=400, detail="Invalid resource URI") from e

    try:
        if not find_channel(db, headers.channel_id):
            logger.warning(f"⚠️ Push notification from unknown channel {headers.channel_id} ({calendar_id})")

        outcome = await reconcile_notification(
            db, headers.resource_state, calendar_id, event_id, client_factory, calendar_config
        )
    except Exception as e:
        logger.error(
            f"❌ Unexpected webhook failure (calendar={calendar_id} event={event_id} "
            f"state={headers.resource_state}): {str(e)}"
        )
        raise HTTPException(status_code=500, detail="Webhook processing failed") from e

    if outcome.status == "error":
        logger.error(
            f"❌ Reconciliation failed (calendar={calendar_id} event={event_id} "
            f"state={headers.resource_state}): {outcome.detail}"
        )
    return outcome.as_dict()

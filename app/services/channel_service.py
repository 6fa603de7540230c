"""
Push Notification Channel Service
Registers and renews Google Calendar watch channels for the shared calendars
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import CHANNEL_RENEWAL_THRESHOLD_HOURS
from ..models import PushNotificationChannel
from .calendar_config import CalendarConfig, get_calendar_config
from .google_calendar_service import CHANNEL_TTL_SECONDS, GoogleCalendarClient

logger = logging.getLogger(__name__)


def active_channel(db: Session, calendar_id: str, now: Optional[datetime] = None) -> Optional[PushNotificationChannel]:
    now = now or datetime.utcnow()
    return (
        db.query(PushNotificationChannel)
        .filter(
            PushNotificationChannel.calendar_id == calendar_id,
            PushNotificationChannel.expiration > now,
        )
        .order_by(PushNotificationChannel.expiration.desc())
        .first()
    )


def _expiration_from_response(response: Dict[str, Any]) -> datetime:
    # Google returns the expiration as a string of epoch milliseconds
    expiration = response.get("expiration")
    if expiration:
        return datetime.utcfromtimestamp(int(expiration) / 1000)
    return datetime.utcnow() + timedelta(seconds=CHANNEL_TTL_SECONDS)


async def register_channel(
    db: Session,
    client: GoogleCalendarClient,
    calendar_id: str,
    webhook_url: str,
    token: Optional[str],
    force: bool = False,
) -> PushNotificationChannel:
    """
    Watch a calendar's events. An unexpired channel for the calendar is reused
    unless force=True (renewal). Errors from Google propagate to the caller.
    """
    if not force:
        existing = active_channel(db, calendar_id)
        if existing:
            logger.info(f"♻️ Reusing active channel {existing.id} for {calendar_id} (expires {existing.expiration})")
            return existing

    channel_id = str(uuid.uuid4())
    logger.info(f"📡 Registering push channel {channel_id} for {calendar_id} -> {webhook_url}")
    response = await client.watch_events(calendar_id, channel_id, webhook_url, token=token)

    channel = PushNotificationChannel(
        id=response.get("id") or channel_id,
        calendar_id=calendar_id,
        resource_id=response.get("resourceId") or "",
        expiration=_expiration_from_response(response),
    )
    db.add(channel)
    db.commit()
    db.refresh(channel)
    logger.info(f"✅ Channel {channel.id} registered for {calendar_id}, expires {channel.expiration}")
    return channel


async def register_default_channels(
    db: Session,
    client: GoogleCalendarClient,
    webhook_url: str,
    token: Optional[str],
    calendar_config: Optional[CalendarConfig] = None,
) -> List[PushNotificationChannel]:
    """Register every shared calendar; one failing calendar does not stop the others"""
    cfg = calendar_config or get_calendar_config()
    channels = []
    for calendar_id in dict.fromkeys([cfg.PROJECT, cfg.WORK_ORDER, cfg.ADHOC]):
        try:
            channels.append(await register_channel(db, client, calendar_id, webhook_url, token))
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to register channel for {calendar_id}: {e}")
    return channels


async def renew_expiring_channels(
    db: Session,
    client: GoogleCalendarClient,
    webhook_url: str,
    token: Optional[str],
    threshold_hours: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[PushNotificationChannel]:
    """
    Re-register channels that expire within threshold_hours (or already have).
    The old channel is stopped best-effort and its row removed once the
    replacement is in place.
    """
    threshold_hours = CHANNEL_RENEWAL_THRESHOLD_HOURS if threshold_hours is None else threshold_hours
    now = now or datetime.utcnow()
    cutoff = now + timedelta(hours=threshold_hours)

    expiring = (
        db.query(PushNotificationChannel)
        .filter(PushNotificationChannel.expiration <= cutoff)
        .order_by(PushNotificationChannel.expiration)
        .all()
    )
    if not expiring:
        logger.info(f"ℹ️ No channels expiring within {threshold_hours}h")
        return []

    renewed = []
    for old in expiring:
        calendar_id = old.calendar_id
        if old.is_expired(now):
            logger.warning(f"⚠️ Channel {old.id} for {calendar_id} already expired, changes may have been missed")
        try:
            if old.resource_id:
                try:
                    await client.stop_channel(old.id, old.resource_id)
                except Exception as e:
                    logger.warning(f"⚠️ Could not stop channel {old.id} (continuing): {e}")

            replacement = await register_channel(db, client, calendar_id, webhook_url, token, force=True)
            db.delete(old)
            db.commit()
            renewed.append(replacement)
            logger.info(f"🔄 Renewed channel for {calendar_id}: {old.id} -> {replacement.id}")
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to renew channel {old.id} for {calendar_id}: {e}")
    return renewed


def list_channels(db: Session) -> List[PushNotificationChannel]:
    return db.query(PushNotificationChannel).order_by(PushNotificationChannel.expiration).all()

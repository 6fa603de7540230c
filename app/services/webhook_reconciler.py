"""
Inbound Webhook Reconciler
Folds Google Calendar push notifications back into local schedule items.

Reconciliation is keyed on the Google event id, so replaying a notification
converges to the same local state. Failures are logged and reported in the
outcome, never raised.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..models import Project, PushNotificationChannel, ScheduleItem
from ..schemas import EntityType
from .calendar_config import CalendarConfig, get_calendar_config
from .google_calendar_service import (
    APP_SOURCE,
    GoogleCalendarClient,
    parse_event_datetime,
    parse_rfc3339,
)

logger = logging.getLogger(__name__)

PROJECT_TAG_PATTERN = re.compile(r"\[project:\s*(\d+)\s*\]", re.IGNORECASE)

ClientFactory = Callable[[], GoogleCalendarClient]


@dataclass
class ReconcileOutcome:
    status: str
    calendar_id: Optional[str] = None
    event_id: Optional[str] = None
    schedule_item_id: Optional[int] = None
    detail: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "calendarId": self.calendar_id,
            "eventId": self.event_id,
            "scheduleItemId": self.schedule_item_id,
            "detail": self.detail,
        }


def find_channel(db: Session, channel_id: Optional[str]) -> Optional[PushNotificationChannel]:
    if not channel_id:
        return None
    return db.query(PushNotificationChannel).filter(PushNotificationChannel.id == channel_id).first()


async def reconcile_notification(
    db: Session,
    resource_state: Optional[str],
    calendar_id: str,
    event_id: str,
    client_factory: ClientFactory,
    calendar_config: Optional[CalendarConfig] = None,
) -> ReconcileOutcome:
    context = f"calendar={calendar_id} event={event_id} state={resource_state}"

    if resource_state == "sync":
        logger.info(f"🤝 Sync handshake acknowledged ({context})")
        return ReconcileOutcome("sync_acknowledged", calendar_id, event_id)

    if resource_state == "not_exists":
        return delete_local_item(db, calendar_id, event_id)

    if resource_state != "exists":
        logger.warning(f"⚠️ Unrecognized resource state, ignoring ({context})")
        return ReconcileOutcome("ignored", calendar_id, event_id, detail="unrecognized resource state")

    try:
        client = client_factory()
        event = await client.get_event(calendar_id, event_id)
    except Exception as e:
        logger.error(f"❌ Failed to fetch Google event ({context}): {e}")
        return ReconcileOutcome("error", calendar_id, event_id, detail=f"fetch failed: {e}")

    if not event or event.get("status") == "cancelled":
        logger.info(f"🗑️ Event is cancelled upstream, treating as removed ({context})")
        return delete_local_item(db, calendar_id, event_id)

    return upsert_local_item(db, calendar_id, event_id, event, calendar_config or get_calendar_config())


def delete_local_item(db: Session, calendar_id: str, event_id: str) -> ReconcileOutcome:
    try:
        item = db.query(ScheduleItem).filter(ScheduleItem.google_event_id == event_id).first()
        if not item:
            logger.info(f"ℹ️ No local schedule item for removed event {event_id}, nothing to do")
            return ReconcileOutcome("not_found", calendar_id, event_id)

        item_id = item.id
        db.delete(item)
        db.commit()
        logger.info(f"✅ Deleted schedule item {item_id} for removed event {event_id}")
        return ReconcileOutcome("deleted", calendar_id, event_id, schedule_item_id=item_id)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to delete schedule item (calendar={calendar_id} event={event_id}): {e}")
        return ReconcileOutcome("error", calendar_id, event_id, detail=f"delete failed: {e}")


def event_fields(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Local schedule item fields carried by a Google event, or None if it has no start"""
    start = parse_event_datetime(event.get("start"))
    if start is None:
        return None
    end = parse_event_datetime(event.get("end")) or start + timedelta(hours=1)
    return {
        "title": event.get("summary") or "(No title)",
        "description": event.get("description") or None,
        "start_datetime": start,
        "end_datetime": end,
        "location": event.get("location") or None,
    }


def upsert_local_item(
    db: Session,
    calendar_id: str,
    event_id: str,
    event: Dict[str, Any],
    calendar_config: CalendarConfig,
) -> ReconcileOutcome:
    try:
        fields = event_fields(event)
        remote_updated_at = parse_rfc3339(event.get("updated"))
    except (TypeError, ValueError) as e:
        logger.error(f"❌ Malformed event payload (calendar={calendar_id} event={event_id}): {e}")
        return ReconcileOutcome("error", calendar_id, event_id, detail=f"malformed event: {e}")

    if fields is None:
        logger.warning(f"⚠️ Event {event_id} on {calendar_id} has no start time, skipping")
        return ReconcileOutcome("skipped", calendar_id, event_id, detail="event has no start time")

    try:
        item = db.query(ScheduleItem).filter(ScheduleItem.google_event_id == event_id).first()

        if item:
            if item.remote_updated_at and remote_updated_at and remote_updated_at < item.remote_updated_at:
                logger.info(f"⏭️ Ignoring stale revision of event {event_id} for schedule item {item.id}")
                return ReconcileOutcome("stale", calendar_id, event_id, schedule_item_id=item.id)

            unchanged = all(getattr(item, key) == value for key, value in fields.items())
            if unchanged and item.remote_updated_at == remote_updated_at and not item.last_sync_error:
                logger.info(f"ℹ️ Schedule item {item.id} already matches event {event_id}")
                return ReconcileOutcome("unchanged", calendar_id, event_id, schedule_item_id=item.id)

            for key, value in fields.items():
                setattr(item, key, value)
            item.calendar_id = calendar_id
            item.remote_updated_at = remote_updated_at
            item.last_sync_at = datetime.utcnow()
            item.last_sync_error = None
            db.commit()
            logger.info(f"✅ Updated schedule item {item.id} from event {event_id}")
            return ReconcileOutcome("updated", calendar_id, event_id, schedule_item_id=item.id)

        private = _private_properties(event)
        if private.get("appSource") == APP_SOURCE and private.get("entityId"):
            # Our own insert; schedule_sync records the event id when it commits
            logger.info(f"⏭️ Event {event_id} was created for schedule item {private['entityId']}, not importing")
            return ReconcileOutcome("skipped", calendar_id, event_id, detail="event created by this service")

        project_id = infer_owning_project(db, calendar_id, event)
        if project_id is None:
            logger.warning(
                f"⚠️ No owning project for external event {event_id} on {calendar_id} "
                "(no project tag and no general project), skipping"
            )
            return ReconcileOutcome("skipped", calendar_id, event_id, detail="no owning project")

        item = ScheduleItem(
            project_id=project_id,
            entity_type=_infer_entity_type(calendar_id, private, calendar_config),
            calendar_id=calendar_id,
            google_event_id=event_id,
            calendar_integration_enabled=True,
            remote_updated_at=remote_updated_at,
            last_sync_at=datetime.utcnow(),
            created_by=(event.get("creator") or {}).get("email")
            or (event.get("organizer") or {}).get("email"),
            origin="remote",
            **fields,
        )
        db.add(item)
        db.commit()
        db.refresh(item)
        logger.info(f"✅ Created schedule item {item.id} in project {project_id} from event {event_id}")
        return ReconcileOutcome("created", calendar_id, event_id, schedule_item_id=item.id)

    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to upsert schedule item (calendar={calendar_id} event={event_id}): {e}")
        return ReconcileOutcome("error", calendar_id, event_id, detail=f"upsert failed: {e}")


def infer_owning_project(db: Session, calendar_id: str, event: Dict[str, Any]) -> Optional[int]:
    """
    Owning project for an event that has no local schedule item:
    1. the projectId we stamp into extendedProperties.private
    2. a [project:<id>] tag in the description
    3. the project flagged as general
    """
    candidates = [_private_properties(event).get("projectId")]
    tag = PROJECT_TAG_PATTERN.search(event.get("description") or "")
    if tag:
        candidates.append(tag.group(1))

    for candidate in candidates:
        if candidate and str(candidate).isdigit():
            project = db.query(Project).filter(Project.id == int(candidate)).first()
            if project:
                return project.id
            logger.warning(f"⚠️ Event references unknown project {candidate} (calendar={calendar_id})")

    general = db.query(Project).filter(Project.is_general.is_(True)).order_by(Project.id).first()
    if general:
        logger.info(f"📁 Assigning external event on {calendar_id} to general project {general.id}")
        return general.id
    return None


def _private_properties(event: Dict[str, Any]) -> Dict[str, Any]:
    return (event.get("extendedProperties") or {}).get("private") or {}


def _infer_entity_type(calendar_id: str, private: Dict[str, Any], calendar_config: CalendarConfig) -> str:
    entity_type = private.get("entityType")
    if entity_type in {e.value for e in EntityType}:
        return entity_type
    if calendar_id == calendar_config.WORK_ORDER:
        return EntityType.WORK_ORDER.value
    if calendar_id == calendar_config.PROJECT:
        return EntityType.SCHEDULE_ITEM.value
    return EntityType.PERSONAL_TASK.value

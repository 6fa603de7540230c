"""
Schedule Item Sync
Local schedule item writes with their Google Calendar counterpart:
select calendars -> remote operation (retried) -> local write.

A remote failure never loses the local create/update; it is recorded on the
item as last_sync_error. A local delete only happens once the remote event is
gone, so a failed delete leaves the item in place to be retried.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models import ScheduleItem
from ..schemas import (
    Assignee,
    CalendarEventOptions,
    CalendarEventResult,
    CalendarEventUpdate,
    CalendarSelection,
    CalendarSelectionContext,
    EntityType,
    FailureReason,
    ScheduleItemCreate,
    ScheduleItemUpdate,
)
from .calendar_config import CalendarConfig
from .calendar_event_service import CalendarEventService
from .calendar_selection import select_calendars

logger = logging.getLogger(__name__)


@dataclass
class ScheduleSyncResult:
    item: Optional[ScheduleItem]
    calendar: Optional[CalendarEventResult] = None
    selection: Optional[CalendarSelection] = None
    deleted: bool = False


def selection_context(
    item: ScheduleItem, user_email: Optional[str], user_id: Optional[str] = None
) -> CalendarSelectionContext:
    return CalendarSelectionContext(
        entity_type=item.entity_type,
        project_id=str(item.project_id) if item.project_id else None,
        work_order_id=item.work_order_id,
        assignees=[Assignee.model_validate(a) for a in (item.assignees or [])],
        user_id=user_id,
        user_email=user_email,
    )


def attendee_emails(selection: CalendarSelection) -> List[str]:
    """Invitees other than the owner, de-duplicated in order"""
    emails = []
    for invite in selection.individual_invites:
        if invite.role == "owner":
            continue
        if invite.email not in emails:
            emails.append(invite.email)
    return emails


def _declined(result: Optional[CalendarEventResult]) -> bool:
    return result is not None and result.reason == FailureReason.USER_CANCELLED


def _record_sync(item: ScheduleItem, result: CalendarEventResult, calendar_id: Optional[str] = None):
    if result.success:
        if result.event_id:
            item.google_event_id = result.event_id
        if calendar_id:
            item.calendar_id = calendar_id
        item.last_sync_at = datetime.utcnow()
        item.last_sync_error = None
    elif not _declined(result):
        item.last_sync_error = result.error or (result.reason.value if result.reason else "sync failed")


async def _push_new_event(
    item: ScheduleItem,
    service: CalendarEventService,
    user_email: Optional[str],
    user_id: Optional[str],
    calendar_config: Optional[CalendarConfig],
):
    selection = select_calendars(selection_context(item, user_email, user_id), calendar_config)
    calendar_id = selection.primary_calendar.id
    attendees = attendee_emails(selection)
    result = await service.create_event(
        calendar_id,
        CalendarEventOptions(
            title=item.title,
            description=item.description,
            start_time=item.start_datetime,
            end_time=item.end_datetime,
            location=item.location,
            entity_type=EntityType(item.entity_type),
            entity_id=str(item.id),
            project_id=str(item.project_id),
            attendees=attendees,
            send_notifications=bool(attendees),
        ),
    )
    _record_sync(item, result, calendar_id)
    return result, selection


async def create_schedule_item(
    db: Session,
    payload: ScheduleItemCreate,
    service: CalendarEventService,
    user_email: Optional[str],
    user_id: Optional[str] = None,
    calendar_config: Optional[CalendarConfig] = None,
) -> ScheduleSyncResult:
    item = ScheduleItem(
        project_id=payload.project_id,
        title=payload.title,
        description=payload.description,
        start_datetime=payload.start_datetime,
        end_datetime=payload.end_datetime or payload.start_datetime + timedelta(hours=1),
        location=payload.location,
        entity_type=payload.entity_type.value,
        work_order_id=payload.work_order_id,
        assignees=[a.model_dump(exclude_none=True) for a in payload.assignees],
        calendar_integration_enabled=payload.calendar_integration_enabled,
        created_by=user_email,
        origin="local",
    )
    db.add(item)
    db.flush()  # id is stamped into the event's extended properties

    result = selection = None
    if item.calendar_integration_enabled:
        result, selection = await _push_new_event(item, service, user_email, user_id, calendar_config)

    db.commit()
    db.refresh(item)
    logger.info(
        f"✅ Schedule item {item.id} created (calendar: "
        f"{'disabled' if result is None else ('synced' if result.success else result.reason.value)})"
    )
    return ScheduleSyncResult(item=item, calendar=result, selection=selection)


async def update_schedule_item(
    db: Session,
    item: ScheduleItem,
    payload: ScheduleItemUpdate,
    service: CalendarEventService,
    user_email: Optional[str],
    user_id: Optional[str] = None,
    calendar_config: Optional[CalendarConfig] = None,
) -> ScheduleSyncResult:
    changes = payload.model_dump(exclude_unset=True, exclude={"connect_if_needed", "assignees"})
    for key, value in changes.items():
        if value is not None:
            setattr(item, key, value)
    if payload.assignees is not None:
        item.assignees = [a.model_dump(exclude_none=True) for a in payload.assignees]
    if item.end_datetime <= item.start_datetime:
        item.end_datetime = item.start_datetime + timedelta(hours=1)

    result = selection = None
    if not item.calendar_integration_enabled:
        if item.google_event_id:
            # Integration switched off: take the event down, keep the item
            result = await service.delete_event(item.google_event_id, item.calendar_id or "primary")
            if result.success:
                item.google_event_id = None
                item.calendar_id = None
            _record_sync(item, result)
    elif not item.google_event_id:
        result, selection = await _push_new_event(item, service, user_email, user_id, calendar_config)
    else:
        selection = select_calendars(selection_context(item, user_email, user_id), calendar_config)
        attendees = attendee_emails(selection) if payload.assignees is not None else None
        result = await service.update_event(
            item.google_event_id,
            item.calendar_id or selection.primary_calendar.id,
            CalendarEventUpdate(
                title=item.title,
                description=item.description,
                start_time=item.start_datetime,
                end_time=item.end_datetime,
                location=item.location,
                attendees=attendees,
                send_notifications=bool(attendees),
            ),
        )
        _record_sync(item, result)

    if _declined(result):
        # Declined before any remote call; discard the pending local edit
        db.rollback()
        db.refresh(item)
        logger.info(f"ℹ️ Schedule item {item.id} update cancelled by {user_email}")
        return ScheduleSyncResult(item=item, calendar=result, selection=selection)

    db.commit()
    db.refresh(item)
    logger.info(f"✅ Schedule item {item.id} updated")
    return ScheduleSyncResult(item=item, calendar=result, selection=selection)


async def delete_schedule_item(
    db: Session, item: ScheduleItem, service: CalendarEventService
) -> ScheduleSyncResult:
    result = None
    if item.google_event_id:
        result = await service.delete_event(item.google_event_id, item.calendar_id or "primary")
        if not result.success:
            if _declined(result):
                logger.info(f"ℹ️ Schedule item {item.id} delete cancelled")
                return ScheduleSyncResult(item=item, calendar=result)
            _record_sync(item, result)
            db.commit()
            db.refresh(item)
            logger.warning(f"⚠️ Schedule item {item.id} kept: remote delete failed ({result.reason})")
            return ScheduleSyncResult(item=item, calendar=result)

    item_id = item.id
    db.delete(item)
    db.commit()
    logger.info(f"🗑️ Schedule item {item_id} deleted")
    return ScheduleSyncResult(item=None, calendar=result, deleted=True)

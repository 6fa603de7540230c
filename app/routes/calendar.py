"""
Calendar Routes
Calendar configuration, calendar selection, user-initiated event operations
and push channel management
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import ActingUser, get_acting_user, get_optional_user
from ..config import CALENDAR_TIMEZONE, GOOGLE_CALENDAR_WEBHOOK_TOKEN, GOOGLE_CALENDAR_WEBHOOK_URL
from ..database import get_db
from ..dependencies import EventServiceFactory, get_config, get_event_service_factory, get_service_client_factory
from ..schemas import (
    CalendarConfigResponse,
    CalendarEventRequest,
    CalendarEventResult,
    CalendarEventUpdateRequest,
    CalendarSelection,
    CalendarSelectionContext,
    ChannelRegisterRequest,
    ChannelResponse,
)
from ..services import channel_service
from ..services.calendar_config import CalendarConfig
from ..services.calendar_selection import select_calendars

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/calendar", tags=["calendar"])


@router.get("/config", response_model=CalendarConfigResponse)
async def get_calendar_configuration(calendar_config: CalendarConfig = Depends(get_config)):
    """Logical -> physical calendar mapping used by clients"""
    return CalendarConfigResponse(
        GOOGLE_CALENDAR_PROJECT=calendar_config.PROJECT,
        GOOGLE_CALENDAR_WORK_ORDER=calendar_config.WORK_ORDER,
        GOOGLE_CALENDAR_ADHOC=calendar_config.ADHOC,
        timezone=CALENDAR_TIMEZONE,
        degraded=calendar_config.degraded,
    )


@router.post("/select", response_model=CalendarSelection)
async def select_calendar(
    context: CalendarSelectionContext,
    user: Optional[ActingUser] = Depends(get_optional_user),
    calendar_config: CalendarConfig = Depends(get_config),
):
    if user and not context.user_email:
        context = context.model_copy(update={"user_email": user.email, "user_id": context.user_id or user.id})
    return select_calendars(context, calendar_config)


@router.post("/events", response_model=CalendarEventResult, response_model_exclude_none=True)
async def create_calendar_event(
    request: CalendarEventRequest,
    user: ActingUser = Depends(get_acting_user),
    db: Session = Depends(get_db),
    service_factory: EventServiceFactory = Depends(get_event_service_factory),
    calendar_config: CalendarConfig = Depends(get_config),
):
    options = request.event
    calendar_id = request.calendar_id
    if not calendar_id:
        selection = select_calendars(
            CalendarSelectionContext(
                entity_type=options.entity_type,
                project_id=options.project_id,
                user_id=user.id,
                user_email=user.email,
            ),
            calendar_config,
        )
        calendar_id = selection.primary_calendar.id

    service = service_factory(user, request.connect_if_needed)
    result = await service.create_event(calendar_id, options)
    db.commit()  # notifications recorded by the service
    return result


@router.patch("/events/{event_id}", response_model=CalendarEventResult, response_model_exclude_none=True)
async def update_calendar_event(
    event_id: str,
    request: CalendarEventUpdateRequest,
    user: ActingUser = Depends(get_acting_user),
    db: Session = Depends(get_db),
    service_factory: EventServiceFactory = Depends(get_event_service_factory),
):
    service = service_factory(user, request.connect_if_needed)
    result = await service.update_event(event_id, request.calendar_id, request.event)
    db.commit()
    return result


@router.delete("/events/{event_id}", response_model=CalendarEventResult, response_model_exclude_none=True)
async def delete_calendar_event(
    event_id: str,
    calendar_id: str = Query(..., alias="calendarId", min_length=1),
    connect_if_needed: bool = Query(default=False, alias="connectIfNeeded"),
    user: ActingUser = Depends(get_acting_user),
    db: Session = Depends(get_db),
    service_factory: EventServiceFactory = Depends(get_event_service_factory),
):
    service = service_factory(user, connect_if_needed)
    result = await service.delete_event(event_id, calendar_id)
    db.commit()
    return result


# ---------------------------------------------------------------------------
# Push notification channels
# ---------------------------------------------------------------------------


@router.get("/channels", response_model=List[ChannelResponse])
async def list_push_channels(
    user: ActingUser = Depends(get_acting_user), db: Session = Depends(get_db)
):
    return channel_service.list_channels(db)


@router.post("/channels", response_model=List[ChannelResponse])
async def register_push_channels(
    request: ChannelRegisterRequest,
    user: ActingUser = Depends(get_acting_user),
    db: Session = Depends(get_db),
    client_factory=Depends(get_service_client_factory),
    calendar_config: CalendarConfig = Depends(get_config),
):
    """Register a watch channel for one calendar, or for every shared calendar"""
    try:
        client = client_factory()
        if request.calendar_id:
            channel = await channel_service.register_channel(
                db, client, request.calendar_id, GOOGLE_CALENDAR_WEBHOOK_URL, GOOGLE_CALENDAR_WEBHOOK_TOKEN
            )
            return [channel]
        return await channel_service.register_default_channels(
            db, client, GOOGLE_CALENDAR_WEBHOOK_URL, GOOGLE_CALENDAR_WEBHOOK_TOKEN, calendar_config
        )
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Channel registration failed: {str(e)}")
        raise HTTPException(status_code=502, detail=f"Channel registration failed: {str(e)}") from e


@router.post("/channels/renew", response_model=List[ChannelResponse])
async def renew_push_channels(
    threshold_hours: Optional[int] = Query(default=None, alias="thresholdHours", ge=0),
    user: ActingUser = Depends(get_acting_user),
    db: Session = Depends(get_db),
    client_factory=Depends(get_service_client_factory),
):
    try:
        client = client_factory()
    except Exception as e:
        logger.error(f"❌ Cannot build service calendar client: {str(e)}")
        raise HTTPException(status_code=502, detail=f"Calendar client unavailable: {str(e)}") from e

    return await channel_service.renew_expiring_channels(
        db, client, GOOGLE_CALENDAR_WEBHOOK_URL, GOOGLE_CALENDAR_WEBHOOK_TOKEN, threshold_hours=threshold_hours
    )

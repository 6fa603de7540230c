"""
Schedule Item Routes
CRUD for project schedule items, mirrored to Google Calendar
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import ActingUser, get_acting_user
from ..database import get_db
from ..dependencies import EventServiceFactory, get_config, get_event_service_factory
from ..models import Project, ScheduleItem
from ..schemas import (
    ScheduleItemCreate,
    ScheduleItemResponse,
    ScheduleItemSyncResponse,
    ScheduleItemUpdate,
)
from ..services import schedule_sync
from ..services.calendar_config import CalendarConfig

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/schedule-items", tags=["schedule-items"])


def _get_item(db: Session, item_id: int) -> ScheduleItem:
    item = db.query(ScheduleItem).filter(ScheduleItem.id == item_id).first()
    if not item:
        raise HTTPException(status_code=404, detail="Schedule item not found")
    return item


@router.get("", response_model=List[ScheduleItemResponse])
async def list_schedule_items(
    project_id: Optional[int] = Query(default=None, alias="projectId"),
    user: ActingUser = Depends(get_acting_user),
    db: Session = Depends(get_db),
):
    query = db.query(ScheduleItem)
    if project_id is not None:
        query = query.filter(ScheduleItem.project_id == project_id)
    return query.order_by(ScheduleItem.start_datetime).all()


@router.get("/{item_id}", response_model=ScheduleItemResponse)
async def get_schedule_item(
    item_id: int, user: ActingUser = Depends(get_acting_user), db: Session = Depends(get_db)
):
    return _get_item(db, item_id)


@router.post("", response_model=ScheduleItemSyncResponse, status_code=201)
async def create_schedule_item(
    payload: ScheduleItemCreate,
    user: ActingUser = Depends(get_acting_user),
    db: Session = Depends(get_db),
    service_factory: EventServiceFactory = Depends(get_event_service_factory),
    calendar_config: CalendarConfig = Depends(get_config),
):
    if not db.query(Project).filter(Project.id == payload.project_id).first():
        raise HTTPException(status_code=404, detail="Project not found")

    result = await schedule_sync.create_schedule_item(
        db,
        payload,
        service_factory(user, payload.connect_if_needed),
        user.email,
        user.id,
        calendar_config,
    )
    return ScheduleItemSyncResponse(
        item=ScheduleItemResponse.model_validate(result.item),
        calendar=result.calendar,
        selection=result.selection,
    )


@router.patch("/{item_id}", response_model=ScheduleItemSyncResponse)
async def update_schedule_item(
    item_id: int,
    payload: ScheduleItemUpdate,
    user: ActingUser = Depends(get_acting_user),
    db: Session = Depends(get_db),
    service_factory: EventServiceFactory = Depends(get_event_service_factory),
    calendar_config: CalendarConfig = Depends(get_config),
):
    item = _get_item(db, item_id)
    result = await schedule_sync.update_schedule_item(
        db,
        item,
        payload,
        service_factory(user, payload.connect_if_needed),
        user.email,
        user.id,
        calendar_config,
    )
    return ScheduleItemSyncResponse(
        item=ScheduleItemResponse.model_validate(result.item),
        calendar=result.calendar,
        selection=result.selection,
    )


@router.delete("/{item_id}", response_model=ScheduleItemSyncResponse)
async def delete_schedule_item(
    item_id: int,
    connect_if_needed: bool = Query(default=False, alias="connectIfNeeded"),
    user: ActingUser = Depends(get_acting_user),
    db: Session = Depends(get_db),
    service_factory: EventServiceFactory = Depends(get_event_service_factory),
):
    item = _get_item(db, item_id)
    result = await schedule_sync.delete_schedule_item(db, item, service_factory(user, connect_if_needed))
    if not result.deleted:
        logger.warning(f"⚠️ Schedule item {item_id} not deleted: calendar event removal failed")
    return ScheduleItemSyncResponse(
        item=ScheduleItemResponse.model_validate(result.item) if result.item else None,
        calendar=result.calendar,
    )

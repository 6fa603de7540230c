from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import ActingUser, get_acting_user
from ..database import get_db
from ..schemas import NotificationResponse
from ..services import notification_service

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationResponse])
async def get_notifications(
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    limit: int = Query(default=50, ge=1, le=200),
    current_user: ActingUser = Depends(get_acting_user),
    db: Session = Depends(get_db),
):
    """Calendar operation outcomes for the current user, newest first"""
    return notification_service.list_notifications(db, current_user.email, unread_only, limit)


@router.post("/{notification_id}/read")
async def mark_notification_read(
    notification_id: int,
    current_user: ActingUser = Depends(get_acting_user),
    db: Session = Depends(get_db),
):
    if not notification_service.mark_notification_read(db, current_user.email, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"message": "Notification marked as read"}

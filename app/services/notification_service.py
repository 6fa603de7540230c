"""
User Notification Service
Stores the user-visible outcome of calendar operations so the UI can surface them
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models import UserNotification

logger = logging.getLogger(__name__)


def send_notification(
    db: Session,
    user_email: Optional[str],
    title: str,
    message: str,
    variant: str = "default",
    reason: Optional[str] = None,
) -> Optional[UserNotification]:
    """
    Record a notification for a user.

    Background work (no user) is logged only. The row is written inside a
    savepoint of the caller's transaction and committed with it; a failure to
    store it rolls back only the savepoint, never the caller's pending work.
    """
    log = logger.warning if variant == "destructive" else logger.info
    log(f"🔔 [{user_email or 'system'}] {title}: {message}")

    if not user_email:
        return None

    try:
        notification = UserNotification(
            user_email=user_email,
            title=title,
            message=message,
            variant=variant,
            reason=reason,
        )
        with db.begin_nested():
            db.add(notification)
        return notification
    except Exception as e:
        logger.error(f"❌ Failed to store notification for {user_email}: {e}")
        return None


def notify_failure(
    db: Session, user_email: Optional[str], message: str, reason: Optional[str] = None
) -> Optional[UserNotification]:
    return send_notification(
        db, user_email, "Calendar sync failed", message, variant="destructive", reason=reason
    )


def list_notifications(db: Session, user_email: str, unread_only: bool = False, limit: int = 50):
    query = db.query(UserNotification).filter(UserNotification.user_email == user_email)
    if unread_only:
        query = query.filter(UserNotification.read.is_(False))
    return query.order_by(UserNotification.id.desc()).limit(limit).all()


def mark_notification_read(db: Session, user_email: str, notification_id: int) -> bool:
    notification = (
        db.query(UserNotification)
        .filter(UserNotification.id == notification_id, UserNotification.user_email == user_email)
        .first()
    )
    if not notification:
        return False
    notification.read = True
    db.commit()
    return True

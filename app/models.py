from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    # Catch-all project for calendar events that cannot be tied to a real project
    is_general = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    schedule_items = relationship(
        "ScheduleItem", back_populates="project", cascade="all, delete-orphan"
    )


class ScheduleItem(Base):
    __tablename__ = "schedule_items"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    start_datetime = Column(DateTime, nullable=False)
    end_datetime = Column(DateTime, nullable=False)
    location = Column(String(500), nullable=True)

    # project_milestone, schedule_item, work_order, contact_interaction, time_entry, personal_task
    entity_type = Column(String(50), nullable=False, default="schedule_item")
    work_order_id = Column(String(100), nullable=True)
    assignees = Column(JSON, nullable=True)  # [{"type": "employee", "id": "...", "email": "..."}]

    # Google Calendar integration fields
    calendar_integration_enabled = Column(Boolean, default=True, nullable=False)
    calendar_id = Column(String(500), nullable=True)
    google_event_id = Column(String(500), nullable=True, unique=True, index=True)
    last_sync_at = Column(DateTime, nullable=True)
    last_sync_error = Column(Text, nullable=True)
    # Google's "updated" timestamp of the last remote revision applied locally
    remote_updated_at = Column(DateTime, nullable=True)

    created_by = Column(String(255), nullable=True)  # acting user email
    origin = Column(String(20), nullable=False, default="local")  # local, remote

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="schedule_items")


class PushNotificationChannel(Base):
    __tablename__ = "push_notification_channels"

    id = Column(String(64), primary_key=True)  # channel id we generated
    calendar_id = Column(String(500), nullable=False, index=True)
    resource_id = Column(String(255), nullable=False)
    expiration = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expiration <= (now or datetime.utcnow())


class UserNotification(Base):
    __tablename__ = "user_notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_email = Column(String(255), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    variant = Column(String(20), nullable=False, default="default")  # default, destructive
    reason = Column(String(50), nullable=True)  # failure classification, if any
    read = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())

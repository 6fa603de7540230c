"""
FastAPI dependencies that hand out Google Calendar clients and services.
Tests override these through app.dependency_overrides.
"""
from typing import Callable, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from .auth import ActingUser
from .database import get_db
from .services.calendar_config import CalendarConfig, get_calendar_config
from .services.calendar_event_service import CalendarEventService
from .services.google_calendar_service import GoogleCalendarClient, service_account_token_provider

EventServiceFactory = Callable[[Optional[ActingUser], bool], CalendarEventService]


def get_config() -> CalendarConfig:
    return get_calendar_config()


def get_service_client_factory() -> Callable[[], GoogleCalendarClient]:
    """Backoffice client (service account), built lazily so sync/delete paths need no credentials"""

    def _factory() -> GoogleCalendarClient:
        return GoogleCalendarClient(service_account_token_provider())

    return _factory


def get_event_service_factory(db: Session = Depends(get_db)) -> EventServiceFactory:
    def _factory(user: Optional[ActingUser], connect_if_needed: bool) -> CalendarEventService:
        async def _confirm() -> bool:
            return connect_if_needed

        return CalendarEventService(
            db, user.email if user else None, confirm_authentication=_confirm
        )

    return _factory

"""
Calendar Event Service
User-initiated create / update / delete of Google Calendar events.

Every public operation returns a CalendarEventResult and never raises:
validation happens before any I/O, the user is offered the Google connection
flow when not connected, and provider calls go through retry_with_backoff.
Each outcome produces exactly one user notification (declining to connect
produces none).
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple

from sqlalchemy.orm import Session

from ..models_google_calendar import GoogleCalendarIntegration
from ..schemas import (
    CalendarEventOptions,
    CalendarEventResult,
    CalendarEventUpdate,
    FailureReason,
)
from . import notification_service
from .calendar_errors import AUTHENTICATION_MESSAGE, CalendarOperationError, retry_with_backoff
from .google_calendar_service import (
    GoogleCalendarClient,
    build_authorization_url,
    build_event_body,
    get_valid_access_token,
    static_token_provider,
)

logger = logging.getLogger(__name__)

# Asked when the user has no Google connection; True means "take me to Google"
ConfirmAuthentication = Callable[[], Awaitable[bool]]


async def _decline() -> bool:
    return False


class CalendarEventService:
    def __init__(
        self,
        db: Session,
        user_email: Optional[str],
        client: Optional[GoogleCalendarClient] = None,
        confirm_authentication: Optional[ConfirmAuthentication] = None,
        max_retries: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        transport=None,
    ):
        self.db = db
        self.user_email = user_email
        self.client = client
        self.confirm_authentication = confirm_authentication or _decline
        self.max_retries = max_retries
        self.sleep = sleep
        self.transport = transport

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def create_event(self, calendar_id: str, options: CalendarEventOptions) -> CalendarEventResult:
        if not options.title or not options.title.strip() or not options.start_time:
            return self._invalid("Event title and start time are required for calendar events")

        client, failure = await self._authenticated_client()
        if failure:
            return failure

        body = build_event_body(
            title=options.title,
            description=options.description,
            start_time=options.start_time,
            end_time=options.end_time,
            location=options.location,
            timezone=options.timezone,
            attendees=options.attendees,
            entity_type=options.entity_type.value,
            entity_id=options.entity_id,
            project_id=options.project_id,
        )
        send_updates = "all" if options.attendees or options.send_notifications else "none"

        try:
            event = await retry_with_backoff(
                lambda: client.insert_event(calendar_id, body, send_updates=send_updates),
                max_retries=self.max_retries,
                sleep=self.sleep,
            )
        except CalendarOperationError as e:
            return self._failed(e)

        event_id = (event or {}).get("id")
        logger.info(f"✅ Google Calendar event created: {event_id} on {calendar_id}")
        self._notify("Calendar event created", "Item has been added to your Google Calendar")
        return CalendarEventResult(success=True, event_id=event_id)

    async def update_event(
        self, event_id: Optional[str], calendar_id: str, changes: CalendarEventUpdate
    ) -> CalendarEventResult:
        if not event_id:
            return self._invalid("Cannot update calendar event: missing event ID")

        client, failure = await self._authenticated_client()
        if failure:
            return failure

        body = build_event_body(
            title=changes.title,
            description=changes.description,
            start_time=changes.start_time,
            end_time=changes.end_time,
            location=changes.location,
            timezone=changes.timezone,
            attendees=changes.attendees,
            partial=True,
        )
        send_updates = "all" if changes.attendees is not None or changes.send_notifications else "none"

        try:
            await retry_with_backoff(
                lambda: client.patch_event(calendar_id, event_id, body, send_updates=send_updates),
                max_retries=self.max_retries,
                sleep=self.sleep,
            )
        except CalendarOperationError as e:
            return self._failed(e)

        logger.info(f"✅ Google Calendar event updated: {event_id}")
        self._notify("Calendar event updated", "Changes have been synced to your Google Calendar")
        return CalendarEventResult(success=True, event_id=event_id)

    async def delete_event(self, event_id: Optional[str], calendar_id: str) -> CalendarEventResult:
        if not event_id:
            return self._invalid("Cannot delete calendar event: missing event ID")

        client, failure = await self._authenticated_client()
        if failure:
            return failure

        try:
            await retry_with_backoff(
                lambda: client.delete_event(calendar_id, event_id),
                max_retries=self.max_retries,
                sleep=self.sleep,
            )
        except CalendarOperationError as e:
            return self._failed(e)

        logger.info(f"✅ Google Calendar event deleted: {event_id}")
        self._notify("Calendar event removed", "Event has been removed from your Google Calendar")
        return CalendarEventResult(success=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _authenticated_client(
        self,
    ) -> Tuple[Optional[GoogleCalendarClient], Optional[CalendarEventResult]]:
        if self.client is not None:
            return self.client, None

        integration = None
        if self.user_email:
            integration = (
                self.db.query(GoogleCalendarIntegration)
                .filter(GoogleCalendarIntegration.user_email == self.user_email)
                .first()
            )

        if not integration or not integration.auto_sync_enabled:
            return None, await self._offer_connection()

        access_token = await get_valid_access_token(integration, self.db, transport=self.transport)
        if not access_token:
            logger.error(f"❌ Failed to get valid access token for {self.user_email}")
            self._notify(
                "Calendar sync failed",
                AUTHENTICATION_MESSAGE,
                variant="destructive",
                reason=FailureReason.AUTHENTICATION_REQUIRED.value,
            )
            return None, CalendarEventResult(
                success=False,
                reason=FailureReason.AUTHENTICATION_REQUIRED,
                retryable=False,
                error=AUTHENTICATION_MESSAGE,
                authorization_url=build_authorization_url(self.user_email or ""),
            )

        self.client = GoogleCalendarClient(static_token_provider(access_token), transport=self.transport)
        return self.client, None

    async def _offer_connection(self) -> CalendarEventResult:
        if not await self.confirm_authentication():
            logger.info(f"ℹ️ {self.user_email} declined to connect Google Calendar")
            return CalendarEventResult(success=False, reason=FailureReason.USER_CANCELLED)

        # Connection flow started; the user retries once it completes
        self._notify(
            "Authentication required",
            "Please try again after connecting to Google Calendar",
            reason=FailureReason.AUTHENTICATION_REQUIRED.value,
        )
        return CalendarEventResult(
            success=False,
            reason=FailureReason.AUTHENTICATION_REQUIRED,
            retryable=False,
            authorization_url=build_authorization_url(self.user_email or ""),
        )

    def _invalid(self, message: str) -> CalendarEventResult:
        logger.warning(f"⚠️ Rejected calendar operation for {self.user_email}: {message}")
        self._notify(
            "Missing information",
            message,
            variant="destructive",
            reason=FailureReason.INVALID_PARAMETERS.value,
        )
        return CalendarEventResult(
            success=False,
            reason=FailureReason.INVALID_PARAMETERS,
            retryable=False,
            error=message,
        )

    def _failed(self, error: CalendarOperationError) -> CalendarEventResult:
        classification = error.classification
        notification_service.notify_failure(
            self.db, self.user_email, classification.message, reason=classification.reason.value
        )
        return CalendarEventResult(
            success=False,
            reason=classification.reason,
            retryable=classification.retryable,
            error=str(error.original),
        )

    def _notify(self, title: str, message: str, variant: str = "default", reason: Optional[str] = None):
        notification_service.send_notification(
            self.db, self.user_email, title, message, variant=variant, reason=reason
        )

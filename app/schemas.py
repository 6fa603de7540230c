"""
Pydantic schemas for the calendar subsystem.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class EntityType(str, Enum):
    PROJECT_MILESTONE = "project_milestone"
    SCHEDULE_ITEM = "schedule_item"
    WORK_ORDER = "work_order"
    CONTACT_INTERACTION = "contact_interaction"
    TIME_ENTRY = "time_entry"
    PERSONAL_TASK = "personal_task"


class FailureReason(str, Enum):
    USER_CANCELLED = "user_cancelled"
    AUTHENTICATION_REQUIRED = "authentication_required"
    INVALID_PARAMETERS = "invalid_parameters"
    NETWORK_ERROR = "network_error"
    RATE_LIMIT = "rate_limit"
    API_ERROR = "api_error"


AssigneeType = Literal["employee", "subcontractor"]


# ---------------------------------------------------------------------------
# Calendar selection
# ---------------------------------------------------------------------------


class Assignee(CamelModel):
    type: AssigneeType
    id: str
    email: Optional[str] = None


class CalendarSelectionContext(CamelModel):
    entity_type: EntityType
    project_id: Optional[str] = None
    work_order_id: Optional[str] = None
    assignees: List[Assignee] = Field(default_factory=list)
    user_id: Optional[str] = None
    user_email: Optional[str] = None


class PrimaryCalendar(CamelModel):
    id: str
    type: Literal["group", "personal"]
    name: str


class IndividualInvite(CamelModel):
    email: str
    role: Literal["owner", "assignee", "attendee"]
    type: Literal["employee", "subcontractor", "client"]


class AdditionalCalendar(CamelModel):
    id: str
    type: Literal["group"] = "group"
    name: str
    reason: str


class CalendarSelection(CamelModel):
    primary_calendar: PrimaryCalendar
    individual_invites: List[IndividualInvite] = Field(default_factory=list)
    additional_calendars: List[AdditionalCalendar] = Field(default_factory=list)


class CalendarConfigResponse(BaseModel):
    GOOGLE_CALENDAR_PROJECT: str
    GOOGLE_CALENDAR_WORK_ORDER: str
    GOOGLE_CALENDAR_ADHOC: str
    timezone: str
    degraded: bool


# ---------------------------------------------------------------------------
# Remote event operations
# ---------------------------------------------------------------------------


class CalendarEventOptions(CamelModel):
    # title/start_time are optional here so a missing value reaches the service
    # and comes back as an invalid_parameters result instead of a 422
    title: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    location: Optional[str] = None
    entity_type: EntityType = EntityType.SCHEDULE_ITEM
    entity_id: Optional[str] = None
    project_id: Optional[str] = None
    attendees: List[str] = Field(default_factory=list)
    send_notifications: bool = False
    timezone: Optional[str] = None


class CalendarEventUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    location: Optional[str] = None
    attendees: Optional[List[str]] = None
    send_notifications: bool = False
    timezone: Optional[str] = None


class CalendarEventRequest(CamelModel):
    calendar_id: Optional[str] = None
    connect_if_needed: bool = False
    event: CalendarEventOptions


class CalendarEventUpdateRequest(CamelModel):
    calendar_id: str = Field(min_length=1)
    connect_if_needed: bool = False
    event: CalendarEventUpdate


class CalendarEventResult(CamelModel):
    success: bool
    event_id: Optional[str] = None
    reason: Optional[FailureReason] = None
    retryable: Optional[bool] = None
    error: Optional[str] = None
    authorization_url: Optional[str] = None


# ---------------------------------------------------------------------------
# Schedule items
# ---------------------------------------------------------------------------


class ScheduleItemCreate(CamelModel):
    project_id: int
    title: str
    description: Optional[str] = None
    start_datetime: datetime
    end_datetime: Optional[datetime] = None
    location: Optional[str] = None
    entity_type: EntityType = EntityType.SCHEDULE_ITEM
    work_order_id: Optional[str] = None
    assignees: List[Assignee] = Field(default_factory=list)
    calendar_integration_enabled: bool = True
    connect_if_needed: bool = False


class ScheduleItemUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start_datetime: Optional[datetime] = None
    end_datetime: Optional[datetime] = None
    location: Optional[str] = None
    assignees: Optional[List[Assignee]] = None
    calendar_integration_enabled: Optional[bool] = None
    connect_if_needed: bool = False


class ScheduleItemResponse(CamelModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, from_attributes=True)

    id: int
    project_id: int
    title: str
    description: Optional[str] = None
    start_datetime: datetime
    end_datetime: datetime
    location: Optional[str] = None
    entity_type: str
    work_order_id: Optional[str] = None
    calendar_integration_enabled: bool
    calendar_id: Optional[str] = None
    google_event_id: Optional[str] = None
    last_sync_at: Optional[datetime] = None
    last_sync_error: Optional[str] = None
    created_by: Optional[str] = None
    origin: str


class ScheduleItemSyncResponse(CamelModel):
    item: Optional[ScheduleItemResponse] = None
    calendar: Optional[CalendarEventResult] = None
    selection: Optional[CalendarSelection] = None


# ---------------------------------------------------------------------------
# Push notification channels
# ---------------------------------------------------------------------------


class ChannelRegisterRequest(CamelModel):
    calendar_id: Optional[str] = None  # None registers every shared calendar


class ChannelResponse(CamelModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, from_attributes=True)

    id: str
    calendar_id: str
    resource_id: str
    expiration: datetime
    created_at: datetime


class NotificationResponse(CamelModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, from_attributes=True)

    id: int
    title: str
    message: str
    variant: str
    reason: Optional[str] = None
    read: bool
    created_at: Optional[datetime] = None

"""
Calendar Selection Engine
Decides the primary calendar and the individual invites for a calendar event.

The decision is a pure function of the context and the resolved calendar
configuration: no network or database access happens here.

    entity type                      primary calendar        invites
    project_milestone/schedule_item  PROJECT (group)         owner + assignees
    work_order                       WORK_ORDER (group)      owner + assignees
    contact_interaction/time_entry   PROJECT if project set, otherwise personal
    personal_task (and unknown)      ADHOC (personal)        assignees as attendees

Work orders never land on the Projects calendar, even when a project is linked.
"""
from typing import List, Optional

from ..schemas import (
    Assignee,
    CalendarSelection,
    CalendarSelectionContext,
    EntityType,
    IndividualInvite,
    PrimaryCalendar,
)
from .calendar_config import (
    PERSONAL_CALENDAR_NAME,
    PROJECT_CALENDAR_NAME,
    WORK_ORDER_CALENDAR_NAME,
    CalendarConfig,
    get_calendar_config,
)

PROJECT_ENTITY_TYPES = {EntityType.PROJECT_MILESTONE, EntityType.SCHEDULE_ITEM}
PROJECT_WHEN_LINKED_ENTITY_TYPES = {EntityType.CONTACT_INTERACTION, EntityType.TIME_ENTRY}


def select_calendars(
    context: CalendarSelectionContext, calendar_config: Optional[CalendarConfig] = None
) -> CalendarSelection:
    calendar_config = calendar_config or get_calendar_config()
    entity_type = context.entity_type

    if entity_type in PROJECT_ENTITY_TYPES:
        return _project_selection(context, calendar_config)

    if entity_type == EntityType.WORK_ORDER:
        return _work_order_selection(context, calendar_config)

    if entity_type in PROJECT_WHEN_LINKED_ENTITY_TYPES:
        if context.project_id:
            return _project_selection(context, calendar_config)
        return _personal_selection(context, calendar_config)

    return _personal_selection(context, calendar_config)


def _owner_and_assignees(context: CalendarSelectionContext) -> List[IndividualInvite]:
    invites = []
    if context.user_email:
        invites.append(IndividualInvite(email=context.user_email, role="owner", type="employee"))
    invites.extend(_assignee_invites(context.assignees, role="assignee"))
    return invites


def _assignee_invites(assignees: List[Assignee], role: str) -> List[IndividualInvite]:
    # Assignees without an email cannot be invited
    return [
        IndividualInvite(email=assignee.email, role=role, type=assignee.type)
        for assignee in assignees
        if assignee.email
    ]


def _project_selection(
    context: CalendarSelectionContext, calendar_config: CalendarConfig
) -> CalendarSelection:
    return CalendarSelection(
        primary_calendar=PrimaryCalendar(
            id=calendar_config.PROJECT, type="group", name=PROJECT_CALENDAR_NAME
        ),
        individual_invites=_owner_and_assignees(context),
        additional_calendars=[],
    )


def _work_order_selection(
    context: CalendarSelectionContext, calendar_config: CalendarConfig
) -> CalendarSelection:
    return CalendarSelection(
        primary_calendar=PrimaryCalendar(
            id=calendar_config.WORK_ORDER, type="group", name=WORK_ORDER_CALENDAR_NAME
        ),
        individual_invites=_owner_and_assignees(context),
        additional_calendars=[],
    )


def _personal_selection(
    context: CalendarSelectionContext, calendar_config: CalendarConfig
) -> CalendarSelection:
    return CalendarSelection(
        primary_calendar=PrimaryCalendar(
            id=calendar_config.ADHOC, type="personal", name=PERSONAL_CALENDAR_NAME
        ),
        individual_invites=_assignee_invites(context.assignees, role="attendee"),
        additional_calendars=[],
    )

import pytest

from app.schemas import Assignee, CalendarSelectionContext, EntityType
from app.services.calendar_selection import select_calendars

EMPLOYEE = Assignee(type="employee", id="e1", email="joe@builder.test")
SUBCONTRACTOR = Assignee(type="subcontractor", id="s1", email="sam@subs.test")
NO_EMAIL = Assignee(type="employee", id="e2")


def _context(entity_type, **kwargs):
    return CalendarSelectionContext(entity_type=entity_type, **kwargs)


def test_schedule_item_goes_to_projects_calendar(calendar_config):
    selection = select_calendars(
        _context(
            EntityType.SCHEDULE_ITEM,
            project_id="42",
            user_email="pm@builder.test",
            assignees=[EMPLOYEE, NO_EMAIL],
        ),
        calendar_config,
    )

    assert selection.primary_calendar.id == calendar_config.PROJECT
    assert selection.primary_calendar.type == "group"
    assert selection.primary_calendar.name == "Projects Calendar"
    assert [(i.email, i.role, i.type) for i in selection.individual_invites] == [
        ("pm@builder.test", "owner", "employee"),
        ("joe@builder.test", "assignee", "employee"),
    ]
    assert selection.additional_calendars == []


def test_work_order_never_lands_on_projects_calendar(calendar_config):
    selection = select_calendars(
        _context(EntityType.WORK_ORDER, project_id="42", work_order_id="WO-7", assignees=[SUBCONTRACTOR]),
        calendar_config,
    )

    assert selection.primary_calendar.id == calendar_config.WORK_ORDER
    assert selection.primary_calendar.name == "Work Orders Calendar"
    assert [(i.email, i.role, i.type) for i in selection.individual_invites] == [
        ("sam@subs.test", "assignee", "subcontractor")
    ]


def test_personal_task_invites_assignees_as_attendees(calendar_config):
    selection = select_calendars(
        _context(EntityType.PERSONAL_TASK, user_email="pm@builder.test", assignees=[EMPLOYEE]),
        calendar_config,
    )

    assert selection.primary_calendar.id == "primary"
    assert selection.primary_calendar.type == "personal"
    assert [(i.email, i.role) for i in selection.individual_invites] == [("joe@builder.test", "attendee")]


@pytest.mark.parametrize("entity_type", [EntityType.CONTACT_INTERACTION, EntityType.TIME_ENTRY])
def test_linked_entities_follow_project(entity_type, calendar_config):
    linked = select_calendars(_context(entity_type, project_id="42"), calendar_config)
    unlinked = select_calendars(_context(entity_type), calendar_config)

    assert linked.primary_calendar.id == calendar_config.PROJECT
    assert unlinked.primary_calendar.id == calendar_config.ADHOC


def test_milestone_without_project_still_uses_projects_calendar(calendar_config):
    selection = select_calendars(_context(EntityType.PROJECT_MILESTONE), calendar_config)
    assert selection.primary_calendar.id == calendar_config.PROJECT
    assert selection.individual_invites == []


@pytest.mark.parametrize("entity_type", list(EntityType))
def test_selection_is_deterministic(entity_type, calendar_config):
    context = _context(entity_type, project_id="1", user_email="pm@builder.test", assignees=[EMPLOYEE])
    assert select_calendars(context, calendar_config) == select_calendars(context, calendar_config)


def test_select_endpoint_fills_acting_user(api, user_headers):
    response = api.post(
        "/api/calendar/select",
        json={"entityType": "work_order", "assignees": [{"type": "employee", "id": "e1", "email": "joe@builder.test"}]},
        headers=user_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["primaryCalendar"]["id"] == "work-orders@group.calendar.google.com"
    assert body["individualInvites"][0] == {"email": "pm@builder.test", "role": "owner", "type": "employee"}
    assert body["additionalCalendars"] == []

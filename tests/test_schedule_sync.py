from datetime import datetime

from app.models import ScheduleItem
from app.schemas import Assignee, EntityType, FailureReason, ScheduleItemCreate, ScheduleItemUpdate
from app.services import schedule_sync
from app.services.calendar_errors import CalendarApiError
from app.services.calendar_event_service import CalendarEventService

from .conftest import PROJECT_CALENDAR, USER_EMAIL, WORK_ORDER_CALENDAR

START = datetime(2024, 6, 3, 7, 0)


def _create_payload(project_id, **overrides):
    values = dict(
        project_id=project_id,
        title="Framing inspection",
        start_datetime=START,
        assignees=[Assignee(type="subcontractor", id="s1", email="sam@subs.test")],
    )
    values.update(overrides)
    return ScheduleItemCreate(**values)


async def test_create_syncs_to_projects_calendar(db, project, event_service, fake_client, calendar_config):
    result = await schedule_sync.create_schedule_item(
        db, _create_payload(project.id), event_service, USER_EMAIL, "emp-1", calendar_config
    )

    item = result.item
    assert result.calendar.success is True
    assert item.google_event_id == "evt1"
    assert item.calendar_id == PROJECT_CALENDAR
    assert item.last_sync_at is not None
    assert item.last_sync_error is None
    assert item.created_by == USER_EMAIL

    (_, calendar_id, body, send_updates) = fake_client.calls_to("insert_event")[0]
    assert calendar_id == PROJECT_CALENDAR
    # the owner is the acting user, only assignees are invited
    assert body["attendees"] == [{"email": "sam@subs.test"}]
    assert send_updates == "all"
    assert body["extendedProperties"]["private"]["entityId"] == str(item.id)


async def test_work_order_item_uses_work_order_calendar(db, project, event_service, fake_client, calendar_config):
    result = await schedule_sync.create_schedule_item(
        db,
        _create_payload(project.id, entity_type=EntityType.WORK_ORDER, work_order_id="WO-3"),
        event_service,
        USER_EMAIL,
        calendar_config=calendar_config,
    )

    assert result.item.calendar_id == WORK_ORDER_CALENDAR


async def test_remote_failure_keeps_local_item(db, project, event_service, fake_client, calendar_config):
    fake_client.fail("insert_event", CalendarApiError("Bad Request", 400))

    result = await schedule_sync.create_schedule_item(
        db, _create_payload(project.id), event_service, USER_EMAIL, calendar_config=calendar_config
    )

    assert result.calendar.success is False
    assert result.calendar.reason == FailureReason.INVALID_PARAMETERS
    item = db.query(ScheduleItem).one()
    assert item.google_event_id is None
    assert item.last_sync_error == "Bad Request"


async def test_disabled_integration_skips_calendar(db, project, event_service, fake_client, calendar_config):
    result = await schedule_sync.create_schedule_item(
        db,
        _create_payload(project.id, calendar_integration_enabled=False),
        event_service,
        USER_EMAIL,
        calendar_config=calendar_config,
    )

    assert result.calendar is None
    assert fake_client.calls == []
    assert result.item.google_event_id is None


async def test_update_patches_existing_event(db, project, event_service, fake_client, calendar_config):
    created = await schedule_sync.create_schedule_item(
        db, _create_payload(project.id), event_service, USER_EMAIL, calendar_config=calendar_config
    )

    result = await schedule_sync.update_schedule_item(
        db,
        created.item,
        ScheduleItemUpdate(title="Framing re-inspection"),
        event_service,
        USER_EMAIL,
        calendar_config=calendar_config,
    )

    assert result.calendar.success is True
    (_, calendar_id, event_id, body, _) = fake_client.calls_to("patch_event")[0]
    assert (calendar_id, event_id) == (PROJECT_CALENDAR, "evt1")
    assert body["summary"] == "Framing re-inspection"
    assert "attendees" not in body
    assert result.item.title == "Framing re-inspection"


async def test_delete_removes_remote_then_local(db, project, event_service, fake_client, calendar_config):
    created = await schedule_sync.create_schedule_item(
        db, _create_payload(project.id), event_service, USER_EMAIL, calendar_config=calendar_config
    )

    result = await schedule_sync.delete_schedule_item(db, created.item, event_service)

    assert result.deleted is True
    assert fake_client.calls_to("delete_event") == [("delete_event", PROJECT_CALENDAR, "evt1")]
    assert db.query(ScheduleItem).count() == 0


async def test_failed_remote_delete_keeps_item(db, project, event_service, fake_client, calendar_config):
    created = await schedule_sync.create_schedule_item(
        db, _create_payload(project.id), event_service, USER_EMAIL, calendar_config=calendar_config
    )
    fake_client.fail("delete_event", CalendarApiError("Forbidden", 403))

    result = await schedule_sync.delete_schedule_item(db, created.item, event_service)

    assert result.deleted is False
    assert result.calendar.reason == FailureReason.AUTHENTICATION_REQUIRED
    item = db.query(ScheduleItem).one()
    assert item.last_sync_error == "Forbidden"

async def test_declined_connection_leaves_item_untouched_on_delete(db, project, event_service, calendar_config):
    created = await schedule_sync.create_schedule_item(
        db, _create_payload(project.id), event_service, USER_EMAIL, calendar_config=calendar_config
    )
    unconnected = CalendarEventService(db, USER_EMAIL)

    result = await schedule_sync.delete_schedule_item(db, created.item, unconnected)

    assert result.deleted is False
    assert result.calendar.reason == FailureReason.USER_CANCELLED
    item = db.query(ScheduleItem).one()
    assert item.google_event_id == "evt1"
    assert item.last_sync_error is None


async def test_declined_connection_discards_local_edit(db, project, event_service, calendar_config):
    created = await schedule_sync.create_schedule_item(
        db, _create_payload(project.id), event_service, USER_EMAIL, calendar_config=calendar_config
    )
    unconnected = CalendarEventService(db, USER_EMAIL)

    result = await schedule_sync.update_schedule_item(
        db,
        created.item,
        ScheduleItemUpdate(title="Moved inspection", calendar_integration_enabled=False),
        unconnected,
        USER_EMAIL,
        calendar_config=calendar_config,
    )

    assert result.calendar.reason == FailureReason.USER_CANCELLED
    item = db.query(ScheduleItem).one()
    assert item.title == "Framing inspection"
    assert item.calendar_integration_enabled is True
    assert item.google_event_id == "evt1"
    assert item.last_sync_error is None



def test_schedule_item_endpoints(api, project, user_headers):
    created = api.post(
        "/api/schedule-items",
        json={"projectId": project.id, "title": "Roof delivery", "startDatetime": "2024-06-04T08:00:00"},
        headers=user_headers,
    )
    assert created.status_code == 201
    body = created.json()
    assert body["item"]["googleEventId"] == "evt1"
    assert body["calendar"]["success"] is True
    assert body["selection"]["primaryCalendar"]["id"] == PROJECT_CALENDAR

    item_id = body["item"]["id"]
    listed = api.get("/api/schedule-items", params={"projectId": project.id}, headers=user_headers)
    assert [i["id"] for i in listed.json()] == [item_id]

    deleted = api.delete(f"/api/schedule-items/{item_id}", headers=user_headers)
    assert deleted.status_code == 200
    assert deleted.json()["item"] is None
    assert api.get(f"/api/schedule-items/{item_id}", headers=user_headers).status_code == 404


def test_unknown_project_is_404(api, user_headers):
    response = api.post(
        "/api/schedule-items",
        json={"projectId": 999, "title": "Roof delivery", "startDatetime": "2024-06-04T08:00:00"},
        headers=user_headers,
    )
    assert response.status_code == 404

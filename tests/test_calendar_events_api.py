from .conftest import PROJECT_CALENDAR


def test_create_event_selects_calendar_from_entity_type(api, fake_client, user_headers):
    response = api.post(
        "/api/calendar/events",
        json={"event": {"title": "Steel delivery", "startTime": "2024-06-04T08:00:00", "entityType": "project_milestone"}},
        headers=user_headers,
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "eventId": "evt1"}
    assert fake_client.calls_to("insert_event")[0][1] == PROJECT_CALENDAR


def test_create_event_with_missing_title_returns_invalid_parameters(api, fake_client, user_headers):
    response = api.post(
        "/api/calendar/events",
        json={"calendarId": PROJECT_CALENDAR, "event": {"startTime": "2024-06-04T08:00:00"}},
        headers=user_headers,
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": False,
        "reason": "invalid_parameters",
        "retryable": False,
        "error": "Event title and start time are required for calendar events",
    }
    assert fake_client.calls == []


def test_update_and_delete_event(api, fake_client, user_headers):
    updated = api.patch(
        "/api/calendar/events/evt5",
        json={"calendarId": PROJECT_CALENDAR, "event": {"location": "Gate B"}},
        headers=user_headers,
    )
    assert updated.json()["success"] is True
    assert fake_client.calls_to("patch_event")[0][3] == {"location": "Gate B"}

    deleted = api.delete(
        "/api/calendar/events/evt5", params={"calendarId": PROJECT_CALENDAR}, headers=user_headers
    )
    assert deleted.json() == {"success": True}


def test_event_operations_require_acting_user(api):
    response = api.post("/api/calendar/events", json={"event": {"title": "x"}})
    assert response.status_code == 401


def test_update_and_delete_event_require_calendar_id(api, fake_client, user_headers):
    updated = api.patch(
        "/api/calendar/events/evt5", json={"event": {"location": "Gate B"}}, headers=user_headers
    )
    deleted = api.delete("/api/calendar/events/evt5", headers=user_headers)

    assert updated.status_code == 422
    assert deleted.status_code == 422
    assert fake_client.calls == []

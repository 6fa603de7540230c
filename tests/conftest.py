import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["GOOGLE_CALENDAR_WEBHOOK_TOKEN"] = "test-webhook-token"
os.environ["GOOGLE_CALENDAR_PROJECT"] = "projects@group.calendar.google.com"
os.environ["GOOGLE_CALENDAR_WORK_ORDER"] = "work-orders@group.calendar.google.com"
os.environ["GOOGLE_CALENDAR_ADHOC"] = "primary"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

from datetime import datetime  # noqa: E402
from zoneinfo import ZoneInfo  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.database import Base, SessionLocal, engine, get_db  # noqa: E402
from app.dependencies import get_config, get_event_service_factory, get_service_client_factory  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Project  # noqa: E402
from app.services.calendar_config import CalendarConfig  # noqa: E402
from app.services.calendar_errors import CalendarApiError  # noqa: E402
from app.services.calendar_event_service import CalendarEventService  # noqa: E402

PROJECT_CALENDAR = "projects@group.calendar.google.com"
WORK_ORDER_CALENDAR = "work-orders@group.calendar.google.com"
USER_EMAIL = "pm@builder.test"


def google_echo(body):
    """Google answers with offset-bearing dateTimes resolved in the block's timeZone"""
    echoed = dict(body)
    for key in ("start", "end"):
        block = body.get(key)
        if block and block.get("dateTime") and block.get("timeZone"):
            local = datetime.fromisoformat(block["dateTime"])
            if local.tzinfo is None:
                local = local.replace(tzinfo=ZoneInfo(block["timeZone"]))
            echoed[key] = dict(block, dateTime=local.isoformat())
    return echoed


class FakeCalendarClient:
    """In-memory stand-in for GoogleCalendarClient"""

    def __init__(self):
        self.calls = []
        self.events = {}
        self.failures = {}
        self.counter = 0
        self.updated = "2024-05-01T10:00:00.000Z"

    def fail(self, method, *errors):
        self.failures.setdefault(method, []).extend(errors)

    def calls_to(self, method):
        return [call for call in self.calls if call[0] == method]

    def _record(self, method, *args):
        self.calls.append((method, *args))
        queue = self.failures.get(method)
        if queue:
            raise queue.pop(0)

    async def insert_event(self, calendar_id, body, send_updates="none"):
        self._record("insert_event", calendar_id, body, send_updates)
        self.counter += 1
        event = dict(google_echo(body), id=f"evt{self.counter}", updated=self.updated, status="confirmed")
        self.events[(calendar_id, event["id"])] = event
        return event

    async def get_event(self, calendar_id, event_id):
        self._record("get_event", calendar_id, event_id)
        event = self.events.get((calendar_id, event_id))
        if event is None:
            raise CalendarApiError("Not Found", status_code=404)
        return event

    async def patch_event(self, calendar_id, event_id, body, send_updates="none"):
        self._record("patch_event", calendar_id, event_id, body, send_updates)
        event = self.events.setdefault((calendar_id, event_id), {"id": event_id})
        event.update(google_echo(body))
        return event

    async def delete_event(self, calendar_id, event_id):
        self._record("delete_event", calendar_id, event_id)
        self.events.pop((calendar_id, event_id), None)

    async def watch_events(self, calendar_id, channel_id, address, token=None, ttl_seconds=604800):
        self._record("watch_events", calendar_id, channel_id, address, token)
        expiration = int((datetime.utcnow().timestamp() + ttl_seconds) * 1000)
        return {"id": channel_id, "resourceId": f"res-{channel_id}", "expiration": str(expiration)}

    async def stop_channel(self, channel_id, resource_id):
        self._record("stop_channel", channel_id, resource_id)


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def calendar_config():
    return CalendarConfig(PROJECT=PROJECT_CALENDAR, WORK_ORDER=WORK_ORDER_CALENDAR, ADHOC="primary")


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def project(db):
    project = Project(name="Riverside Tower")
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


@pytest.fixture
def general_project(db):
    project = Project(name="General", is_general=True)
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


@pytest.fixture
def fake_client():
    return FakeCalendarClient()


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def event_service(db, fake_client, sleep_recorder):
    return CalendarEventService(db, USER_EMAIL, client=fake_client, sleep=sleep_recorder)


@pytest.fixture
def api(db, fake_client, sleep_recorder, calendar_config):
    def _get_db():
        yield db

    def _service_factory():
        def _factory(user, connect_if_needed):
            return CalendarEventService(
                db, user.email if user else None, client=fake_client, sleep=sleep_recorder
            )

        return _factory

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_config] = lambda: calendar_config
    app.dependency_overrides[get_service_client_factory] = lambda: (lambda: fake_client)
    app.dependency_overrides[get_event_service_factory] = _service_factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def user_headers():
    return {"X-User-Email": USER_EMAIL, "X-User-Id": "emp-1"}

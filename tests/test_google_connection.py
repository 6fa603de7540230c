from datetime import datetime, timedelta

import httpx
import pytest

from app.models_google_calendar import GoogleCalendarIntegration
from app.services import google_calendar_service
from app.services.google_calendar_service import decrypt_token, exchange_authorization_code

from .conftest import USER_EMAIL


async def test_exchange_authorization_code_returns_tokens_and_email():
    def handler(request: httpx.Request):
        if request.url.path == "/token":
            return httpx.Response(
                200,
                json={"access_token": "at", "refresh_token": "rt", "expires_in": 3600, "scope": "calendar"},
            )
        return httpx.Response(200, json={"email": "pm@gmail.test"})

    tokens = await exchange_authorization_code("code-1", transport=httpx.MockTransport(handler))

    assert tokens["access_token"] == "at"
    assert tokens["refresh_token"] == "rt"
    assert tokens["google_email"] == "pm@gmail.test"
    assert tokens["expires_at"] > datetime.utcnow() + timedelta(minutes=59)


async def test_exchange_without_refresh_token_fails():
    def handler(request: httpx.Request):
        return httpx.Response(200, json={"access_token": "at"})

    with pytest.raises(google_calendar_service.OAuthExchangeError):
        await exchange_authorization_code("code-1", transport=httpx.MockTransport(handler))


def test_callback_stores_encrypted_tokens_and_disconnect_removes(api, db, user_headers, monkeypatch):
    async def fake_exchange(code):
        return {
            "access_token": "at",
            "refresh_token": "rt",
            "expires_at": datetime.utcnow() + timedelta(hours=1),
            "scope": "https://www.googleapis.com/auth/calendar",
            "google_email": "pm@gmail.test",
        }

    revoked = []

    async def fake_revoke(token):
        revoked.append(token)
        return True

    monkeypatch.setattr(google_calendar_service, "exchange_authorization_code", fake_exchange)
    monkeypatch.setattr(google_calendar_service, "revoke_token", fake_revoke)

    response = api.post("/google-calendar/callback", json={"code": "abc"}, headers=user_headers)

    assert response.status_code == 200
    integration = db.query(GoogleCalendarIntegration).filter_by(user_email=USER_EMAIL).one()
    assert integration.access_token != "at"
    assert decrypt_token(integration.access_token) == "at"
    assert integration.needs_refresh() is False

    assert api.post("/google-calendar/disconnect", headers=user_headers).status_code == 200
    assert revoked == ["rt"]
    assert db.query(GoogleCalendarIntegration).count() == 0
    assert api.post("/google-calendar/disconnect", headers=user_headers).status_code == 404

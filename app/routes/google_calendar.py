"""
Google Calendar Connection Routes
A user connects their own Google account once; event operations then act with their token
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import ActingUser, get_acting_user
from ..database import get_db
from ..models_google_calendar import GoogleCalendarIntegration
from ..services import google_calendar_service as google

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/google-calendar", tags=["google-calendar"])


class OAuthCallbackRequest(BaseModel):
    code: str


def _integration_for(db: Session, user: ActingUser):
    return (
        db.query(GoogleCalendarIntegration)
        .filter(GoogleCalendarIntegration.user_email == user.email)
        .first()
    )


@router.get("/status")
async def get_connection_status(
    current_user: ActingUser = Depends(get_acting_user), db: Session = Depends(get_db)
):
    integration = _integration_for(db, current_user)
    if not integration:
        return {"connected": False, "user_email": None, "auto_sync_enabled": None}

    return {
        "connected": True,
        "user_email": integration.google_user_email,
        "auto_sync_enabled": integration.auto_sync_enabled,
    }


@router.get("/connect")
async def start_connection(current_user: ActingUser = Depends(get_acting_user)):
    """OAuth consent URL; the state carries the acting user's email back to the callback"""
    authorization_url = google.build_authorization_url(current_user.email)
    if not authorization_url:
        raise HTTPException(status_code=500, detail="Google Calendar not configured")

    logger.info(f"🔗 Google Calendar connection started for {current_user.email}")
    return {"authorization_url": authorization_url}


@router.post("/callback")
async def complete_connection(
    payload: OAuthCallbackRequest,
    current_user: ActingUser = Depends(get_acting_user),
    db: Session = Depends(get_db),
):
    try:
        tokens = await google.exchange_authorization_code(payload.code)
    except google.OAuthExchangeError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    integration = _integration_for(db, current_user)
    if not integration:
        integration = GoogleCalendarIntegration(user_email=current_user.email)
        db.add(integration)

    integration.access_token = google.encrypt_token(tokens["access_token"])
    integration.refresh_token = google.encrypt_token(tokens["refresh_token"])
    integration.token_expires_at = tokens["expires_at"]
    integration.granted_scopes = tokens["scope"]
    integration.last_refreshed_at = datetime.utcnow()
    integration.google_user_email = tokens["google_email"]
    integration.auto_sync_enabled = True

    try:
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to store Google Calendar connection for {current_user.email}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to connect Google Calendar") from e

    logger.info(f"✅ Google Calendar connected for {current_user.email}")
    return {"success": True, "user_email": tokens["google_email"]}


@router.post("/disconnect")
async def disconnect(current_user: ActingUser = Depends(get_acting_user), db: Session = Depends(get_db)):
    integration = _integration_for(db, current_user)
    if not integration:
        raise HTTPException(status_code=404, detail="Google Calendar not connected")

    # Revoking the refresh token also invalidates its access tokens
    try:
        await google.revoke_token(google.decrypt_token(integration.refresh_token))
    except Exception as e:
        logger.warning(f"⚠️ Could not revoke Google token for {current_user.email}: {str(e)}")

    db.delete(integration)
    db.commit()

    logger.info(f"✅ Google Calendar disconnected for {current_user.email}")
    return {"success": True}

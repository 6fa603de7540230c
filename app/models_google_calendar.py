"""
Per-user Google Calendar connection, used for user-initiated event operations
"""
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base

# Access tokens are refreshed this long before Google expires them
TOKEN_REFRESH_LEEWAY = timedelta(minutes=5)


class GoogleCalendarIntegration(Base):
    __tablename__ = "google_calendar_integrations"

    id = Column(Integer, primary_key=True, index=True)
    user_email = Column(String(255), nullable=False, unique=True, index=True)

    # Fernet-encrypted, see google_calendar_service.encrypt_token
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    token_expires_at = Column(DateTime, nullable=False)
    granted_scopes = Column(Text, nullable=True)
    last_refreshed_at = Column(DateTime, nullable=True)

    google_user_email = Column(String(255), nullable=True)

    # Off means the user paused sync; event operations offer to reconnect
    auto_sync_enabled = Column(Boolean, default=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def needs_refresh(self, now: Optional[datetime] = None) -> bool:
        return self.token_expires_at <= (now or datetime.utcnow()) + TOKEN_REFRESH_LEEWAY

"""
Acting user resolution.

Session management lives in the gateway in front of this service; it forwards
the authenticated user as X-User-Email / X-User-Id headers.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActingUser:
    email: str
    id: Optional[str] = None


async def get_optional_user(
    x_user_email: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> Optional[ActingUser]:
    if not x_user_email or not x_user_email.strip():
        return None
    return ActingUser(email=x_user_email.strip().lower(), id=x_user_id)


async def get_acting_user(
    x_user_email: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> ActingUser:
    user = await get_optional_user(x_user_email, x_user_id)
    if not user:
        logger.warning("🚫 Request without acting user header")
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user

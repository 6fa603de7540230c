"""
Calendar Configuration Resolver
Resolves which Google calendar ids back the logical Projects / Work Orders / ad-hoc calendars
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import httpx

from .. import config as settings

logger = logging.getLogger(__name__)

# Last-known-good shared calendars, used when configuration is unavailable
FALLBACK_PROJECT_CALENDAR_ID = (
    "c_9922ed38fd075f4e7f24561de50df694acadd8df4f8a73026ca4448aa85e55c5@group.calendar.google.com"
)
FALLBACK_WORK_ORDER_CALENDAR_ID = (
    "c_ad5019e5b89334560b5bff86d2f7f7dfa0ae4dda8c0684c40d7737cf29b46be3@group.calendar.google.com"
)
PERSONAL_CALENDAR_ID = "primary"

PROJECT_CALENDAR_NAME = "Projects Calendar"
WORK_ORDER_CALENDAR_NAME = "Work Orders Calendar"
PERSONAL_CALENDAR_NAME = "Personal Calendar"

CONFIG_KEYS = {
    "PROJECT": "GOOGLE_CALENDAR_PROJECT",
    "WORK_ORDER": "GOOGLE_CALENDAR_WORK_ORDER",
    "ADHOC": "GOOGLE_CALENDAR_ADHOC",
}

FALLBACKS = {
    "PROJECT": FALLBACK_PROJECT_CALENDAR_ID,
    "WORK_ORDER": FALLBACK_WORK_ORDER_CALENDAR_ID,
    "ADHOC": PERSONAL_CALENDAR_ID,
}

# A source returns the raw GOOGLE_CALENDAR_* mapping, or raises when unavailable
ConfigSource = Callable[[], Dict[str, Optional[str]]]


@dataclass(frozen=True)
class CalendarConfig:
    PROJECT: str
    WORK_ORDER: str
    ADHOC: str
    degraded: bool = False


def environment_config_source() -> Dict[str, Optional[str]]:
    """Server context: read the calendar ids straight from the process configuration"""
    return {
        "GOOGLE_CALENDAR_PROJECT": settings.GOOGLE_CALENDAR_PROJECT,
        "GOOGLE_CALENDAR_WORK_ORDER": settings.GOOGLE_CALENDAR_WORK_ORDER,
        "GOOGLE_CALENDAR_ADHOC": settings.GOOGLE_CALENDAR_ADHOC,
    }


def http_config_source(url: str, timeout: float = 5.0) -> ConfigSource:
    """Client context: fetch the mapping from the backend configuration endpoint"""

    def _fetch() -> Dict[str, Optional[str]]:
        response = httpx.get(url, timeout=timeout)
        response.raise_for_status()
        return response.json()

    return _fetch


def default_config_source() -> ConfigSource:
    if settings.CALENDAR_CONFIG_URL:
        return http_config_source(settings.CALENDAR_CONFIG_URL)
    return environment_config_source


def resolve_calendar_config(source: Optional[ConfigSource] = None) -> CalendarConfig:
    """
    Resolve the PROJECT / WORK_ORDER / ADHOC calendar ids.

    Never raises: any unavailable or unset value is replaced from the fallback
    table and a warning is logged so misconfiguration stays visible.
    """
    source = source or default_config_source()

    try:
        raw = source() or {}
    except Exception as e:
        logger.warning(f"⚠️ Calendar configuration unavailable, using fallback calendars: {e}")
        return CalendarConfig(degraded=True, **FALLBACKS)

    resolved = {}
    degraded = False
    for logical, key in CONFIG_KEYS.items():
        value = raw.get(key)
        if value:
            resolved[logical] = value
            continue
        resolved[logical] = FALLBACKS[logical]
        # ADHOC defaults to the user's own calendar; only shared calendars count as degraded
        if logical != "ADHOC":
            degraded = True
            logger.warning(
                f"⚠️ {key} not configured, falling back to {FALLBACKS[logical]}"
            )

    return CalendarConfig(degraded=degraded, **resolved)


_cached_config: Optional[CalendarConfig] = None


def get_calendar_config() -> CalendarConfig:
    """Resolve once per process"""
    global _cached_config
    if _cached_config is None:
        _cached_config = resolve_calendar_config()
    return _cached_config


def reset_calendar_config_cache() -> None:
    global _cached_config
    _cached_config = None


def validate_configuration(calendar_config: CalendarConfig) -> Tuple[bool, List[str]]:
    errors = []
    if not calendar_config.PROJECT or calendar_config.PROJECT == PERSONAL_CALENDAR_ID:
        errors.append("PROJECT calendar configuration is missing or using fallback")
    if not calendar_config.WORK_ORDER or calendar_config.WORK_ORDER == PERSONAL_CALENDAR_ID:
        errors.append("WORK_ORDER calendar configuration is missing or using fallback")
    if calendar_config.degraded and not errors:
        errors.append("Calendar configuration unavailable, using last-known-good calendars")
    return len(errors) == 0, errors


def get_calendar_info(calendar_id: str, calendar_config: CalendarConfig) -> Dict[str, str]:
    """Display name and kind for a calendar id"""
    if calendar_id == calendar_config.PROJECT:
        return {"name": PROJECT_CALENDAR_NAME, "type": "group"}
    if calendar_id == calendar_config.WORK_ORDER:
        return {"name": WORK_ORDER_CALENDAR_NAME, "type": "group"}
    if calendar_id in (calendar_config.ADHOC, PERSONAL_CALENDAR_ID):
        return {"name": PERSONAL_CALENDAR_NAME, "type": "personal"}
    return {"name": "Custom Calendar", "type": "group"}

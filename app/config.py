import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./scheduling.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Frontend base URL for redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Public base URL of this API (used as the push notification address)
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")

# Google Calendar OAuth Configuration
# Note: GOOGLE_REDIRECT_URI should point to FRONTEND (not backend API)
# OAuth flow: Google → Frontend → Frontend sends code to Backend API
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI", f"{FRONTEND_URL}/auth/google-calendar")

# Service account used for webhook reconciliation and channel registration
GOOGLE_APPLICATION_CREDENTIALS = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
GOOGLE_SCOPES = os.getenv("GOOGLE_SCOPES", "https://www.googleapis.com/auth/calendar").split()

# Shared calendars (logical -> physical calendar ids)
GOOGLE_CALENDAR_PROJECT = os.getenv("GOOGLE_CALENDAR_PROJECT")
GOOGLE_CALENDAR_WORK_ORDER = os.getenv("GOOGLE_CALENDAR_WORK_ORDER")
GOOGLE_CALENDAR_ADHOC = os.getenv("GOOGLE_CALENDAR_ADHOC")

# Where the resolver fetches the mapping when it runs outside the server process
CALENDAR_CONFIG_URL = os.getenv("CALENDAR_CONFIG_URL")

# Shared secret sent back by Google as X-Goog-Channel-Token on every push notification
GOOGLE_CALENDAR_WEBHOOK_TOKEN = os.getenv("GOOGLE_CALENDAR_WEBHOOK_TOKEN")
GOOGLE_CALENDAR_WEBHOOK_URL = os.getenv(
    "GOOGLE_CALENDAR_WEBHOOK_URL", f"{API_BASE_URL}/webhooks/google-calendar"
)

CALENDAR_TIMEZONE = os.getenv("CALENDAR_TIMEZONE", "America/New_York")

# Retry policy for remote calendar calls
CALENDAR_MAX_RETRIES = int(os.getenv("CALENDAR_MAX_RETRIES", "2"))
CALENDAR_RETRY_BASE_DELAY = float(os.getenv("CALENDAR_RETRY_BASE_DELAY", "1.0"))

# Push channels are renewed when they expire within this many hours
CHANNEL_RENEWAL_THRESHOLD_HOURS = int(os.getenv("CHANNEL_RENEWAL_THRESHOLD_HOURS", "48"))

"""
Calendar error classification and retry policy

Every failure of a remote calendar call is classified exactly once, here.
Only network errors and rate limits are retried.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from .. import config as settings
from ..schemas import FailureReason

logger = logging.getLogger(__name__)

NETWORK_MESSAGE = "Network connection issue. Please check your internet connection."
RATE_LIMIT_MESSAGE = "Too many requests to Google Calendar. Please try again later."
INVALID_PARAMETERS_MESSAGE = "Invalid data for calendar event."
AUTHENTICATION_MESSAGE = "Authentication error. Please reconnect your Google account."
GENERIC_MESSAGE = "Error syncing with Google Calendar"

RETRYABLE_REASONS = {FailureReason.NETWORK_ERROR, FailureReason.RATE_LIMIT}


class CalendarApiError(Exception):
    """Raised by the Google Calendar client for any failed provider call"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class ErrorClassification:
    reason: FailureReason
    message: str
    retryable: bool


class CalendarOperationError(Exception):
    """Terminal failure of a remote calendar call, carrying its classification"""

    def __init__(self, original: BaseException, classification: ErrorClassification, attempts: int):
        super().__init__(classification.message)
        self.original = original
        self.classification = classification
        self.attempts = attempts


def _status_code(error: BaseException) -> Optional[int]:
    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if status is None and isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
    if status is None:
        code = getattr(error, "code", None)
        status = code if isinstance(code, int) else None
    return status


def classify_error(error: Optional[BaseException]) -> ErrorClassification:
    if error is None:
        return ErrorClassification(FailureReason.API_ERROR, "Unknown error occurred", False)

    if isinstance(error, CalendarOperationError):
        return error.classification

    status = _status_code(error)
    message = str(error) or ""
    lowered = message.lower()

    if isinstance(error, (httpx.TransportError, asyncio.TimeoutError)) or any(
        word in lowered for word in ("network", "internet", "timeout", "timed out")
    ):
        return ErrorClassification(FailureReason.NETWORK_ERROR, NETWORK_MESSAGE, True)

    if status == 429 or "quota" in lowered or "rate limit" in lowered:
        return ErrorClassification(FailureReason.RATE_LIMIT, RATE_LIMIT_MESSAGE, True)

    # Status codes win over keywords: Google answers 401 with "Invalid Credentials"
    if status in (401, 403):
        return ErrorClassification(
            FailureReason.AUTHENTICATION_REQUIRED, AUTHENTICATION_MESSAGE, False
        )

    if status == 400:
        return ErrorClassification(
            FailureReason.INVALID_PARAMETERS, INVALID_PARAMETERS_MESSAGE, False
        )

    if status is None:
        if "invalid" in lowered or "parameter" in lowered:
            return ErrorClassification(
                FailureReason.INVALID_PARAMETERS, INVALID_PARAMETERS_MESSAGE, False
            )
        if any(word in lowered for word in ("auth", "login", "permission")):
            return ErrorClassification(
                FailureReason.AUTHENTICATION_REQUIRED, AUTHENTICATION_MESSAGE, False
            )

    return ErrorClassification(FailureReason.API_ERROR, message or GENERIC_MESSAGE, False)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[Any]],
    max_retries: Optional[int] = None,
    base_delay: Optional[float] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """
    Run ``operation`` and retry retryable failures with exponential backoff.

    Makes at most ``max_retries + 1`` attempts, waiting base_delay * 2**n
    seconds before retry n. Raises CalendarOperationError on terminal failure.
    """
    max_retries = settings.CALENDAR_MAX_RETRIES if max_retries is None else max_retries
    base_delay = settings.CALENDAR_RETRY_BASE_DELAY if base_delay is None else base_delay

    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            classification = classify_error(e)

            if not classification.retryable or attempt >= max_retries:
                logger.error(
                    f"❌ Calendar call failed ({classification.reason.value}) "
                    f"after {attempt + 1} attempt(s): {e}"
                )
                raise CalendarOperationError(e, classification, attempt + 1) from e

            delay = base_delay * (2**attempt)
            attempt += 1
            logger.warning(
                f"⚠️ Calendar call failed ({classification.reason.value}), "
                f"retry {attempt}/{max_retries} in {delay:.1f}s"
            )
            await sleep(delay)

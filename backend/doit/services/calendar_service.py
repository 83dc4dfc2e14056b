"""Calendar service: Google Calendar proxy with token refresh and error mapping."""

from datetime import date, datetime

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.config import settings
from doit.core.dates import local_day_bounds
from doit.core.logger import get_logger
from doit.integrations.google_calendar import (
    GoogleCalendarClient,
    build_event_body,
    parse_google_event,
)
from doit.services.google_auth_service import GoogleAuthError, get_valid_access_token

logger = get_logger(__name__)

AUTH_CHECK_TIMEOUT = 5.0
RANGE_MAX_RESULTS = 250


class CalendarServiceError(Exception):
    def __init__(self, message: str, status_code: int = 503, reason: str = "api_error"):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


def _from_http_error(e: httpx.HTTPError) -> CalendarServiceError:
    if isinstance(e, httpx.TimeoutException):
        return CalendarServiceError("Google Calendar timed out", 503, "api_timeout")
    if isinstance(e, httpx.HTTPStatusError):
        code = e.response.status_code
        if code == 401:
            return CalendarServiceError("Google token is invalid or expired", 401, "token_invalid")
        if code == 403:
            return CalendarServiceError("Insufficient Google Calendar permissions", 403, "insufficient_scope")
        if code in (404, 410):
            return CalendarServiceError("Event not found", 404, "not_found")
    return CalendarServiceError(f"Google Calendar API error: {e}", 503, "api_error")


async def get_calendar_client(
    db: AsyncSession, user_email: str, timeout: float | None = 15.0
) -> GoogleCalendarClient:
    try:
        access_token = await get_valid_access_token(db, user_email)
    except GoogleAuthError as e:
        raise CalendarServiceError(str(e), 401, e.reason)
    return GoogleCalendarClient(access_token, timeout=timeout)


async def fetch_events(
    client: GoogleCalendarClient, start: datetime, end: datetime
) -> list[dict]:
    try:
        result = await client.list_events(
            time_min=start.isoformat(),
            time_max=end.isoformat(),
            max_results=RANGE_MAX_RESULTS,
        )
    except httpx.HTTPError as e:
        raise _from_http_error(e)
    return [parse_google_event(raw) for raw in result.get("items", [])]


async def get_events_for_range(
    db: AsyncSession, user_email: str, start: datetime, end: datetime
) -> list[dict]:
    client = await get_calendar_client(db, user_email)
    return await fetch_events(client, start, end)


async def get_events_for_day(db: AsyncSession, user_email: str, day: date) -> dict:
    start, end = local_day_bounds(day)
    events = await get_events_for_range(db, user_email, start, end)
    return {"date": day.isoformat(), "events": events, "total": len(events)}


async def create_event(
    db: AsyncSession,
    user_email: str,
    summary: str,
    start: str,
    end: str,
    description: str = "",
    location: str = "",
    tz: str | None = None,
) -> dict:
    client = await get_calendar_client(db, user_email)
    body = build_event_body(
        summary=summary,
        start=start,
        end=end,
        description=description,
        location=location,
        timezone=tz or settings.timezone,
    )
    try:
        raw = await client.create_event(body)
    except httpx.HTTPError as e:
        raise _from_http_error(e)
    return parse_google_event(raw)


async def delete_event(db: AsyncSession, user_email: str, event_id: str) -> dict:
    client = await get_calendar_client(db, user_email)
    try:
        await client.delete_event(event_id)
    except httpx.HTTPError as e:
        raise _from_http_error(e)
    return {"status": "deleted", "event_id": event_id}


async def probe_client(client: GoogleCalendarClient) -> dict:
    try:
        await client.get_calendar("primary")
    except httpx.HTTPError as e:
        err = _from_http_error(e)
        return {"authenticated": False, "reason": err.reason}
    return {"authenticated": True, "reason": None}


async def check_auth(db: AsyncSession, user_email: str) -> dict:
    """Probe ``calendars/primary`` to tell whether calendar access works and why not."""
    try:
        client = await get_calendar_client(db, user_email, timeout=AUTH_CHECK_TIMEOUT)
    except CalendarServiceError as e:
        return {"authenticated": False, "reason": e.reason}
    result = await probe_client(client)
    if not result["authenticated"]:
        logger.info(f"Calendar auth check failed for {user_email}: {result['reason']}")
    return result

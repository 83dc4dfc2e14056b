"""Calendar API endpoints: Google Calendar proxy and auth probe."""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.database import get_db
from doit.core.dates import now_utc, parse_datetime, to_local
from doit.core.security import get_current_user
from doit.models.user import User
from doit.services.calendar_service import (
    get_events_for_day,
    get_events_for_range,
    create_event,
    delete_event,
    check_auth,
    CalendarServiceError,
)

router = APIRouter(prefix="/api/calendar", tags=["calendar"])


# --- Schemas ---

class CreateEventRequest(BaseModel):
    summary: str = ""
    start: str = ""  # ISO datetime
    end: str = ""
    description: str = ""
    location: str = ""
    timezone: str | None = None


def _http_error(e: CalendarServiceError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail={"error": str(e), "reason": e.reason})


# --- Routes ---

@router.get("/events")
async def api_get_events(
    date_param: str | None = Query(None, alias="date", description="YYYY-MM-DD, defaults to today"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Events of one local day."""
    if date_param:
        try:
            day = date.fromisoformat(date_param)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid date. Use YYYY-MM-DD")
    else:
        day = to_local(now_utc()).date()

    try:
        return await get_events_for_day(db, user.email, day)
    except CalendarServiceError as e:
        raise _http_error(e)


@router.get("/events-range")
async def api_get_events_range(
    start: str = Query(..., description="ISO start date or datetime"),
    end: str = Query(..., description="ISO end date or datetime"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    start_dt = parse_datetime(start)
    end_dt = parse_datetime(end)
    if not start_dt or not end_dt:
        raise HTTPException(status_code=400, detail="Invalid start or end")
    if end_dt <= start_dt:
        raise HTTPException(status_code=400, detail="end must be after start")

    try:
        events = await get_events_for_range(db, user.email, start_dt, end_dt)
    except CalendarServiceError as e:
        raise _http_error(e)
    return {"events": events, "total": len(events)}


@router.post("/create-event")
async def api_create_event(
    body: CreateEventRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not body.summary or not body.start or not body.end:
        raise HTTPException(status_code=400, detail="summary, start and end are required")

    try:
        event = await create_event(
            db,
            user.email,
            summary=body.summary,
            start=body.start,
            end=body.end,
            description=body.description,
            location=body.location,
            tz=body.timezone,
        )
    except CalendarServiceError as e:
        raise _http_error(e)
    return {"success": True, "event": event}


@router.delete("/delete-event")
async def api_delete_event(
    event_id: str | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not event_id:
        raise HTTPException(status_code=400, detail="event_id is required")
    try:
        return await delete_event(db, user.email, event_id)
    except CalendarServiceError as e:
        raise _http_error(e)


@router.get("/auth-check")
async def api_auth_check(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Whether calendar access works, and if not, why."""
    return await check_auth(db, user.email)

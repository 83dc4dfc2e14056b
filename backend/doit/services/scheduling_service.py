"""Automatic calendar scheduling of work blocks for a todo.

A todo's estimate is split into blocks of at most ``max_block_size`` hours.
Each block is placed greedily into the first free gap of a working day
(Monday to Thursday, 08:45 to 17:00, minus the 12:00 to 13:15 lunch break and
existing events), walking forward at most 30 days and never past the deadline.
Consecutive blocks are placed on different days.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.config import settings
from doit.core.dates import ensure_utc, local_tz, now_utc, parse_datetime
from doit.core.logger import get_logger
from doit.integrations.google_calendar import GoogleCalendarClient, build_event_body
from doit.services.calendar_service import (
    CalendarServiceError,
    fetch_events,
    get_calendar_client,
    probe_client,
)
from doit.services.todo_service import get_todo, mark_calendar_linked

logger = get_logger(__name__)

DEFAULT_WORKING_HOURS = (8.75, 17.0)  # 08:45 - 17:00
LUNCH_BREAK = (12.0, 13.25)  # 12:00 - 13:15
DEFAULT_MAX_BLOCK_SIZE = 4.0
DEFAULT_MIN_BLOCK_SIZE = 0.5
DEFAULT_EVENT_WINDOW_DAYS = 14
MAX_SEARCH_DAYS = 30
NON_WORKING_WEEKDAYS = {4, 5, 6}  # Friday, Saturday, Sunday
PRIORITY_PREFIX = {"high": "🔴 ", "medium": "🟡 ", "low": "🟢 "}
WORK_BLOCK_COLOR_ID = "4"
WORK_BLOCK_PROPERTIES = {"source": "doit", "type": "work-block"}

Interval = tuple[datetime, datetime]
EventFetcher = Callable[[datetime, datetime], Awaitable[list[dict]]]


class SchedulingError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class CalendarAuthError(CalendarServiceError):
    def __init__(self, reason: str):
        if reason == "insufficient_scope":
            super().__init__(
                "Insufficient Google Calendar permissions. Please sign in again.",
                403,
                reason,
            )
        else:
            super().__init__("Not signed in to Google Calendar", 401, reason)


@dataclass
class TimeBlock:
    start: datetime
    end: datetime
    duration: float
    title: str
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "duration": self.duration,
            "title": self.title,
            "description": self.description,
        }


@dataclass
class SchedulingOptions:
    todo_title: str
    estimated_hours: float
    due_date: datetime | None = None
    priority: str = "medium"
    working_hours: tuple[float, float] = DEFAULT_WORKING_HOURS
    max_block_size: float = DEFAULT_MAX_BLOCK_SIZE
    min_block_size: float = DEFAULT_MIN_BLOCK_SIZE


# ---------------------------------------------------------------------------
# Algorithm
# ---------------------------------------------------------------------------

def split_into_blocks(total_hours: float, max_block_size: float, min_block_size: float) -> list[float]:
    """Split an estimate into blocks; an undersized remainder joins the previous block."""
    blocks: list[float] = []
    remaining = total_hours
    while remaining > 0:
        if remaining <= max_block_size:
            if remaining >= min_block_size or not blocks:
                blocks.append(remaining)
            else:
                blocks[-1] += remaining
            break
        blocks.append(max_block_size)
        remaining -= max_block_size
    return blocks


def determine_planning_start(due_date: datetime | None, blocks_count: int, now: datetime) -> datetime:
    if due_date:
        # Assume at least one day per block, but never plan in the past
        start = due_date - timedelta(days=max(1, blocks_count))
        return now if start < now else start
    return now + timedelta(days=1)


def _at_hour(day: date, hour: float) -> datetime:
    whole = int(hour)
    minutes = round((hour - whole) * 60)
    return datetime(day.year, day.month, day.day, whole, minutes, tzinfo=local_tz())


def event_intervals(events: list[dict]) -> list[Interval]:
    """(start, end) pairs of calendar events; events without usable times are ignored."""
    intervals = []
    for event in events:
        start = parse_datetime(event.get("start"))
        end = parse_datetime(event.get("end"))
        if start and end:
            intervals.append((start, end))
    return intervals


def find_slot_in_day(
    day: date,
    duration: float,
    intervals: list[Interval],
    working_hours: tuple[float, float] = DEFAULT_WORKING_HOURS,
    not_before: datetime | None = None,
) -> Interval | None:
    tz = local_tz()
    work_start = _at_hour(day, working_hours[0])
    work_end = _at_hour(day, working_hours[1])
    lunch = (_at_hour(day, LUNCH_BREAK[0]), _at_hour(day, LUNCH_BREAK[1]))

    day_events = [iv for iv in intervals if iv[0].astimezone(tz).date() == day]
    day_events.append(lunch)
    day_events.sort(key=lambda iv: iv[0])

    length = timedelta(hours=duration)
    search_start = work_start
    if not_before and not_before > search_start:
        search_start = not_before.astimezone(tz)

    for event_start, event_end in day_events:
        available = (event_start - search_start).total_seconds() / 3600
        if available >= duration:
            slot_end = search_start + length
            if slot_end < event_start:
                return search_start, slot_end
        search_start = max(search_start, event_end.astimezone(tz))

    remaining = (work_end - search_start).total_seconds() / 3600
    if remaining >= duration:
        slot_end = search_start + length
        if slot_end <= work_end:
            return search_start, slot_end
    return None


def find_available_time_slot(
    search_from: datetime,
    duration: float,
    intervals: list[Interval],
    working_hours: tuple[float, float] = DEFAULT_WORKING_HOURS,
    deadline: datetime | None = None,
    not_before: datetime | None = None,
) -> Interval | None:
    current = search_from.astimezone(local_tz())
    for _ in range(MAX_SEARCH_DAYS):
        if current.weekday() in NON_WORKING_WEEKDAYS:
            current += timedelta(days=1)
            continue

        if deadline and current > deadline:
            return None

        slot = find_slot_in_day(current.date(), duration, intervals, working_hours, not_before)
        if slot:
            return slot
        current += timedelta(days=1)
    return None


def schedule_blocks(
    blocks: list[float],
    start: datetime,
    due_date: datetime | None,
    intervals: list[Interval],
    working_hours: tuple[float, float],
    todo_title: str,
    priority: str,
    now: datetime | None = None,
) -> list[TimeBlock]:
    scheduled: list[TimeBlock] = []
    current = start
    prefix = PRIORITY_PREFIX.get(priority, PRIORITY_PREFIX["medium"])

    for i, duration in enumerate(blocks):
        part = f" (Part {i + 1}/{len(blocks)})" if len(blocks) > 1 else ""
        slot = find_available_time_slot(
            current, duration, intervals, working_hours, due_date, not_before=now
        )
        if not slot:
            logger.warning(f"No free time slot for block {i + 1} of '{todo_title}'")
            continue

        scheduled.append(TimeBlock(
            start=slot[0],
            end=slot[1],
            duration=duration,
            title=f"{prefix}{todo_title}{part}",
            description=(
                f"Work time for: {todo_title}\n"
                f"Estimated duration: {duration:g}h\n"
                f"Priority: {priority}"
            ),
        ))
        # Next block goes to a later day
        current = slot[1] + timedelta(days=1)

    return scheduled


async def schedule_task(
    options: SchedulingOptions,
    fetch: EventFetcher,
    now: datetime | None = None,
) -> list[TimeBlock]:
    """Plan work blocks for a task around the events returned by ``fetch``."""
    now = ensure_utc(now) if now else now_utc()
    due_date = ensure_utc(options.due_date)

    blocks = split_into_blocks(options.estimated_hours, options.max_block_size, options.min_block_size)
    if not blocks:
        return []

    start = determine_planning_start(due_date, len(blocks), now)
    window_end = due_date if due_date and due_date > start else start + timedelta(days=DEFAULT_EVENT_WINDOW_DAYS)

    try:
        events = await fetch(start, window_end)
    except (CalendarServiceError, httpx.HTTPError) as e:
        logger.warning(f"Could not load existing events, scheduling without them: {e}")
        events = []

    return schedule_blocks(
        blocks,
        start,
        due_date,
        event_intervals(events),
        options.working_hours,
        options.todo_title,
        options.priority,
        now=now,
    )


async def create_calendar_events(blocks: list[TimeBlock], client: GoogleCalendarClient) -> bool:
    """Create one calendar event per block. Partial success counts as success."""
    if not blocks:
        logger.warning("No time blocks to create")
        return True

    auth = await probe_client(client)
    if not auth["authenticated"]:
        raise CalendarAuthError(auth["reason"])

    created = 0
    for block in blocks:
        body = build_event_body(
            summary=block.title,
            start=block.start.isoformat(),
            end=block.end.isoformat(),
            description=block.description,
            timezone=settings.timezone,
            color_id=WORK_BLOCK_COLOR_ID,
            private_properties=WORK_BLOCK_PROPERTIES,
        )
        try:
            await client.create_event(body)
            created += 1
        except httpx.HTTPError as e:
            logger.warning(f"Failed to create calendar event '{block.title}': {e}")

    if created == len(blocks):
        logger.info(f"Created all {created} calendar events")
    elif created:
        logger.info(f"Partial success: {created}/{len(blocks)} calendar events created")
    else:
        logger.error("No calendar events could be created")
    return created > 0


async def schedule_todo(db: AsyncSession, user_email: str, todo_id: str) -> dict:
    """Plan and book work blocks for a todo, marking it calendar-linked on success."""
    todo = await get_todo(db, user_email, todo_id)
    estimated = todo.get("estimated_hours")
    if not estimated or estimated <= 0:
        raise SchedulingError("Todo has no time estimate to schedule")

    client = await get_calendar_client(db, user_email)
    options = SchedulingOptions(
        todo_title=todo["title"],
        estimated_hours=float(estimated),
        due_date=parse_datetime(todo.get("due_date")),
        priority=todo.get("priority") or "medium",
    )
    blocks = await schedule_task(options, lambda start, end: fetch_events(client, start, end))
    if not blocks:
        return {
            "scheduled": False,
            "blocks": [],
            "todo": todo,
            "message": "No available time slots found",
        }

    scheduled = await create_calendar_events(blocks, client)
    if scheduled:
        todo = await mark_calendar_linked(db, user_email, todo_id)

    return {
        "scheduled": scheduled,
        "blocks": [b.to_dict() for b in blocks],
        "todo": todo,
    }

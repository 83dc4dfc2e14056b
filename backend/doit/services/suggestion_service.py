"""Smart suggestions: preparation and follow-up todos derived from calendar events."""

from dataclasses import dataclass
from datetime import datetime, timedelta

import httpx
from openai import OpenAIError
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.dates import local_day_bounds, now_utc, parse_datetime, to_local
from doit.core.logger import get_logger
from doit.integrations import openai_client
from doit.services.calendar_service import CalendarServiceError, get_events_for_range
from doit.services.todo_service import create_todo

logger = get_logger(__name__)

MAX_SUGGESTIONS = 3
MIN_EVENT_DURATION = timedelta(minutes=15)
PRIORITIES = ("low", "medium", "high")
SUGGESTION_TAGS = ["smart-suggestion", "meeting-followup"]

IGNORE_PATTERNS = (
    "lunch", "mittagspause", "pause", "break",
    "commute", "fahrt", "travel", "reise",
    "blocked", "gesperrt", "busy", "beschäftigt",
    "ooo", "out of office", "urlaub", "vacation",
    "fokuszeit", "focus time", "deep work",
)

FALLBACK_SUGGESTIONS = {
    "suggestions": [
        "Summarise and share the meeting notes",
        "Define next steps and owners",
        "Schedule a follow-up meeting",
    ],
    "reasoning": "Standard follow-ups for a meeting",
    "priority": "medium",
    "estimated_hours": 1.0,
}


class SuggestionServiceError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class SuggestionWindow:
    lookback_days: int = 0
    include_today: bool = True
    include_future: bool = True
    future_days: int = 4

    def bounds(self, now: datetime) -> tuple[datetime, datetime]:
        today = to_local(now).date()
        start, _ = local_day_bounds(today - timedelta(days=self.lookback_days))
        if self.include_future and self.future_days > 0:
            _, end = local_day_bounds(today + timedelta(days=self.future_days))
        elif self.include_today:
            _, end = local_day_bounds(today)
        else:
            _, end = local_day_bounds(today - timedelta(days=1))
        return start, end


def is_relevant_event(event: dict) -> bool:
    """Titled events of at least 15 minutes that are not breaks, travel or blockers."""
    title = (event.get("title") or "").lower()
    if not title:
        return False
    if any(pattern in title for pattern in IGNORE_PATTERNS):
        return False

    start = parse_datetime(event.get("start"))
    end = parse_datetime(event.get("end"))
    if not start or not end:
        return False
    return end - start >= MIN_EVENT_DURATION


def validate_ai_suggestions(result: dict | None) -> dict | None:
    if not result or not isinstance(result.get("suggestions"), list):
        return None

    suggestions = [str(s).strip() for s in result["suggestions"] if str(s).strip()]
    if not suggestions:
        return None

    priority = result.get("priority")
    estimate = result.get("estimatedHours")
    if isinstance(estimate, bool) or not isinstance(estimate, (int, float)):
        estimate = None

    return {
        "suggestions": suggestions[:MAX_SUGGESTIONS],
        "reasoning": result.get("reasoning") or "AI-generated suggestions",
        "priority": priority if priority in PRIORITIES else "medium",
        "estimated_hours": estimate,
    }


async def suggestions_for_event(event: dict, now: datetime | None = None) -> dict:
    now = now or now_utc()
    start = parse_datetime(event.get("start")) or now

    proposal = None
    if openai_client.is_available():
        try:
            proposal = validate_ai_suggestions(
                await openai_client.suggest_todos_for_event(event, is_past=start <= now)
            )
        except (OpenAIError, httpx.HTTPError) as e:
            logger.warning(f"AI suggestions failed for '{event.get('title')}': {e}")
        if proposal is None:
            logger.info(f"Using fallback suggestions for '{event.get('title')}'")
    if proposal is None:
        proposal = dict(FALLBACK_SUGGESTIONS, suggestions=list(FALLBACK_SUGGESTIONS["suggestions"]))

    event_id = event.get("id") or ""
    return {
        "id": f"suggestion_{event_id}_{int(now.timestamp() * 1000)}",
        "event_id": event_id,
        "event_title": event.get("title") or "Untitled event",
        "event_date": start.isoformat(),
        **proposal,
    }


async def suggestions_from_events(events: list[dict], now: datetime | None = None) -> list[dict]:
    relevant = [e for e in events if is_relevant_event(e)]
    logger.info(f"{len(relevant)} of {len(events)} events are relevant for suggestions")

    suggestions = []
    for event in relevant:
        suggestions.append(await suggestions_for_event(event, now))
    return suggestions


async def generate_suggestions(
    db: AsyncSession,
    user_email: str,
    window: SuggestionWindow | None = None,
    now: datetime | None = None,
) -> list[dict]:
    """Load the events in the window and propose todos for each relevant one.

    Raises SuggestionServiceError when the calendar cannot be read.
    """
    window = window or SuggestionWindow()
    now = now or now_utc()
    start, end = window.bounds(now)
    try:
        events = await get_events_for_range(db, user_email, start, end)
    except CalendarServiceError as e:
        raise SuggestionServiceError(
            f"Could not load calendar events ({e.reason})", status_code=e.status_code
        ) from e
    return await suggestions_from_events(events, now)


async def create_todo_from_suggestion(
    db: AsyncSession,
    user_email: str,
    suggestion_id: str,
    event_title: str,
    title: str,
    description: str | None = None,
    priority: str = "medium",
    estimated_hours: float | None = None,
    reasoning: str | None = None,
) -> dict:
    lines = [
        description or "",
        "",
        "Smart suggestion details:",
        f'- Based on event: "{event_title}"',
        f"- Suggestion ID: {suggestion_id}",
    ]
    if reasoning:
        lines.append(f"- Reasoning: {reasoning}")

    todo = await create_todo(
        db,
        user_email,
        title=title,
        description="\n".join(lines),
        priority=priority,
        estimated_hours=estimated_hours,
        tags=SUGGESTION_TAGS,
    )
    logger.info(f"Created todo {todo['id']} from suggestion {suggestion_id}")
    return todo

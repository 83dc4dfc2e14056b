"""Weekly workload analysis: capacity vs. estimated effort, with an LLM or rules."""

from datetime import datetime, timedelta

import httpx
from openai import OpenAIError
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.dates import ensure_utc, local_week_bounds, now_utc, parse_datetime, to_local
from doit.core.logger import get_logger
from doit.integrations import openai_client
from doit.services.calendar_service import CalendarServiceError, get_events_for_range
from doit.services.scheduling_service import DEFAULT_WORKING_HOURS, LUNCH_BREAK
from doit.services.todo_service import list_todos

logger = get_logger(__name__)

WORKING_WEEKDAYS = {0, 1, 2, 3}  # Monday to Thursday
DEFAULT_TODO_ESTIMATE = 2.0
URGENT_WITHIN_DAYS = 2
STATUSES = ("optimal", "busy", "overloaded")


def hours_per_working_day() -> float:
    morning = LUNCH_BREAK[0] - DEFAULT_WORKING_HOURS[0]
    afternoon = DEFAULT_WORKING_HOURS[1] - LUNCH_BREAK[1]
    return morning + afternoon


def available_working_hours(events: list[dict]) -> float:
    """Weekly capacity minus the duration of timed events on working days."""
    total = hours_per_working_day() * len(WORKING_WEEKDAYS)
    busy = 0.0
    for event in events:
        if event.get("is_all_day"):
            continue
        start = parse_datetime(event.get("start"))
        end = parse_datetime(event.get("end"))
        if not start or not end or end <= start:
            continue
        if to_local(start).weekday() in WORKING_WEEKDAYS:
            busy += (end - start).total_seconds() / 3600
    return round(max(0.0, total - busy), 2)


def week_todos(todos: list[dict], week_start: datetime, week_end: datetime) -> list[dict]:
    """Open todos without a due date or due within the week."""
    selected = []
    for todo in todos:
        if todo.get("completed"):
            continue
        due = parse_datetime(todo.get("due_date"))
        if due is None or week_start <= due < week_end:
            selected.append(todo)
    return selected


def estimated_hours(todos: list[dict]) -> float:
    total = 0.0
    for todo in todos:
        estimate = todo.get("estimated_hours")
        total += float(estimate) if isinstance(estimate, (int, float)) and estimate > 0 else DEFAULT_TODO_ESTIMATE
    return total


def rule_based_analysis(
    todos: list[dict], available_hours: float, total_hours: float, now: datetime | None = None
) -> dict:
    now = ensure_utc(now) if now else now_utc()
    if available_hours > 0:
        percentage = round(total_hours / available_hours * 100)
    else:
        # No capacity left: any open work is an overload
        percentage = 0 if total_hours == 0 else 999

    recommendations: list[str] = []
    priorities: list[str] = []
    risks: list[str] = []

    if percentage <= 70:
        status = "optimal"
        recommendations.append("Your workload is balanced. There is room for unplanned work.")
    elif percentage <= 100:
        status = "busy"
        recommendations.append("Your week is full. Avoid taking on new commitments.")
    else:
        status = "overloaded"
        recommendations.append("Your week is overloaded. Move or delegate lower-priority tasks.")
        risks.append(f"Estimated effort exceeds available time by {round(total_hours - available_hours, 1)}h")

    without_estimate = [t for t in todos if not t.get("estimated_hours")]
    if without_estimate:
        recommendations.append(
            f"{len(without_estimate)} task(s) have no time estimate; add estimates for a more accurate plan."
        )

    high_without_deadline = [t for t in todos if t.get("priority") == "high" and not t.get("due_date")]
    if high_without_deadline:
        recommendations.append(
            f"{len(high_without_deadline)} high-priority task(s) have no deadline; set one."
        )

    urgent = []
    for todo in todos:
        due = parse_datetime(todo.get("due_date"))
        if due and due - now <= timedelta(days=URGENT_WITHIN_DAYS):
            urgent.append(todo)
    if urgent:
        priorities.append(f"Finish first: {', '.join(t['title'] for t in urgent[:5])}")
        risks.append(f"{len(urgent)} task(s) are due within {URGENT_WITHIN_DAYS} days")

    high = [t for t in todos if t.get("priority") == "high" and t not in urgent]
    if high:
        priorities.append(f"High priority: {', '.join(t['title'] for t in high[:5])}")

    return {
        "status": status,
        "workload_percentage": percentage,
        "recommendations": recommendations,
        "priorities": priorities,
        "reschedule_suggestions": [],
        "risks_identified": risks,
    }


def _normalize_ai_result(result: dict, fallback_percentage: int) -> dict:
    status = result.get("status")
    percentage = result.get("workloadPercentage")

    def _strings(key: str) -> list[str]:
        value = result.get(key) or []
        return [str(v) for v in value] if isinstance(value, list) else []

    return {
        "status": status if status in STATUSES else "busy",
        "workload_percentage": round(percentage) if isinstance(percentage, (int, float)) else fallback_percentage,
        "recommendations": _strings("recommendations"),
        "priorities": _strings("priorities"),
        "reschedule_suggestions": _strings("reschedulesSuggestions"),
        "risks_identified": _strings("risksIdentified"),
    }


async def analyze_workload(
    todos: list[dict],
    events: list[dict],
    now: datetime | None = None,
) -> dict:
    """Analyse the current week. Falls back to rules without OpenAI or on any AI failure."""
    now = ensure_utc(now) if now else now_utc()
    week_start, week_end = local_week_bounds(now)

    open_todos = week_todos(todos, week_start, week_end)
    available = available_working_hours(events)
    total = estimated_hours(open_todos)

    analysis = None
    if openai_client.is_available():
        try:
            result = await openai_client.analyze_workload(
                open_todos, events, week_start, week_end, available, total
            )
            if result:
                fallback_pct = round(total / available * 100) if available > 0 else 0
                analysis = _normalize_ai_result(result, fallback_pct)
            else:
                logger.warning("Workload analysis returned no parsable JSON, using rules")
        except (OpenAIError, httpx.HTTPError) as e:
            logger.warning(f"AI workload analysis failed, using rules: {e}")

    if analysis is None:
        analysis = rule_based_analysis(open_todos, available, total, now)

    return {
        "analysis": analysis,
        "metadata": {
            "week_start": week_start.isoformat(),
            "week_end": (week_end - timedelta(microseconds=1)).isoformat(),
            "total_todos": len(open_todos),
            "total_calendar_events": len(events),
            "available_working_hours": available,
            "total_estimated_hours": total,
            "is_ai_enabled": openai_client.is_available(),
        },
    }


async def analyze_for_user(db: AsyncSession, user_email: str, todos: list[dict] | None = None) -> dict:
    """Analyse a user's week; todos default to the stored ones, calendar failures count as no events."""
    if todos is None:
        todos = (await list_todos(db, user_email, "all"))["todos"]

    week_start, week_end = local_week_bounds()
    try:
        events = await get_events_for_range(db, user_email, week_start, week_end)
    except CalendarServiceError as e:
        logger.info(f"Workload analysis without calendar events ({e.reason})")
        events = []

    return await analyze_workload(todos, events)

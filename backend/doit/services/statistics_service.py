"""Productivity statistics: weekly comparison, streaks and priority mix."""

import math
from datetime import date, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.dates import ensure_utc, local_week_bounds, now_utc, to_local
from doit.models.todo import Todo
from doit.services.todo_service import fetch_todos


def _priority_counts(todos: list[Todo]) -> dict:
    return {
        "high": sum(1 for t in todos if t.priority == "high"),
        "medium": sum(1 for t in todos if t.priority == "medium"),
        "low": sum(1 for t in todos if t.priority == "low"),
    }


def week_stats(todos: list[Todo], start: datetime, end: datetime) -> dict:
    in_week = [t for t in todos if start <= ensure_utc(t.updated_at) < end]
    completed = [t for t in in_week if t.completed]
    total = len(in_week)
    return {
        "completed": len(completed),
        "total": total,
        "completion_rate": round(len(completed) / total * 100, 1) if total else 0.0,
        **{f"{k}_priority": v for k, v in _priority_counts(completed).items()},
    }


def calculate_streaks(completion_days: list[date], today: date) -> tuple[int, int]:
    """Current and longest run of consecutive days with at least one completion.

    The current streak only counts if its last day is today or yesterday.
    """
    days = sorted(set(completion_days))
    if not days:
        return 0, 0

    longest = run = 1
    for previous, current in zip(days, days[1:]):
        run = run + 1 if (current - previous).days == 1 else 1
        longest = max(longest, run)

    current_streak = 0
    if days[-1] in (today, today - timedelta(days=1)):
        current_streak = 1
        for i in range(len(days) - 1, 0, -1):
            if (days[i] - days[i - 1]).days != 1:
                break
            current_streak += 1

    return current_streak, longest


def compute_statistics(todos: list[Todo], now: datetime | None = None) -> dict:
    now = ensure_utc(now) if now else now_utc()
    current_start, current_end = local_week_bounds(now)
    last_start, last_end = local_week_bounds(now, weeks_back=1)

    completed = [t for t in todos if t.completed]
    total = len(todos)
    completion_dates = [ensure_utc(t.updated_at) for t in completed if t.updated_at]

    current_streak, longest_streak = calculate_streaks(
        [to_local(d).date() for d in completion_dates], to_local(now).date()
    )

    days_with_data = 1
    if completion_dates:
        elapsed = (now - min(completion_dates)).total_seconds() / 86400
        days_with_data = max(1, math.ceil(elapsed) + 1)

    completed_late = sum(
        1
        for t in completed
        if t.due_date and t.updated_at and ensure_utc(t.updated_at) > ensure_utc(t.due_date)
    )

    return {
        "current_week": week_stats(todos, current_start, current_end),
        "last_week": week_stats(todos, last_start, last_end),
        "total_completed": len(completed),
        "total_tasks": total,
        "overall_completion_rate": round(len(completed) / total * 100, 1) if total else 0.0,
        "completed_late": completed_late,
        "current_streak": current_streak,
        "longest_streak": longest_streak,
        "average_tasks_per_day": round(len(completed) / days_with_data, 2),
        "priority_distribution": _priority_counts(completed),
    }


async def get_statistics(db: AsyncSession, user_email: str) -> dict:
    todos = await fetch_todos(db, user_email, "all")
    return compute_statistics(todos)

"""Todo service: CRUD, kanban moves, filters and dashboard counters."""

import json
from datetime import datetime

from sqlalchemy import select, or_, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.dates import (
    isoformat,
    local_day_bounds,
    local_week_bounds,
    now_utc,
    parse_datetime,
    to_local,
)
from doit.core.logger import get_logger
from doit.models.todo import Todo, STATUSES

logger = get_logger(__name__)

FILTERS = ("today", "week", "all")


class TodoServiceError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def decode_tags(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        tags = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return []
    if not isinstance(tags, list):
        return []
    return [str(t) for t in tags]


def encode_tags(tags) -> str | None:
    if tags is None:
        return None
    if isinstance(tags, str):
        # Already JSON encoded by the client
        tags = decode_tags(tags)
    tags = [str(t).strip() for t in tags if str(t).strip()]
    return json.dumps(tags) if tags else None


def _window_for(filter: str) -> tuple[datetime, datetime] | None:
    if filter == "today":
        return local_day_bounds(to_local(now_utc()).date())
    if filter == "week":
        return local_week_bounds()
    return None


async def fetch_todos(db: AsyncSession, user_email: str, filter: str = "all") -> list[Todo]:
    """Todos of a user; ``today``/``week`` also include todos without a due date."""
    if filter not in FILTERS:
        raise TodoServiceError(f"Invalid filter. Use: {', '.join(FILTERS)}")

    query = (
        select(Todo)
        .where(Todo.user_email == user_email)
        .order_by(Todo.created_at.desc())
    )
    window = _window_for(filter)
    if window:
        start, end = window
        query = query.where(
            or_(
                Todo.due_date.is_(None),
                and_(Todo.due_date >= start, Todo.due_date < end),
            )
        )

    result = await db.execute(query)
    return list(result.scalars().all())


async def _get_owned(db: AsyncSession, user_email: str, todo_id: str) -> Todo:
    result = await db.execute(
        select(Todo).where(Todo.id == todo_id, Todo.user_email == user_email)
    )
    todo = result.scalar_one_or_none()
    if not todo:
        raise TodoServiceError("Todo not found", status_code=404)
    return todo


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

async def list_todos(db: AsyncSession, user_email: str, filter: str = "all") -> dict:
    todos = await fetch_todos(db, user_email, filter)
    return {
        "todos": [serialize_todo(t) for t in todos],
        "total": len(todos),
        "filter": filter,
    }


async def get_todo(db: AsyncSession, user_email: str, todo_id: str) -> dict:
    return serialize_todo(await _get_owned(db, user_email, todo_id))


async def create_todo(
    db: AsyncSession,
    user_email: str,
    title: str,
    description: str | None = None,
    priority: str = "medium",
    due_date=None,
    estimated_hours: float | None = None,
    tags=None,
    calendar_linked: bool = False,
    email_source: str | None = None,
    status: str | None = None,
    completed: bool = False,
) -> dict:
    """Create a todo. An unparsable due date is stored as no due date."""
    title = (title or "").strip()
    if not title:
        raise TodoServiceError("Title is required")

    if status is None:
        status = "done" if completed else "todo"
    completed = status == "done"

    todo = Todo(
        title=title,
        description=(description or "").strip() or None,
        priority=priority or "medium",
        due_date=parse_datetime(due_date),
        estimated_hours=estimated_hours,
        tags=encode_tags(tags),
        calendar_linked=calendar_linked,
        email_source=email_source,
        status=status,
        completed=completed,
        user_email=user_email,
    )
    db.add(todo)
    await db.commit()
    await db.refresh(todo)
    logger.info(f"Created todo {todo.id} for {user_email}")
    return serialize_todo(todo)


def _apply_status_sync(todo: Todo, updates: dict) -> None:
    """Keep ``completed`` and ``status == 'done'`` consistent; status wins on conflict."""
    if "status" in updates:
        todo.completed = todo.status == "done"
    elif "completed" in updates:
        if todo.completed:
            todo.status = "done"
        elif todo.status in (None, "done"):
            todo.status = "todo"


async def update_todo(db: AsyncSession, user_email: str, todo_id: str, updates: dict) -> dict:
    """Partial update. Keys absent from ``updates`` are left untouched."""
    todo = await _get_owned(db, user_email, todo_id)

    if "title" in updates:
        title = (updates["title"] or "").strip()
        if not title:
            raise TodoServiceError("Title is required")
        todo.title = title
    if "description" in updates:
        todo.description = (updates["description"] or "").strip() or None
    if "priority" in updates and updates["priority"]:
        todo.priority = updates["priority"]
    if "due_date" in updates:
        todo.due_date = parse_datetime(updates["due_date"])
    if "estimated_hours" in updates:
        todo.estimated_hours = updates["estimated_hours"]
    if "tags" in updates:
        todo.tags = encode_tags(updates["tags"])
    if "calendar_linked" in updates and updates["calendar_linked"] is not None:
        todo.calendar_linked = bool(updates["calendar_linked"])
    if "completed" in updates and updates["completed"] is not None:
        todo.completed = bool(updates["completed"])
    if "status" in updates and updates["status"]:
        todo.status = updates["status"]

    _apply_status_sync(todo, {k: v for k, v in updates.items() if v is not None})

    await db.commit()
    await db.refresh(todo)
    return serialize_todo(todo)


async def toggle_todo(db: AsyncSession, user_email: str, todo_id: str) -> dict:
    todo = await _get_owned(db, user_email, todo_id)
    return await update_todo(db, user_email, todo_id, {"completed": not todo.completed})


async def set_status(db: AsyncSession, user_email: str, todo_id: str, status: str) -> dict:
    """Move a todo to another kanban column."""
    if status not in STATUSES:
        raise TodoServiceError(f"Invalid status. Use: {', '.join(STATUSES)}")
    return await update_todo(db, user_email, todo_id, {"status": status})


async def mark_calendar_linked(db: AsyncSession, user_email: str, todo_id: str) -> dict:
    return await update_todo(db, user_email, todo_id, {"calendar_linked": True})


async def delete_todo(db: AsyncSession, user_email: str, todo_id: str) -> dict:
    todo = await _get_owned(db, user_email, todo_id)
    await db.delete(todo)
    await db.commit()
    return {"status": "deleted", "id": todo_id}


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

async def get_board(db: AsyncSession, user_email: str) -> dict:
    """Todos grouped into kanban columns."""
    board: dict[str, list[dict]] = {status: [] for status in STATUSES}
    for todo in await fetch_todos(db, user_email, "all"):
        board[todo.status if todo.status in STATUSES else "todo"].append(serialize_todo(todo))
    return {
        "columns": board,
        "counts": {status: len(items) for status, items in board.items()},
    }


async def get_stats(db: AsyncSession, user_email: str) -> dict:
    all_todos = await fetch_todos(db, user_email, "all")
    today_todos = await fetch_todos(db, user_email, "today")
    return {
        "total": len(all_todos),
        "completed": sum(1 for t in all_todos if t.completed),
        "pending": sum(1 for t in all_todos if not t.completed),
        "today_total": len(today_todos),
        "today_completed": sum(1 for t in today_todos if t.completed),
    }


async def has_email_source(db: AsyncSession, user_email: str, email_source: str) -> bool:
    """Whether a todo was already created from this email thread (deduplication)."""
    result = await db.execute(
        select(func.count(Todo.id)).where(
            Todo.user_email == user_email,
            Todo.email_source == email_source,
        )
    )
    return (result.scalar() or 0) > 0


# ---------------------------------------------------------------------------
# Serializer
# ---------------------------------------------------------------------------

def serialize_todo(todo: Todo) -> dict:
    return {
        "id": todo.id,
        "title": todo.title,
        "description": todo.description,
        "completed": bool(todo.completed),
        "priority": todo.priority,
        "due_date": isoformat(todo.due_date),
        "estimated_hours": todo.estimated_hours,
        "tags": decode_tags(todo.tags),
        "calendar_linked": bool(todo.calendar_linked),
        "email_source": todo.email_source,
        "status": todo.status or ("done" if todo.completed else "todo"),
        "user_email": todo.user_email,
        "created_at": isoformat(todo.created_at),
        "updated_at": isoformat(todo.updated_at),
    }

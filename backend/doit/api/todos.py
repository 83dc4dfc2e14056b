"""Todo API endpoints: CRUD, kanban board, counters and calendar scheduling."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.database import get_db
from doit.core.security import get_current_user
from doit.models.todo import PRIORITIES, STATUSES
from doit.models.user import User
from doit.services.calendar_service import CalendarServiceError
from doit.services.scheduling_service import SchedulingError, schedule_todo
from doit.services.statistics_service import get_statistics
from doit.services.todo_service import (
    list_todos,
    get_todo,
    create_todo,
    update_todo,
    toggle_todo,
    set_status,
    delete_todo,
    get_board,
    get_stats,
    TodoServiceError,
)

router = APIRouter(prefix="/api/todos", tags=["todos"])


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class CreateTodoRequest(BaseModel):
    title: str
    description: str | None = None
    priority: str = "medium"
    due_date: str | None = None
    estimated_hours: float | None = None
    tags: list[str] | None = None
    status: str | None = None
    completed: bool = False


class UpdateTodoRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    priority: str | None = None
    due_date: str | None = None
    estimated_hours: float | None = None
    tags: list[str] | None = None
    completed: bool | None = None
    status: str | None = None
    calendar_linked: bool | None = None


class StatusRequest(BaseModel):
    status: str


def _validate_choices(priority: str | None, todo_status: str | None) -> None:
    if priority is not None and priority not in PRIORITIES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid priority. Use: {', '.join(PRIORITIES)}",
        )
    if todo_status is not None and todo_status not in STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid status. Use: {', '.join(STATUSES)}",
        )


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

@router.get("")
async def api_list_todos(
    filter: str = Query("all", description="Filter: today, week, all"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List the current user's todos."""
    try:
        return await list_todos(db, user.email, filter)
    except TodoServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/stats")
async def api_todo_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_stats(db, user.email)


@router.get("/statistics")
async def api_todo_statistics(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Weekly comparison, streaks and priority distribution."""
    return await get_statistics(db, user.email)


@router.get("/board")
async def api_todo_board(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Todos grouped into kanban columns."""
    return await get_board(db, user.email)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

@router.post("", status_code=status.HTTP_201_CREATED)
async def api_create_todo(
    body: CreateTodoRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _validate_choices(body.priority, body.status)
    try:
        return await create_todo(db, user.email, **body.model_dump())
    except TodoServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/{todo_id}")
async def api_get_todo(
    todo_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await get_todo(db, user.email, todo_id)
    except TodoServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.patch("/{todo_id}")
async def api_update_todo(
    todo_id: str,
    body: UpdateTodoRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Partial update; only fields present in the body change (``due_date: null`` clears it)."""
    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    _validate_choices(updates.get("priority"), updates.get("status"))
    try:
        return await update_todo(db, user.email, todo_id, updates)
    except TodoServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.patch("/{todo_id}/toggle")
async def api_toggle_todo(
    todo_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Flip completion; the kanban status follows."""
    try:
        return await toggle_todo(db, user.email, todo_id)
    except TodoServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.patch("/{todo_id}/status")
async def api_set_status(
    todo_id: str,
    body: StatusRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Move a todo to another kanban column."""
    try:
        return await set_status(db, user.email, todo_id, body.status)
    except TodoServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.delete("/{todo_id}")
async def api_delete_todo(
    todo_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await delete_todo(db, user.email, todo_id)
    except TodoServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------

@router.post("/{todo_id}/schedule")
async def api_schedule_todo(
    todo_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Book work blocks for the todo in the user's Google Calendar."""
    try:
        return await schedule_todo(db, user.email, todo_id)
    except (TodoServiceError, SchedulingError) as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except CalendarServiceError as e:
        raise HTTPException(status_code=e.status_code, detail={"error": str(e), "reason": e.reason})

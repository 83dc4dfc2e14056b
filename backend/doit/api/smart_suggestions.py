"""Smart suggestion endpoints: todo proposals from calendar events."""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.database import get_db
from doit.core.logger import get_logger
from doit.core.security import get_current_user
from doit.models.user import User
from doit.services.suggestion_service import (
    SuggestionWindow,
    generate_suggestions,
    suggestions_from_events,
    create_todo_from_suggestion,
    SuggestionServiceError,
)
from doit.services.todo_service import TodoServiceError

logger = get_logger(__name__)

router = APIRouter(prefix="/api/smart-suggestions", tags=["smart-suggestions"])


# --- Schemas ---

class EventsRequest(BaseModel):
    events: list[dict] = []


class CreateFromSuggestionRequest(BaseModel):
    suggestion_id: str
    event_id: str
    event_title: str
    title: str = Field(min_length=1)
    description: str | None = None
    priority: str = Field("medium", pattern="^(low|medium|high)$")
    estimated_hours: float | None = None
    reasoning: str | None = None


def _empty(warning: str) -> dict:
    return {"success": True, "suggestions": [], "count": 0, "warning": warning}


# --- Routes ---

@router.get("")
async def api_get_suggestions(
    lookback_days: int = Query(0, ge=0),
    include_today: bool = Query(True),
    include_future: bool = Query(True),
    future_days: int = Query(4, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Suggestions for the user's upcoming (and optionally past) events."""
    window = SuggestionWindow(lookback_days, include_today, include_future, future_days)
    try:
        suggestions = await generate_suggestions(db, user.email, window)
    except SuggestionServiceError as e:
        logger.warning(f"Smart suggestions unavailable for {user.email}: {e}")
        return _empty("Could not generate suggestions - Google Calendar may not be authenticated")
    return {"success": True, "suggestions": suggestions, "count": len(suggestions)}


@router.post("")
async def api_suggestions_from_events(
    body: EventsRequest,
    user: User = Depends(get_current_user),
):
    """Suggestions for events the client already loaded."""
    suggestions = await suggestions_from_events(body.events)
    return {"success": True, "suggestions": suggestions, "count": len(suggestions)}


@router.post("/create-todo")
async def api_create_todo_from_suggestion(
    body: CreateFromSuggestionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        todo = await create_todo_from_suggestion(
            db,
            user.email,
            suggestion_id=body.suggestion_id,
            event_title=body.event_title,
            title=body.title,
            description=body.description,
            priority=body.priority,
            estimated_hours=body.estimated_hours,
            reasoning=body.reasoning,
        )
    except TodoServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"success": True, "todo": todo}

"""AI endpoints: weekly workload analysis."""

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.database import get_db
from doit.core.security import get_current_user
from doit.models.user import User
from doit.services.workload_service import analyze_for_user

router = APIRouter(prefix="/api/ai", tags=["ai"])


@router.get("/analyze")
async def api_analyze_stored(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Analyse this week's workload from the stored todos."""
    return await analyze_for_user(db, user.email)


@router.post("/analyze")
async def api_analyze(
    body: dict = Body(default_factory=dict),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Analyse this week's workload for the todos sent by the client.

    Without a ``todos`` key the stored todos are used.
    """
    if "todos" not in body:
        return await analyze_for_user(db, user.email)

    todos = body["todos"]
    if not isinstance(todos, list):
        raise HTTPException(status_code=400, detail="todos must be a list")
    todos = [t for t in todos if isinstance(t, dict) and t.get("title")]
    return await analyze_for_user(db, user.email, todos)

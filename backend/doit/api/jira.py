"""Jira API endpoints: connection settings, issue cache and live open issues."""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.database import get_db
from doit.core.security import get_current_user
from doit.models.user import User
from doit.services.jira_service import (
    get_config,
    save_config,
    delete_config,
    get_issues,
    sync_issues,
    get_projects,
    test_connection,
    simple_issues,
    JiraServiceError,
)

router = APIRouter(prefix="/api/jira", tags=["jira"])


# --- Schemas ---

class JiraConfigRequest(BaseModel):
    url: str = ""
    email: str = ""
    token: str = ""


class SyncRequest(BaseModel):
    projects: list[str] = []


class SimpleIssuesRequest(BaseModel):
    projects: list[str] = []
    url: str | None = None
    email: str | None = None
    token: str | None = None


def _split_projects(projects: str | None) -> list[str]:
    return [p.strip() for p in (projects or "").split(",") if p.strip()]


# --- Configuration ---

@router.get("/config")
async def api_get_config(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Stored Jira settings. The API token is never returned."""
    return await get_config(db, user.email)


@router.post("/config")
async def api_save_config(
    body: JiraConfigRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await save_config(db, user.email, body.url, body.email, body.token)
    except JiraServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.delete("/config")
async def api_delete_config(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await delete_config(db, user.email)


# --- Issues ---

@router.get("/issues")
async def api_get_issues(
    projects: str | None = Query(None, description="Comma separated project keys"),
    sync: bool = Query(False, description="Refresh the cache from Jira first"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await get_issues(db, user.email, _split_projects(projects), sync=sync)
    except JiraServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/issues")
async def api_sync_issues(
    body: SyncRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Refresh the cached issues of the given projects."""
    try:
        synced = await sync_issues(db, user.email, body.projects)
        return {"success": True, "synced": synced}
    except JiraServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/projects")
async def api_get_projects(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return {"projects": await get_projects(db, user.email)}
    except JiraServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/test")
async def api_test_connection(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await test_connection(db, user.email)
    except JiraServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/simple-issues")
async def api_simple_issues(
    body: SimpleIssuesRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Open issues fetched live, without touching the cache."""
    credentials = None
    if body.url or body.email or body.token:
        credentials = {"url": body.url, "email": body.email, "token": body.token}
    try:
        return await simple_issues(db, user.email, body.projects, credentials)
    except JiraServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

"""Jira service: per-user connection settings and the local issue cache."""

import httpx
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.dates import isoformat, now_utc
from doit.core.encryption import DecryptionError, decrypt_token, encrypt_token
from doit.core.logger import get_logger
from doit.integrations.jira import JiraClient
from doit.models.jira_issue import JiraIssue
from doit.services.settings_service import (
    delete_setting,
    get_json_setting,
    jira_config_key,
    upsert_json_setting,
)

logger = get_logger(__name__)

CLOSED_STATUS_MARKERS = (
    "done",
    "closed",
    "resolved",
    "complete",
    "ready to review",
    "ready for review",
)
SKIPPED_SUMMARY_MARKERS = ("release notes", "release note")


class JiraServiceError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

async def _load_credentials(db: AsyncSession, user_email: str) -> dict:
    config = await get_json_setting(db, jira_config_key(user_email))
    if not config or not config.get("url"):
        raise JiraServiceError("Jira not configured")
    try:
        token = decrypt_token(config.get("token", ""))
    except DecryptionError as e:
        raise JiraServiceError("Stored Jira token is unreadable. Please configure Jira again.") from e
    return {"url": config["url"], "email": config.get("email", ""), "token": token}


async def get_client(db: AsyncSession, user_email: str) -> JiraClient:
    credentials = await _load_credentials(db, user_email)
    return JiraClient(credentials["url"], credentials["email"], credentials["token"])


async def get_config(db: AsyncSession, user_email: str) -> dict:
    """Stored connection settings without the API token."""
    config = await get_json_setting(db, jira_config_key(user_email))
    if not config:
        return {"configured": False}
    return {"configured": True, "url": config.get("url"), "email": config.get("email")}


async def save_config(db: AsyncSession, user_email: str, url: str, email: str, token: str) -> dict:
    if not url or not email or not token:
        raise JiraServiceError("URL, email, and token are required")

    client = JiraClient(url, email, token)
    if not await client.test_connection():
        raise JiraServiceError("Failed to connect to Jira. Please check your credentials.")

    await upsert_json_setting(
        db,
        jira_config_key(user_email),
        {"url": url.rstrip("/"), "email": email, "token": encrypt_token(token)},
    )
    logger.info(f"Saved Jira configuration for {user_email}")
    return {"success": True}


async def delete_config(db: AsyncSession, user_email: str) -> dict:
    await delete_setting(db, jira_config_key(user_email))
    await db.execute(delete(JiraIssue).where(JiraIssue.user_email == user_email))
    await db.commit()
    return {"success": True}


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------

async def sync_issues(db: AsyncSession, user_email: str, projects: list[str]) -> int:
    """Replace the cached issues of ``projects`` with a fresh copy from Jira."""
    client = await get_client(db, user_email)
    try:
        issues = await client.get_issues_by_projects(projects)
    except httpx.HTTPError as e:
        logger.warning(f"Jira sync failed for {user_email}: {e}")
        raise JiraServiceError(f"Failed to fetch Jira issues: {e}", status_code=503)

    for project in projects:
        await db.execute(
            delete(JiraIssue).where(
                JiraIssue.project == project, JiraIssue.user_email == user_email
            )
        )

    synced_at = now_utc()
    for data in issues:
        result = await db.execute(select(JiraIssue).where(JiraIssue.jira_id == data["jira_id"]))
        issue = result.scalar_one_or_none()
        if issue is None:
            issue = JiraIssue(jira_id=data["jira_id"])
            db.add(issue)
        for field, value in data.items():
            setattr(issue, field, value)
        issue.user_email = user_email
        issue.last_sync_at = synced_at

    await db.commit()
    logger.info(f"Synced {len(issues)} Jira issues for {user_email} ({', '.join(projects) or 'no projects'})")
    return len(issues)


async def get_issues(
    db: AsyncSession, user_email: str, projects: list[str] | None = None, sync: bool = False
) -> dict:
    projects = [p.strip() for p in projects or [] if p.strip()]
    if sync:
        await sync_issues(db, user_email, projects)
    else:
        await _load_credentials(db, user_email)

    query = select(JiraIssue).where(JiraIssue.user_email == user_email)
    if projects:
        query = query.where(JiraIssue.project.in_(projects))
    result = await db.execute(query.order_by(JiraIssue.updated_at.desc()))
    issues = result.scalars().all()

    return {
        "issues": [serialize_issue(i) for i in issues],
        "last_sync": isoformat(issues[0].last_sync_at) if issues else None,
    }


async def get_projects(db: AsyncSession, user_email: str) -> list[dict]:
    client = await get_client(db, user_email)
    try:
        return await client.get_projects()
    except httpx.HTTPError as e:
        raise JiraServiceError(f"Failed to fetch Jira projects: {e}", status_code=503)


async def test_connection(db: AsyncSession, user_email: str) -> dict:
    client = await get_client(db, user_email)
    connected = await client.test_connection()
    return {
        "success": connected,
        "message": "Connection successful" if connected else "Connection failed",
    }


def is_open_issue(issue: dict) -> bool:
    status = (issue.get("status") or "").lower()
    summary = (issue.get("summary") or "").lower()
    if any(marker in status for marker in CLOSED_STATUS_MARKERS):
        return False
    return not any(marker in summary for marker in SKIPPED_SUMMARY_MARKERS)


async def simple_issues(
    db: AsyncSession,
    user_email: str,
    projects: list[str],
    credentials: dict | None = None,
) -> dict:
    """Live open issues straight from Jira, using explicit credentials or the stored ones."""
    if credentials:
        if not all(credentials.get(k) for k in ("url", "email", "token")):
            raise JiraServiceError("URL, email, and token are required")
        client = JiraClient(credentials["url"], credentials["email"], credentials["token"])
    else:
        client = await get_client(db, user_email)

    try:
        issues = await client.get_issues_by_projects(projects)
    except httpx.HTTPError as e:
        raise JiraServiceError(f"Failed to fetch Jira issues: {e}", status_code=503)

    open_issues = [
        {**issue, "due_date": isoformat(issue["due_date"])}
        for issue in issues
        if is_open_issue(issue)
    ]
    return {
        "success": True,
        "issues": open_issues,
        "total": len(open_issues),
        "last_sync": now_utc().isoformat(),
    }


def serialize_issue(issue: JiraIssue) -> dict:
    return {
        "id": issue.id,
        "jira_id": issue.jira_id,
        "key": issue.key,
        "summary": issue.summary,
        "description": issue.description,
        "status": issue.status,
        "priority": issue.priority,
        "assignee": issue.assignee,
        "project": issue.project,
        "issue_type": issue.issue_type,
        "due_date": isoformat(issue.due_date),
        "sprint": issue.sprint,
        "sprint_state": issue.sprint_state,
        "user_email": issue.user_email,
        "created_at": isoformat(issue.created_at),
        "updated_at": isoformat(issue.updated_at),
        "last_sync_at": isoformat(issue.last_sync_at),
    }

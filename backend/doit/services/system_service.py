"""Database bootstrap, data migrations and deployment status."""

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.config import settings
from doit.core.database import apply_column_migrations, create_tables, is_sqlite
from doit.core.dates import now_utc
from doit.core.logger import get_logger
from doit.integrations import openai_client
from doit.models.setting import Setting
from doit.models.todo import Todo
from doit.services.tag_service import seed_default_tags

logger = get_logger(__name__)

STARTED_AT = now_utc()


async def initialize_database(db: AsyncSession) -> dict:
    """Create missing tables and columns, then seed the default tags."""
    await create_tables(db)
    columns = await apply_column_migrations(db)
    seeded = await seed_default_tags(db)
    logger.info(f"Database initialized ({len(columns)} columns added, {seeded} tags seeded)")
    return {
        "success": True,
        "message": "Database initialized",
        "columns_added": columns,
        "tags_seeded": seeded,
    }


async def run_migrations(db: AsyncSession, user_email: str) -> dict:
    """Assign ownerless todos to ``user_email`` and fill in missing statuses."""
    columns = await apply_column_migrations(db)

    assigned = await db.execute(
        update(Todo).where(Todo.user_email.is_(None)).values(user_email=user_email)
    )
    done = await db.execute(
        update(Todo).where(Todo.status.is_(None), Todo.completed.is_(True)).values(status="done")
    )
    open_ = await db.execute(
        update(Todo).where(Todo.status.is_(None)).values(status="todo")
    )
    await db.commit()

    result = {
        "success": True,
        "columns_added": columns,
        "todos_assigned": assigned.rowcount or 0,
        "status_done": done.rowcount or 0,
        "status_todo": open_.rowcount or 0,
    }
    logger.info(f"Migrations for {user_email}: {result}")
    return result


async def get_status(db: AsyncSession) -> dict:
    """Which integrations are configured; never includes secret values."""
    jira_users = await db.execute(
        select(func.count(Setting.id)).where(Setting.key.like("jira_config_%"))
    )
    return {
        "status": "healthy",
        "timestamp": now_utc().isoformat(),
        "config": {
            "database": "sqlite" if is_sqlite else "postgresql",
            "google_configured": bool(settings.google_client_id and settings.google_client_secret),
            "google_refresh_token_set": bool(settings.google_refresh_token),
            "allowed_emails_set": bool(settings.allowed_email_list),
            "allowed_emails_count": len(settings.allowed_email_list),
            "openai_configured": openai_client.is_available(),
            "jira_configured_users": jira_users.scalar() or 0,
            "slack_configured": bool(settings.slack_signing_secret),
            "slack_user_set": bool(settings.slack_user_email),
            "cron_configured": bool(settings.cron_secret and settings.cron_user_email),
            "encryption_key_set": bool(settings.encryption_key),
            "frontend_url": settings.frontend_url,
        },
    }


def get_version() -> dict:
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "commit": settings.build_commit,
        "started_at": STARTED_AT.isoformat(),
    }

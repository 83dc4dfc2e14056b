"""Async database engine, session factory and schema bootstrap."""

from collections.abc import AsyncIterator

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from doit.core.config import settings
from doit.core.logger import get_logger

logger = get_logger(__name__)


def _get_async_url(url: str) -> str:
    """Convert a database URL to its async driver variant."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


database_url = _get_async_url(settings.database_url)
is_sqlite = database_url.startswith("sqlite")

engine_kwargs: dict = {"echo": settings.debug}
if not is_sqlite:
    engine_kwargs["pool_size"] = 10
    engine_kwargs["max_overflow"] = 5
    engine_kwargs["pool_pre_ping"] = True

engine = create_async_engine(database_url, **engine_kwargs)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a session per request."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# Columns added after the first release; create_all does not ALTER existing tables
COLUMN_MIGRATIONS = [
    ("todos", "status", "VARCHAR(20) DEFAULT 'todo'"),
    ("todos", "user_email", "VARCHAR(320)"),
    ("todos", "email_source", "VARCHAR(500)"),
    ("todos", "calendar_linked", "BOOLEAN DEFAULT FALSE"),
    ("todos", "estimated_hours", "FLOAT"),
    ("jira_issues", "sprint", "VARCHAR(255)"),
    ("jira_issues", "sprint_state", "VARCHAR(50)"),
]


async def create_tables(db: AsyncSession) -> None:
    # Import models so every table is registered on the metadata
    import doit.models  # noqa: F401

    await db.run_sync(lambda session: Base.metadata.create_all(session.connection()))
    await db.commit()


async def apply_column_migrations(db: AsyncSession) -> list[str]:
    """Add missing columns to tables created by older versions."""
    added = []
    for table, column, col_type in COLUMN_MIGRATIONS:
        try:
            await db.execute(text(f"SELECT {column} FROM {table} LIMIT 1"))
            continue
        except DBAPIError:
            await db.rollback()

        try:
            await db.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
            await db.commit()
            added.append(f"{table}.{column}")
            logger.info(f"Added column {table}.{column}")
        except DBAPIError as e:
            await db.rollback()
            logger.warning(f"Could not add column {table}.{column}: {e}")
    return added

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.database import get_db
from doit.core.security import get_current_user
from doit.models.user import User
from doit.services.system_service import (
    initialize_database,
    run_migrations,
    get_status,
    get_version,
)

router = APIRouter(prefix="/api", tags=["system"])


@router.post("/init")
async def api_init(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create missing tables and seed the default tags."""
    return await initialize_database(db)


@router.post("/migrate")
async def api_migrate(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Assign ownerless todos to the caller and backfill kanban statuses."""
    return await run_migrations(db, user.email)


@router.get("/status")
async def api_status(db: AsyncSession = Depends(get_db)):
    return await get_status(db)


@router.get("/version")
async def api_version():
    return get_version()

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.database import get_db
from doit.core.security import get_current_user
from doit.models.user import User
from doit.services.tag_service import list_tags, create_tag, delete_tag, TagServiceError

router = APIRouter(prefix="/api/tags", tags=["tags"])


class CreateTagRequest(BaseModel):
    name: str
    color: str | None = None


@router.get("")
async def api_list_tags(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"tags": await list_tags(db)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def api_create_tag(
    body: CreateTagRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await create_tag(db, body.name, body.color)
    except TagServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.delete("/{tag_id}")
async def api_delete_tag(
    tag_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await delete_tag(db, tag_id)
    except TagServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

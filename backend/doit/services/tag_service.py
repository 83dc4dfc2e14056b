from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.dates import isoformat
from doit.models.tag import Tag

DEFAULT_TAGS = [
    ("Private", "#3b82f6"),
    ("Work", "#ef4444"),
    ("Project", "#f59e0b"),
    ("Shopping", "#10b981"),
    ("Important", "#8b5cf6"),
]


class TagServiceError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


async def list_tags(db: AsyncSession) -> list[dict]:
    result = await db.execute(select(Tag).order_by(Tag.name))
    return [_serialize_tag(t) for t in result.scalars().all()]


async def create_tag(db: AsyncSession, name: str, color: str | None = None) -> dict:
    name = (name or "").strip()
    if not name:
        raise TagServiceError("Tag name is required")

    existing = await db.execute(select(Tag).where(Tag.name == name))
    if existing.scalar_one_or_none():
        raise TagServiceError("Tag already exists")

    tag = Tag(name=name, color=color or "#3b82f6")
    db.add(tag)
    await db.commit()
    await db.refresh(tag)
    return _serialize_tag(tag)


async def delete_tag(db: AsyncSession, tag_id: int) -> dict:
    result = await db.execute(select(Tag).where(Tag.id == tag_id))
    tag = result.scalar_one_or_none()
    if not tag:
        raise TagServiceError("Tag not found", status_code=404)
    await db.delete(tag)
    await db.commit()
    return {"status": "deleted", "id": tag_id}


async def seed_default_tags(db: AsyncSession) -> int:
    """Insert the default tags that do not exist yet; returns how many were added."""
    result = await db.execute(select(Tag.name))
    existing = set(result.scalars().all())
    added = 0
    for name, color in DEFAULT_TAGS:
        if name not in existing:
            db.add(Tag(name=name, color=color))
            added += 1
    await db.commit()
    return added


def _serialize_tag(tag: Tag) -> dict:
    return {
        "id": tag.id,
        "name": tag.name,
        "color": tag.color,
        "created_at": isoformat(tag.created_at),
    }

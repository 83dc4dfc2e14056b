"""Key/value settings used for per-user integration configuration."""

import json

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from doit.models.setting import Setting


def jira_config_key(user_email: str) -> str:
    return f"jira_config_{user_email}"


def gmail_configured_key(user_email: str) -> str:
    return f"gmail_configured_{user_email}"


async def get_setting(db: AsyncSession, key: str) -> str | None:
    result = await db.execute(select(Setting).where(Setting.key == key))
    setting = result.scalar_one_or_none()
    return setting.value if setting else None


async def get_json_setting(db: AsyncSession, key: str) -> dict | None:
    raw = await get_setting(db, key)
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


async def upsert_setting(db: AsyncSession, key: str, value: str) -> None:
    result = await db.execute(select(Setting).where(Setting.key == key))
    setting = result.scalar_one_or_none()
    if setting:
        setting.value = value
    else:
        db.add(Setting(key=key, value=value))
    await db.commit()


async def upsert_json_setting(db: AsyncSession, key: str, value: dict) -> None:
    await upsert_setting(db, key, json.dumps(value))


async def delete_setting(db: AsyncSession, key: str) -> bool:
    result = await db.execute(delete(Setting).where(Setting.key == key))
    await db.commit()
    return (result.rowcount or 0) > 0

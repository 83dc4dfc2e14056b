"""Slack /todo slash command: parse the text, check the allow-lists, create the todo."""

import re
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.config import settings
from doit.core.dates import now_utc, to_local, local_tz
from doit.core.logger import get_logger
from doit.services.todo_service import create_todo

logger = get_logger(__name__)

# Tried in order; the first match wins
DATE_PATTERNS = [
    (re.compile(r"(\d{1,2})\.(\d{1,2})\.(\d{4})\s+(\d{1,2}):(\d{2})"), ("day", "month", "year", "hour", "minute")),
    (re.compile(r"(\d{1,2})\.(\d{1,2})\.(\d{4})"), ("day", "month", "year")),
    (re.compile(r"(\d{1,2})\.(\d{1,2})\s+(\d{1,2}):(\d{2})"), ("day", "month", "hour", "minute")),
    (re.compile(r"(\d{1,2})\.(\d{1,2})"), ("day", "month")),
]

USAGE_EXAMPLES = [
    "/todo <task description>",
    "/todo <task description> 08.07.2025",
    "/todo <task description> 15.12.2024 14:30",
    "/todo <task description> 25.03",
    "/todo <task description> 10.05 09:00",
]


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_task_with_date(text: str, now: datetime | None = None) -> dict:
    """Split ``text`` into a title and an optional local due date.

    The matched date is removed from the title. A date that does not exist in
    the calendar (e.g. 31.02) yields no due date.
    """
    year_now = to_local(now or now_utc()).year
    for pattern, names in DATE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue

        title = (text[:match.start()] + text[match.end():]).strip()
        title = re.sub(r"\s{2,}", " ", title)
        parts = dict(zip(names, (int(g) for g in match.groups())))
        has_time = "hour" in parts
        try:
            due_date = datetime(
                parts.get("year", year_now),
                parts["month"],
                parts["day"],
                parts.get("hour", 0),
                parts.get("minute", 0),
                tzinfo=local_tz(),
            )
        except ValueError:
            due_date = None
            has_time = False
        return {"title": title, "due_date": due_date, "has_time": has_time}

    return {"title": text.strip(), "due_date": None, "has_time": False}


def is_authorized(channel_name: str, user_name: str) -> tuple[bool, str | None]:
    channels = _split_list(settings.slack_allowed_channels)
    users = _split_list(settings.slack_allowed_users)
    if not channels and not users:
        return True, None

    if channel_name in channels or f"#{channel_name}" in channels:
        return True, None
    if user_name in users or f"@{user_name}" in users:
        return True, None
    return False, f'Channel "#{channel_name}" or user "{user_name}" is not authorized'


def ephemeral(text: str, blocks: list[dict] | None = None) -> dict:
    message = {"response_type": "ephemeral", "text": text}
    if blocks:
        message["blocks"] = blocks
    return message


def usage_message() -> dict:
    examples = "\n".join(
        f"• `{example}`"
        for example in (
            "/todo Prepare meeting",
            "/todo Write report 08.07.2025",
            "/todo Presentation 15.12.2024 14:30",
        )
    )
    return ephemeral(f"❌ Please enter a task!\n\nExamples:\n{examples}")


def format_due_date(due_date: datetime, has_time: bool) -> str:
    local = to_local(due_date)
    return local.strftime("%A, %d %B %Y %H:%M" if has_time else "%A, %d %B %Y")


def usage_info() -> dict:
    channels = _split_list(settings.slack_allowed_channels)
    users = _split_list(settings.slack_allowed_users)
    return {
        "message": f"{settings.app_name} Slack integration is running!",
        "endpoint": "POST /api/slack/todo",
        "usage": USAGE_EXAMPLES,
        "security": {
            "allowed_channels": channels or "All channels allowed",
            "allowed_users": users or "All users allowed",
            "signing_secret_configured": bool(settings.slack_signing_secret),
        },
    }


async def handle_slash_command(db: AsyncSession, form: dict, now: datetime | None = None) -> dict:
    """Handle a verified /todo request and return the Slack response message."""
    text = (form.get("text") or "").strip()
    user_name = form.get("user_name") or "Slack User"
    channel_name = form.get("channel_name") or "unknown"

    logger.info(f"Slack todo from {user_name} in #{channel_name}: {text!r}")

    allowed, reason = is_authorized(channel_name, user_name)
    if not allowed:
        logger.warning(f"Unauthorized Slack todo attempt: {reason}")
        return ephemeral(
            "🚫 Not authorized!\n\nTodos can only be created from authorized channels "
            f"or by authorized users.\n\n{reason}"
        )

    if not text:
        return usage_message()

    owner = settings.slack_user_email.strip().lower()
    if not owner:
        logger.error("SLACK_USER_EMAIL is not configured")
        return ephemeral("❌ The Slack integration is not linked to a DOIT user.")

    parsed = parse_task_with_date(text, now)
    todo = await create_todo(
        db,
        owner,
        title=parsed["title"] or text,
        description=f"Created via Slack by {user_name} in #{channel_name}",
        due_date=parsed["due_date"],
    )
    logger.info(f"Created todo {todo['id']} via Slack")

    due_text = ""
    if parsed["due_date"]:
        due_text = f"\n📅 *Due:* {format_due_date(parsed['due_date'], parsed['has_time'])}"
    link = settings.frontend_url

    return ephemeral(
        f"✅ Todo created!\n\n📋 *{todo['title']}*{due_text}\n\n🔗 See all todos: {link}",
        blocks=[
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"✅ *Todo created!*\n\n📋 {todo['title']}{due_text}"},
            },
            {
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "🔗 View all todos"},
                        "url": link,
                        "action_id": "view_todos",
                    }
                ],
            },
        ],
    )

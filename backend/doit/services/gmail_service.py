"""Gmail ingestion: emails labelled DOIT become todos."""

import httpx
from openai import OpenAIError
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.dates import parse_datetime, to_local
from doit.core.logger import get_logger
from doit.integrations import openai_client
from doit.integrations.gmail import GmailClient, parse_gmail_message
from doit.services.google_auth_service import (
    GoogleAuthError,
    get_oauth_token,
    get_valid_access_token,
    store_refresh_token,
)
from doit.services.settings_service import gmail_configured_key, get_setting, upsert_setting
from doit.services.todo_service import create_todo, has_email_source

logger = get_logger(__name__)

DOIT_LABEL = "DOIT"
MAX_MESSAGES = 50
MAX_TITLE_LENGTH = 80
FALLBACK_TITLE = "Handle email"
PRIORITIES = ("low", "medium", "high")
EMAIL_TAGS = ["email"]


class GmailServiceError(Exception):
    def __init__(self, message: str, status_code: int = 503, reason: str = "api_error"):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


async def get_gmail_client(db: AsyncSession, user_email: str) -> GmailClient:
    try:
        access_token = await get_valid_access_token(db, user_email)
    except GoogleAuthError as e:
        raise GmailServiceError(str(e), 401, e.reason)
    return GmailClient(access_token)


def _format_date(message: dict) -> str:
    received = message.get("date")
    return to_local(received).strftime("%d.%m.%Y") if received else "unknown"


def fallback_summary(message: dict) -> dict:
    subject = message.get("subject") or ""
    if len(subject) > MAX_TITLE_LENGTH:
        title = subject[:77] + "..."
    else:
        title = subject or FALLBACK_TITLE

    description = "\n".join([
        f"From: {message.get('from', '')}",
        f"Date: {_format_date(message)}",
        "",
        (message.get("body") or "")[:500],
    ])
    return {
        "title": title,
        "description": description,
        "priority": "medium",
        "estimated_hours": None,
        "due_date": None,
    }


def normalize_summary(result: dict) -> dict:
    title = result.get("title")
    priority = result.get("priority")
    estimate = result.get("estimatedHours")
    if isinstance(estimate, bool) or not isinstance(estimate, (int, float)):
        estimate = None
    description = result.get("description")

    return {
        "title": title[:MAX_TITLE_LENGTH] if isinstance(title, str) and title.strip() else FALLBACK_TITLE,
        "description": description if isinstance(description, str) else "",
        "priority": priority if priority in PRIORITIES else "medium",
        "estimated_hours": estimate,
        "due_date": parse_datetime(result.get("suggestedDueDate")),
    }


async def summarize_message(message: dict) -> dict:
    """Todo fields for an email; uses a subject-based summary when OpenAI is unavailable or fails."""
    if not openai_client.is_available():
        return fallback_summary(message)

    try:
        result = await openai_client.summarize_email(
            subject=message.get("subject", ""),
            sender=message.get("from", ""),
            date=_format_date(message),
            body=message.get("body", ""),
        )
    except (OpenAIError, httpx.HTTPError) as e:
        logger.warning(f"Email summary failed for '{message.get('subject')}': {e}")
        return fallback_summary(message)

    if not result:
        logger.warning(f"Email summary for '{message.get('subject')}' was not valid JSON")
        return fallback_summary(message)
    return normalize_summary(result)


def todo_description(summary: dict, message: dict) -> str:
    return "\n".join([
        summary["description"],
        "",
        "---",
        f"Source: email from {message.get('from', '')}",
        f"Date: {_format_date(message)}",
        f"Subject: {message.get('subject', '')}",
    ])


async def _remove_label(client: GmailClient, message: dict, label_id: str) -> None:
    try:
        await client.remove_label(message["id"], label_id)
    except httpx.HTTPError as e:
        logger.warning(f"Could not remove {DOIT_LABEL} label from {message['id']}: {e}")


async def process_emails(db: AsyncSession, user_email: str) -> dict:
    """Turn every email labelled DOIT into a todo and remove the label.

    Threads that already produced a todo are skipped. Errors on single
    messages are collected and do not stop the run.
    """
    client = await get_gmail_client(db, user_email)
    logger.info(f"Processing {DOIT_LABEL} emails for {user_email}")

    try:
        label = await client.find_label(DOIT_LABEL)
        if not label:
            return {
                "success": True,
                "message": f'Label "{DOIT_LABEL}" not found in Gmail. Please create it first.',
                "processed": 0,
                "skipped": 0,
                "errors": [],
                "details": [],
            }
        listing = await client.list_messages(max_results=MAX_MESSAGES, label_ids=[label["id"]])
    except httpx.HTTPStatusError as e:
        if e.response.status_code in (401, 403):
            raise GmailServiceError("Insufficient Gmail permissions", 403, "insufficient_scope")
        raise GmailServiceError(f"Gmail API error: {e}")
    except httpx.HTTPError as e:
        raise GmailServiceError(f"Gmail API error: {e}")

    results = {"processed": 0, "skipped": 0, "errors": [], "details": []}
    for ref in listing.get("messages", []):
        message = {"id": ref["id"], "subject": ""}
        try:
            message = parse_gmail_message(await client.get_message(ref["id"]))

            if await has_email_source(db, user_email, message["thread_id"]):
                logger.info(f"Skipping already processed thread: {message['subject']}")
                await _remove_label(client, message, label["id"])
                results["skipped"] += 1
                continue

            summary = await summarize_message(message)
            await create_todo(
                db,
                user_email,
                title=summary["title"],
                description=todo_description(summary, message),
                priority=summary["priority"],
                due_date=summary["due_date"],
                estimated_hours=summary["estimated_hours"],
                tags=EMAIL_TAGS,
                email_source=message["thread_id"],
            )
            await _remove_label(client, message, label["id"])

            results["processed"] += 1
            results["details"].append({
                "message_id": message["id"],
                "subject": message["subject"],
                "todo_title": summary["title"],
            })
        except Exception as e:
            logger.exception(f"Failed to process email {message['id']}")
            results["errors"].append({
                "message_id": message["id"],
                "subject": message.get("subject", ""),
                "error": str(e),
            })

    logger.info(
        f"Gmail run for {user_email}: {results['processed']} processed, "
        f"{results['skipped']} skipped, {len(results['errors'])} errors"
    )
    return {"success": True, **results}


async def check_auth(db: AsyncSession, user_email: str) -> dict:
    try:
        client = await get_gmail_client(db, user_email)
    except GmailServiceError as e:
        return {"authenticated": False, "reason": e.reason}

    try:
        await client.list_labels()
    except httpx.HTTPError as e:
        logger.info(f"Gmail auth check failed for {user_email}: {e}")
        raise GmailServiceError("Insufficient Gmail permissions", 403, "insufficient_scope")
    return {"authenticated": True, "reason": None}


async def save_refresh_token(db: AsyncSession, user_email: str, refresh_token: str | None = None) -> dict:
    """Persist a refresh token for unattended processing and flag Gmail as configured."""
    if refresh_token:
        await store_refresh_token(db, user_email, refresh_token)
    else:
        record = await get_oauth_token(db, user_email)
        if not record or not record.refresh_token_encrypted:
            raise GmailServiceError("No refresh token available. Please sign in again.", 400, "no_token")

    await upsert_setting(db, gmail_configured_key(user_email), "true")
    logger.info(f"Gmail configured for {user_email}")
    return {"success": True, "message": "Refresh token saved"}


async def get_status(db: AsyncSession, user_email: str) -> dict:
    record = await get_oauth_token(db, user_email)
    return {
        "configured": (await get_setting(db, gmail_configured_key(user_email))) == "true",
        "has_refresh_token": bool(record and record.refresh_token_encrypted),
        "label": DOIT_LABEL,
    }

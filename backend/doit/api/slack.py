"""Slack endpoints: the /todo slash command and the app install callback."""

from urllib.parse import parse_qs

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.config import settings
from doit.core.database import get_db
from doit.core.logger import get_logger
from doit.integrations.slack import exchange_slack_code, verify_slack_signature
from doit.services.slack_service import ephemeral, handle_slash_command, usage_info
from doit.services.todo_service import TodoServiceError

logger = get_logger(__name__)

router = APIRouter(prefix="/api/slack", tags=["slack"])


@router.post("/todo")
async def slack_todo(request: Request, db: AsyncSession = Depends(get_db)):
    """Slash command endpoint; Slack posts ``application/x-www-form-urlencoded``."""
    try:
        raw_body = (await request.body()).decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="Request body is not valid UTF-8")

    if settings.slack_signing_secret:
        verified = verify_slack_signature(
            settings.slack_signing_secret,
            request.headers.get("x-slack-request-timestamp"),
            request.headers.get("x-slack-signature"),
            raw_body,
        )
        if not verified:
            logger.error("Slack request verification failed")
            raise HTTPException(status_code=401, detail="Unauthorized")
    else:
        logger.warning("SLACK_SIGNING_SECRET not set, verification skipped")

    form = {key: values[0] for key, values in parse_qs(raw_body).items()}
    try:
        return await handle_slash_command(db, form)
    except TodoServiceError as e:
        logger.warning(f"Slack todo could not be created: {e}")
        return ephemeral("❌ Could not create the task. Please try again later.")


@router.get("/todo")
async def slack_todo_info():
    return usage_info()


@router.get("/oauth/callback")
async def slack_oauth_callback(
    code: str | None = Query(None),
    error: str | None = Query(None),
):
    """Finish the Slack app installation and send the user back to the frontend."""
    if error:
        return RedirectResponse(url=f"{settings.frontend_url}/?slack=error")
    if not code:
        raise HTTPException(status_code=400, detail="Missing code parameter")

    try:
        data = await exchange_slack_code(code)
    except httpx.HTTPError as e:
        logger.error(f"Slack OAuth exchange failed: {e}")
        return RedirectResponse(url=f"{settings.frontend_url}/?slack=error")

    if not data.get("ok"):
        logger.error(f"Slack OAuth error: {data.get('error')}")
        return RedirectResponse(url=f"{settings.frontend_url}/?slack=error")

    logger.info(f"Slack app installed for team {(data.get('team') or {}).get('name')}")
    return RedirectResponse(url=f"{settings.frontend_url}/?slack=connected")

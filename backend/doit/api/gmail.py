"""Gmail API endpoints: DOIT-label ingestion (user or cron) and setup checks."""

import hmac

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.config import settings
from doit.core.database import get_db
from doit.core.logger import get_logger
from doit.core.security import bearer_scheme, get_current_user
from doit.models.user import User
from doit.services.gmail_service import (
    process_emails,
    check_auth,
    save_refresh_token,
    get_status,
    GmailServiceError,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/gmail", tags=["gmail"])


class SaveRefreshTokenRequest(BaseModel):
    refresh_token: str | None = None


def is_cron_request(api_key: str | None) -> bool:
    if not settings.cron_secret or not api_key:
        return False
    return hmac.compare_digest(api_key, settings.cron_secret)


async def resolve_mailbox_owner(
    request: Request,
    x_api_key: str | None = Header(None),
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> str:
    """The cron caller acts as CRON_USER_EMAIL; everyone else needs a session."""
    if is_cron_request(x_api_key):
        if not settings.cron_user_email:
            raise HTTPException(status_code=500, detail="CRON_USER_EMAIL not configured")
        return settings.cron_user_email.strip().lower()
    user = await get_current_user(request, credentials, db)
    return user.email


def _http_error(e: GmailServiceError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail={"error": str(e), "reason": e.reason})


@router.post("/process-emails")
async def api_process_emails(
    owner: str = Depends(resolve_mailbox_owner),
    db: AsyncSession = Depends(get_db),
):
    """Create todos from all emails labelled DOIT."""
    try:
        return await process_emails(db, owner)
    except GmailServiceError as e:
        logger.warning(f"Email processing failed for {owner}: {e}")
        raise _http_error(e)


@router.get("/status")
async def api_gmail_status(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_status(db, user.email)


@router.get("/auth-check")
async def api_gmail_auth_check(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await check_auth(db, user.email)
    except GmailServiceError as e:
        raise _http_error(e)


@router.post("/save-refresh-token")
async def api_save_refresh_token(
    body: SaveRefreshTokenRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Enable unattended processing with the stored (or a supplied) refresh token."""
    try:
        return await save_refresh_token(db, user.email, body.refresh_token if body else None)
    except GmailServiceError as e:
        raise _http_error(e)

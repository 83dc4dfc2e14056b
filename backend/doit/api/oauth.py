"""Google OAuth2 sign-in: login redirect, callback, connection status and disconnect."""

from datetime import datetime, timezone
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.config import settings
from doit.core.database import get_db
from doit.core.logger import get_logger
from doit.core.security import (
    STATE_TOKEN,
    create_access_token,
    create_state_token,
    decode_token,
    get_current_user,
    is_email_allowed,
)
from doit.integrations.gmail import (
    exchange_google_code,
    fetch_google_userinfo,
    get_google_auth_url,
)
from doit.models.user import User
from doit.services.google_auth_service import (
    delete_google_tokens,
    get_oauth_token,
    store_google_tokens,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/oauth", tags=["oauth"])


def _frontend_redirect(path: str = "/", **params) -> RedirectResponse:
    if not path.startswith("/"):
        path = "/"
    query = f"?{urlencode(params)}" if params else ""
    return RedirectResponse(url=f"{settings.frontend_url}{path}{query}")


# --- Google OAuth ---

@router.get("/google/login")
async def google_login(redirect_to: str = Query("/")):
    """Redirect the browser to Google's consent screen."""
    state = create_state_token(redirect_to)
    return RedirectResponse(url=get_google_auth_url(settings.google_redirect_uri, state))


@router.get("/google/callback")
async def google_callback(
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Exchange the code, check the allow-list, store tokens and start a session."""
    if error:
        return _frontend_redirect(error=error)
    if not code or not state:
        raise HTTPException(status_code=400, detail="Missing code or state parameter")

    try:
        payload = decode_token(state, expected_type=STATE_TOKEN)
    except HTTPException:
        return _frontend_redirect(error="invalid_state")

    try:
        tokens = await exchange_google_code(code, settings.google_redirect_uri)
        userinfo = await fetch_google_userinfo(tokens["access_token"])
    except (httpx.HTTPError, KeyError) as e:
        logger.error(f"Google OAuth exchange failed: {e}")
        return _frontend_redirect(error="oauth_failed")

    email = (userinfo.get("email") or "").strip().lower()
    if not email:
        return _frontend_redirect(error="oauth_failed")
    if not is_email_allowed(email):
        logger.warning(f"Sign-in rejected for {email}: not on the allow-list")
        return _frontend_redirect(error="access_denied")

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if not user:
        user = User(email=email)
        db.add(user)
    user.name = userinfo.get("name") or user.name or ""
    user.picture = userinfo.get("picture") or user.picture or ""
    user.google_connected = True
    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()

    await store_google_tokens(db, email, tokens)
    logger.info(f"{email} signed in with Google")

    session_token = create_access_token(email)
    response = _frontend_redirect(payload.get("redirect_to") or "/", token=session_token)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session_token,
        max_age=settings.session_expire_days * 24 * 3600,
        httponly=True,
        secure=settings.app_url.startswith("https"),
        samesite="lax",
    )
    return response


@router.get("/status")
async def oauth_status(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Whether a Google token is stored for the current user."""
    record = await get_oauth_token(db, user.email)
    return {
        "google": bool(user.google_connected and record),
        "has_refresh_token": bool(record and record.refresh_token_encrypted),
    }


@router.post("/disconnect")
async def disconnect_google(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Forget the stored Google tokens."""
    await delete_google_tokens(db, user.email)
    user.google_connected = False
    await db.commit()
    return {"status": "disconnected", "provider": "google"}

"""Stored Google OAuth tokens: persistence and transparent refresh."""

from datetime import datetime, timedelta, timezone

import httpx
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.config import settings
from doit.core.dates import ensure_utc
from doit.core.encryption import decrypt_token, encrypt_token, DecryptionError
from doit.core.logger import get_logger
from doit.integrations.gmail import refresh_google_token, GOOGLE_SCOPES
from doit.models.oauth_token import OAuthToken

logger = get_logger(__name__)

PROVIDER = "google"
REFRESH_MARGIN = timedelta(minutes=5)


class GoogleAuthError(Exception):
    def __init__(self, message: str, reason: str = "token_invalid"):
        super().__init__(message)
        self.reason = reason


async def get_oauth_token(db: AsyncSession, user_email: str) -> OAuthToken | None:
    result = await db.execute(
        select(OAuthToken).where(
            OAuthToken.user_email == user_email, OAuthToken.provider == PROVIDER
        )
    )
    return result.scalar_one_or_none()


async def store_google_tokens(db: AsyncSession, user_email: str, tokens: dict) -> OAuthToken:
    """Create or update the stored token row; keeps the old refresh token if none is returned."""
    record = await get_oauth_token(db, user_email)
    if record is None:
        record = OAuthToken(user_email=user_email, provider=PROVIDER)
        db.add(record)

    record.access_token_encrypted = encrypt_token(tokens.get("access_token", ""))
    if tokens.get("refresh_token"):
        record.refresh_token_encrypted = encrypt_token(tokens["refresh_token"])
    elif not record.refresh_token_encrypted:
        record.refresh_token_encrypted = ""

    record.token_expiry = None
    if "expires_in" in tokens:
        record.token_expiry = datetime.now(timezone.utc) + timedelta(seconds=int(tokens["expires_in"]))
    record.scopes = tokens.get("scope") or " ".join(GOOGLE_SCOPES)

    await db.commit()
    await db.refresh(record)
    return record


async def store_refresh_token(db: AsyncSession, user_email: str, refresh_token: str) -> OAuthToken:
    """Store a refresh token on its own; the access token is minted on first use."""
    record = await get_oauth_token(db, user_email)
    if record is None:
        record = OAuthToken(user_email=user_email, provider=PROVIDER, access_token_encrypted="")
        db.add(record)
    record.refresh_token_encrypted = encrypt_token(refresh_token)
    record.token_expiry = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(record)
    return record


async def delete_google_tokens(db: AsyncSession, user_email: str) -> None:
    await db.execute(
        delete(OAuthToken).where(
            OAuthToken.user_email == user_email, OAuthToken.provider == PROVIDER
        )
    )
    await db.commit()


def _needs_refresh(record: OAuthToken) -> bool:
    if not record.access_token_encrypted:
        return True
    expiry = ensure_utc(record.token_expiry)
    if expiry is None:
        return False
    return expiry - REFRESH_MARGIN <= datetime.now(timezone.utc)


async def get_valid_access_token(db: AsyncSession, user_email: str) -> str:
    """Return a usable access token, refreshing it shortly before expiry.

    The cron user may fall back to the ``GOOGLE_REFRESH_TOKEN`` setting when no
    token row exists yet.
    """
    record = await get_oauth_token(db, user_email)
    if record is None:
        if settings.google_refresh_token and user_email == settings.cron_user_email.lower():
            record = await store_refresh_token(db, user_email, settings.google_refresh_token)
        else:
            raise GoogleAuthError("Google account not connected", reason="no_token")

    try:
        access_token = decrypt_token(record.access_token_encrypted)
        if not _needs_refresh(record):
            return access_token

        refresh_tok = decrypt_token(record.refresh_token_encrypted)
    except DecryptionError as e:
        raise GoogleAuthError(str(e), reason="token_invalid") from e

    if not refresh_tok:
        raise GoogleAuthError("Google token expired and no refresh token stored")

    try:
        new_tokens = await refresh_google_token(refresh_tok)
    except httpx.HTTPError as e:
        logger.warning(f"Google token refresh failed for {user_email}: {e}")
        raise GoogleAuthError("Google token refresh failed") from e

    await store_google_tokens(db, user_email, new_tokens)
    logger.debug(f"Refreshed Google access token for {user_email}")
    return new_tokens["access_token"]

"""Session tokens and the current-user dependency.

Users sign in with Google (see ``doit.api.oauth``); afterwards every request
carries a signed session JWT, either as a Bearer header or as the session
cookie set by the OAuth callback.
"""

from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from doit.core.config import settings
from doit.core.database import get_db
from doit.models.user import User

bearer_scheme = HTTPBearer(auto_error=False)

SESSION_TOKEN = "session"
STATE_TOKEN = "oauth_state"
STATE_EXPIRE_MINUTES = 10


def is_email_allowed(email: str) -> bool:
    allowed = settings.allowed_email_list
    if not allowed:
        return True
    return email.strip().lower() in allowed


def _encode(payload: dict, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {**payload, "iat": now, "exp": now + expires_delta}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(email: str, expires_delta: timedelta | None = None) -> str:
    return _encode(
        {"sub": email.lower(), "type": SESSION_TOKEN},
        expires_delta or timedelta(days=settings.session_expire_days),
    )


def create_state_token(redirect_to: str = "") -> str:
    """Short-lived signed OAuth ``state`` value."""
    return _encode(
        {"type": STATE_TOKEN, "redirect_to": redirect_to},
        timedelta(minutes=STATE_EXPIRE_MINUTES),
    )


def decode_token(token: str, expected_type: str = SESSION_TOKEN) -> dict:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )

    if payload.get("type") != expected_type:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )
    return payload


def extract_session_token(
    request: Request, credentials: HTTPAuthorizationCredentials | None
) -> str | None:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.session_cookie_name)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    token = extract_session_token(request, credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(token)
    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    if not is_email_allowed(email):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Email address is not allowed",
        )

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user

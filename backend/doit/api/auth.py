from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from doit.core.config import settings
from doit.core.dates import isoformat
from doit.core.security import get_current_user
from doit.models.user import User

router = APIRouter(prefix="/api/auth", tags=["auth"])


# --- Schemas ---

class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    picture: str
    google_connected: bool
    last_login_at: str | None = None


# --- Routes ---

@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)):
    return _user_dict(user)


@router.post("/logout")
async def logout():
    """End the session by clearing the session cookie."""
    response = JSONResponse({"status": "logged_out"})
    response.delete_cookie(settings.session_cookie_name)
    return response


def _user_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name or "",
        "picture": user.picture or "",
        "google_connected": bool(user.google_connected),
        "last_login_at": isoformat(user.last_login_at),
    }

"""Session data models."""

from datetime import datetime

from pydantic import BaseModel


class UserProfile(BaseModel):
    """Profile of the signed-in user."""

    id: int
    email: str
    name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_login_at: datetime | None = None


class TokenPair(BaseModel):
    """Result of a token refresh."""

    auth_token: str
    refresh_token: str
    expires_at: datetime | None = None


class SessionSnapshot(BaseModel):
    """Read-only view of the current session."""

    is_authenticated: bool
    user_id: int | None = None
    user: UserProfile | None = None
    expires_at: datetime | None = None
    has_refresh_token: bool = False

"""Authentication schemas.

The current-user context is built from the verified token alone; profile data
lives in the identity service.
"""

from uuid import UUID

from pydantic import BaseModel, Field


class CurrentUserContext(BaseModel):
    """Authenticated caller, as carried by the access token."""

    id: UUID = Field(..., description="User ID (token subject)")
    email: str | None = Field(default=None, description="Email claim, if present")
    role: str = Field(default="user", description="Role claim")


class TokenPayload(BaseModel):
    """JWT token payload (internal)."""

    sub: str
    email: str | None = None
    role: str = "user"
    type: str

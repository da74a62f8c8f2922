"""Authentication schemas for JWT tokens and user context."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

DEFAULT_ROLE = "USER"


class UserContext(BaseModel):
    """Authenticated user context extracted from JWT token.

    This is the only thing the order core consumes from the identity
    provider: who the caller is and which role they hold.
    """

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID = Field(description="Unique identifier for the user (from JWT sub claim)")
    email: str | None = Field(default=None, description="User's email address if available")
    role: str = Field(default=DEFAULT_ROLE, description="Application role (USER, STAFF, ADMIN)")


class TokenPayload(BaseModel):
    """JWT token payload structure for Supabase tokens.

    Supabase puts its own database role ("authenticated") in ``role``; the
    application role lives in ``app_metadata.role``.
    """

    model_config = ConfigDict(from_attributes=True)

    sub: str = Field(description="Subject - the user's UUID")
    email: str | None = Field(default=None, description="User's email address")
    role: str | None = Field(default=None, description="Supabase database role")
    app_metadata: dict[str, Any] = Field(default_factory=dict, description="Server-controlled user metadata")
    exp: int = Field(description="Expiration timestamp (Unix epoch)")
    iat: int = Field(description="Issued at timestamp (Unix epoch)")
    aud: str | None = Field(default=None, description="Audience - intended recipient")
    iss: str | None = Field(default=None, description="Issuer - token issuer URL")

    @property
    def expiration_datetime(self) -> datetime:
        """Get expiration as datetime object."""
        return datetime.fromtimestamp(self.exp)

    @property
    def app_role(self) -> str:
        """Application role, upper-cased, defaulting to USER."""
        role = self.app_metadata.get("role")
        return str(role).upper() if role else DEFAULT_ROLE

    def to_user_context(self) -> UserContext:
        """Convert token payload to UserContext.

        Returns:
            UserContext: User context derived from token claims.
        """
        return UserContext(
            user_id=UUID(self.sub),
            email=self.email,
            role=self.app_role,
        )


class LoginRequest(BaseModel):
    """Request schema for user login."""

    email: EmailStr = Field(..., description="User's email address")
    password: str = Field(..., description="User's password")


class LoginResponse(BaseModel):
    """Response schema for successful login."""

    access_token: str = Field(description="JWT access token")
    refresh_token: str | None = Field(default=None, description="Refresh token if available")
    user_id: str = Field(description="User ID")
    email: str = Field(description="User's email address")
    expires_in: int = Field(description="Token expiration time in seconds")
    linked_orders: int = Field(default=0, description="Guest orders attached to the account during this login")


class MeResponse(BaseModel):
    """Resolved identity of the caller."""

    user_id: str = Field(description="Authenticated user ID")
    email: str | None = Field(default=None, description="User email if available")
    role: str = Field(description="Application role")

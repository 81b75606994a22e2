"""Authentication schemas for JWT tokens and user context."""

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UserContext(BaseModel):
    """Authenticated caller extracted from the JWT.

    Customers act on their own orders; callers whose role matches the
    configured admin role may act on any order.
    """

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID = Field(description="Unique identifier for the user (from JWT sub claim)")
    email: str | None = Field(default=None, description="User's email address if available")
    role: str | None = Field(default=None, description="Application role (e.g., 'user', 'admin')")

    def has_role(self, role: str) -> bool:
        """Check the caller's role, case-insensitively."""
        return bool(self.role) and self.role.lower() == role.lower()


class TokenPayload(BaseModel):
    """Claims of a Supabase-issued JWT.

    Supabase puts "authenticated" in the top-level role claim; the
    application role lives in app_metadata.role and wins when present.
    """

    model_config = ConfigDict(from_attributes=True)

    sub: str = Field(description="Subject - the user's UUID")
    email: str | None = Field(default=None, description="User's email address")
    role: str | None = Field(default=None, description="Database role claim")
    app_metadata: dict[str, Any] = Field(default_factory=dict, description="Server-controlled user metadata")
    exp: int = Field(description="Expiration timestamp (Unix epoch)")
    iat: int = Field(description="Issued at timestamp (Unix epoch)")
    aud: str | list[str] | None = Field(default=None, description="Audience - intended recipient")
    iss: str | None = Field(default=None, description="Issuer - token issuer URL")

    @property
    def app_role(self) -> str | None:
        return self.app_metadata.get("role") or self.role

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

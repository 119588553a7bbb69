"""Auth request and response models with validation."""

import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Matches the bcrypt input limit enforced by PasswordHasher.
MAX_PASSWORD_BYTES = 72

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AuthRequest(BaseModel):
    """Email and password credentials, used by both signup and signin.

    Attributes:
        email: Well-formed email address (max 254 chars)
        password: Non-empty password (max 72 bytes, the bcrypt limit)
    """

    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def email_well_formed(cls, v: str) -> str:
        """Ensure email has a local part, an @, and a dotted domain."""
        v = v.strip()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Email address is not well-formed")
        return v

    @field_validator("password")
    @classmethod
    def password_within_limit(cls, v: str) -> str:
        """Ensure password fits the bcrypt input limit."""
        if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password cannot exceed {MAX_PASSWORD_BYTES} bytes")
        return v


class TokenPair(BaseModel):
    """Access and refresh tokens issued together.

    Serialized in camelCase (``accessToken``, ``refreshToken``).

    Attributes:
        access_token: Short-lived JWT for API access
        refresh_token: Long-lived, single-use JWT for obtaining a new pair
        token_type: Always "bearer"
        expires_in: Access token lifetime in seconds
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(ge=1, description="Access token lifetime in seconds")


class UserSummary(BaseModel):
    """Compact user representation for API responses."""

    id: UUID
    email: str
    created_at: datetime

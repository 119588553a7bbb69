"""User and token claim models."""

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class User(BaseModel):
    """A registered user as held by the credential store.

    A null ``refresh_token_hash`` means the user has no active session.
    """

    id: UUID
    email: str
    password_hash: str = Field(repr=False)
    refresh_token_hash: Optional[str] = Field(default=None, repr=False)
    created_at: datetime
    updated_at: datetime

    @property
    def has_session(self) -> bool:
        """Whether a refresh token is currently bound to this user."""
        return self.refresh_token_hash is not None


class AccessTokenClaims(BaseModel):
    """Decoded payload of an access token."""

    sub: UUID
    email: str
    iat: int
    exp: int
    typ: Literal["access"] = "access"


class RefreshTokenClaims(BaseModel):
    """Decoded payload of a refresh token.

    ``jti`` makes every issued refresh token unique, even when two are
    signed for the same user within the same second.
    """

    sub: UUID
    email: str
    iat: int
    exp: int
    jti: str
    typ: Literal["refresh"] = "refresh"

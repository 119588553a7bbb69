"""Models package exports."""

from src.models.auth import AuthRequest, TokenPair, UserSummary
from src.models.user import AccessTokenClaims, RefreshTokenClaims, User

__all__ = [
    "AccessTokenClaims",
    "AuthRequest",
    "RefreshTokenClaims",
    "TokenPair",
    "User",
    "UserSummary",
]

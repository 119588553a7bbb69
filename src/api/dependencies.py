"""FastAPI dependencies for bearer-token authentication."""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.exceptions import TokenInvalid
from src.models.user import AccessTokenClaims, User
from src.services.auth_service import AuthService

bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_service(request: Request) -> AuthService:
    """Return the AuthService built during application startup."""
    return request.app.state.auth_service


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """Extract the raw token from an ``Authorization: Bearer`` header.

    Raises:
        TokenInvalid: If the header is missing or not a Bearer credential
    """
    if credentials is None or not credentials.credentials.strip():
        raise TokenInvalid("Missing bearer token")
    return credentials.credentials.strip()


def get_access_claims(
    token: str = Depends(get_bearer_token),
    auth_service: AuthService = Depends(get_auth_service),
) -> AccessTokenClaims:
    """Verify the bearer token as an access token and return its claims."""
    return auth_service.access_verifier.verify(token)


async def get_current_user(
    token: str = Depends(get_bearer_token),
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    """Resolve the bearer access token to the authenticated User.

    Raises:
        TokenInvalid: If the token is invalid or its user no longer exists
        TokenExpired: If the token has expired
    """
    return await auth_service.authenticate(token)

"""Authentication API endpoints."""

from uuid import uuid4

import structlog
from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from src.api.dependencies import (
    get_access_claims,
    get_auth_service,
    get_bearer_token,
    get_current_user,
)
from src.exceptions import (
    AuthError,
    EmailTaken,
    InvalidCredentials,
    SessionNotFound,
    TokenExpired,
    TokenInvalid,
    TokenMismatch,
    Unavailable,
)
from src.models.auth import AuthRequest, TokenPair, UserSummary
from src.models.user import AccessTokenClaims, User
from src.services.auth_service import AuthService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

# Transport status for each error; anything unlisted is a 401.
AUTH_ERROR_STATUS = {
    EmailTaken: status.HTTP_409_CONFLICT,
    InvalidCredentials: status.HTTP_401_UNAUTHORIZED,
    TokenInvalid: status.HTTP_401_UNAUTHORIZED,
    TokenExpired: status.HTTP_401_UNAUTHORIZED,
    SessionNotFound: status.HTTP_401_UNAUTHORIZED,
    TokenMismatch: status.HTTP_401_UNAUTHORIZED,
    Unavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Translate an AuthError into a client-safe JSON response.

    Only the error class name and its generic message reach the client.
    Unavailable errors are logged with their cause server-side.
    """
    correlation_id = getattr(request.state, "correlation_id", None) or str(uuid4())
    status_code = AUTH_ERROR_STATUS.get(type(exc), status.HTTP_401_UNAUTHORIZED)

    if isinstance(exc, Unavailable):
        logger.error(
            "request_failed_store_unavailable",
            path=request.url.path,
            cause=repr(exc.cause),
        )
    else:
        logger.info(
            "auth_request_rejected",
            path=request.url.path,
            error_type=type(exc).__name__,
            status_code=status_code,
        )

    headers = {"X-Correlation-Id": correlation_id}
    if status_code == status.HTTP_401_UNAUTHORIZED:
        headers["WWW-Authenticate"] = "Bearer"

    return JSONResponse(
        status_code=status_code,
        content={
            "error": type(exc).__name__,
            "detail": exc.message,
            "correlation_id": correlation_id,
        },
        headers=headers,
    )


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    request: AuthRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenPair:
    """Register a new account and return its first token pair.

    Raises:
        EmailTaken (409): If the email is already registered in any case variant
    """
    return await auth_service.signup(request.email, request.password)


@router.post("/signin")
async def signin(
    request: AuthRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenPair:
    """Sign in with email and password.

    Any previously issued refresh token stops working.

    Raises:
        InvalidCredentials (401): For an unknown email or wrong password
    """
    return await auth_service.signin(request.email, request.password)


@router.post("/refresh")
async def refresh(
    refresh_token: str = Depends(get_bearer_token),
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenPair:
    """Rotate the refresh token presented as ``Authorization: Bearer``.

    The presented token is single-use. Reusing it revokes the session.

    Raises:
        401: If the token is invalid, expired, stale, or has no session
    """
    return await auth_service.refresh(refresh_token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    claims: AccessTokenClaims = Depends(get_access_claims),
    auth_service: AuthService = Depends(get_auth_service),
) -> Response:
    """End the caller's session. Repeated calls still return 204."""
    await auth_service.logout(claims.sub)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)) -> UserSummary:
    """Get current authenticated user info."""
    return UserSummary(
        id=current_user.id,
        email=current_user.email,
        created_at=current_user.created_at,
    )

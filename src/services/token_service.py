"""JWT issuance and verification for access and refresh tokens."""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Protocol, Union
from uuid import UUID

import jwt
import structlog
from pydantic import ValidationError

from src.config import Settings
from src.exceptions import TokenExpired, TokenInvalid
from src.models.user import AccessTokenClaims, RefreshTokenClaims

logger = structlog.get_logger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
REQUIRED_CLAIMS = ["sub", "iat", "exp"]


def hash_token(token: str) -> str:
    """Return the SHA-256 hex digest stored in place of a raw refresh token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenCodec:
    """Signs and verifies access and refresh tokens with distinct secrets."""

    def __init__(self, settings: Settings):
        self._access_secret = settings.access_token_secret.get_secret_value()
        self._refresh_secret = settings.refresh_token_secret.get_secret_value()
        self.algorithm = settings.jwt_algorithm
        self.access_ttl = timedelta(seconds=settings.access_token_ttl_seconds)
        self.refresh_ttl = timedelta(days=settings.refresh_token_ttl_days)

    def issue_access_token(self, user_id: UUID, email: str) -> str:
        """Create a signed access token.

        Args:
            user_id: User UUID (placed in 'sub' claim)
            email: User email to include in payload

        Returns:
            Encoded JWT string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "email": email,
            "typ": ACCESS_TOKEN_TYPE,
            "iat": now,
            "exp": now + self.access_ttl,
        }
        token = jwt.encode(payload, self._access_secret, algorithm=self.algorithm)
        logger.debug("access_token_issued", user_id=str(user_id))
        return token

    def issue_refresh_token(self, user_id: UUID, email: str) -> str:
        """Create a signed refresh token with a unique ``jti``.

        Args:
            user_id: User UUID (placed in 'sub' claim)
            email: User email to include in payload

        Returns:
            Encoded JWT string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "email": email,
            "typ": REFRESH_TOKEN_TYPE,
            "jti": secrets.token_urlsafe(16),
            "iat": now,
            "exp": now + self.refresh_ttl,
        }
        token = jwt.encode(payload, self._refresh_secret, algorithm=self.algorithm)
        logger.debug("refresh_token_issued", user_id=str(user_id))
        return token

    def verify_access_token(self, token: str) -> AccessTokenClaims:
        """Decode and validate an access token.

        Raises:
            TokenExpired: If the token is past its expiry
            TokenInvalid: If the token is malformed, badly signed, or not an access token
        """
        payload = self._decode(token, self._access_secret, ACCESS_TOKEN_TYPE)
        return self._claims(AccessTokenClaims, payload)

    def verify_refresh_token(self, token: str) -> RefreshTokenClaims:
        """Decode and validate a refresh token.

        Raises:
            TokenExpired: If the token is past its expiry
            TokenInvalid: If the token is malformed, badly signed, or not a refresh token
        """
        payload = self._decode(token, self._refresh_secret, REFRESH_TOKEN_TYPE)
        return self._claims(RefreshTokenClaims, payload)

    def _decode(self, token: str, secret: str, expected_type: str) -> dict:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired()
        except jwt.InvalidTokenError as e:
            logger.debug("token_rejected", expected_type=expected_type, reason=type(e).__name__)
            raise TokenInvalid()

        if payload.get("typ") != expected_type:
            logger.debug("token_rejected", expected_type=expected_type, reason="wrong_type")
            raise TokenInvalid()
        return payload

    @staticmethod
    def _claims(model, payload: dict):
        try:
            return model.model_validate(payload)
        except ValidationError:
            raise TokenInvalid()


class TokenVerifier(Protocol):
    """Something that turns a presented bearer token into verified claims."""

    def verify(self, token: str) -> Union[AccessTokenClaims, RefreshTokenClaims]:
        ...


class AccessTokenVerifier:
    """Verifies bearer tokens on access-protected routes."""

    def __init__(self, codec: TokenCodec):
        self.codec = codec

    def verify(self, token: str) -> AccessTokenClaims:
        return self.codec.verify_access_token(token)


class RefreshTokenVerifier:
    """Verifies bearer tokens presented to the refresh route."""

    def __init__(self, codec: TokenCodec):
        self.codec = codec

    def verify(self, token: str) -> RefreshTokenClaims:
        return self.codec.verify_refresh_token(token)

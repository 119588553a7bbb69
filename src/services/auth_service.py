"""Session and refresh-token rotation management.

Per user, a session is either absent (no stored refresh hash) or active
(one stored hash). Signup and signin start a session, refresh rotates it,
and logout or a detected replay ends it.
"""

import asyncio
import hmac
from uuid import UUID

import structlog

from src.config import Settings
from src.exceptions import (
    InvalidCredentials,
    SessionNotFound,
    TokenInvalid,
    TokenMismatch,
)
from src.models.auth import TokenPair
from src.models.user import User
from src.services.password_hasher import PasswordHasher
from src.services.token_service import (
    AccessTokenVerifier,
    RefreshTokenVerifier,
    TokenCodec,
    TokenVerifier,
    hash_token,
)
from src.services.user_store import UserStore

logger = structlog.get_logger(__name__)


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookup."""
    return email.strip().lower()


class AuthService:
    """Signup, signin, refresh rotation and logout over a credential store."""

    def __init__(
        self,
        store: UserStore,
        hasher: PasswordHasher,
        codec: TokenCodec,
    ):
        self.store = store
        self.hasher = hasher
        self.codec = codec
        self.access_verifier: TokenVerifier = AccessTokenVerifier(codec)
        self.refresh_verifier: TokenVerifier = RefreshTokenVerifier(codec)

    @classmethod
    def from_settings(cls, settings: Settings, store: UserStore) -> "AuthService":
        """Build the service and its collaborators from application settings."""
        return cls(
            store=store,
            hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
            codec=TokenCodec(settings),
        )

    async def signup(self, email: str, password: str) -> TokenPair:
        """Register a new user and start their first session.

        Args:
            email: Email address (case-insensitive, unique)
            password: Plain-text password (will be hashed)

        Returns:
            TokenPair for the new session

        Raises:
            EmailTaken: If the email is already registered
            Unavailable: If the credential store fails
        """
        email = normalize_email(email)
        password_hash = await asyncio.to_thread(self.hasher.hash, password)
        user = await self.store.create_user(email, password_hash)

        logger.info("user_signed_up", user_id=str(user.id))
        return await self._start_session(user)

    async def signin(self, email: str, password: str) -> TokenPair:
        """Authenticate with email and password and replace any prior session.

        Raises:
            InvalidCredentials: For an unknown email or a wrong password alike
            Unavailable: If the credential store fails
        """
        user = await self.store.get_by_email(normalize_email(email))

        if user is None:
            await asyncio.to_thread(self.hasher.dummy_verify, password)
            logger.info("signin_failed")
            raise InvalidCredentials()

        if not await asyncio.to_thread(self.hasher.verify, password, user.password_hash):
            logger.info("signin_failed", user_id=str(user.id))
            raise InvalidCredentials()

        logger.info("user_signed_in", user_id=str(user.id), replaced_session=user.has_session)
        return await self._start_session(user)

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair, invalidating the old one.

        Presenting a token that no longer matches the stored session is
        treated as replay of a stolen token: the session is revoked for
        everyone holding it.

        Raises:
            TokenInvalid: If the token is malformed or badly signed
            TokenExpired: If the token is past its expiry
            SessionNotFound: If the user has no active session
            TokenMismatch: If the token was already rotated out or lost a race
            Unavailable: If the credential store fails
        """
        claims = self.refresh_verifier.verify(refresh_token)
        user = await self.store.get_by_id(claims.sub)

        if user is None or user.refresh_token_hash is None:
            logger.info("refresh_without_session", user_id=str(claims.sub))
            raise SessionNotFound()

        presented_hash = hash_token(refresh_token)
        if not hmac.compare_digest(presented_hash, user.refresh_token_hash):
            await self._revoke_on_replay(user.id, reason="stale_token")
            raise TokenMismatch()

        new_refresh = self.codec.issue_refresh_token(user.id, user.email)
        swapped = await self.store.swap_refresh_hash(
            user.id, presented_hash, hash_token(new_refresh)
        )
        if not swapped:
            await self._revoke_on_replay(user.id, reason="concurrent_refresh")
            raise TokenMismatch()

        logger.info("refresh_token_rotated", user_id=str(user.id))
        return self._pair(user, new_refresh)

    async def logout(self, user_id: UUID) -> None:
        """End the user's session. Safe to call when no session exists."""
        await self.store.set_refresh_hash(user_id, None)
        logger.info("user_logged_out", user_id=str(user_id))

    async def authenticate(self, access_token: str) -> User:
        """Resolve a bearer access token to its user.

        Raises:
            TokenInvalid: If the token is invalid or its user no longer exists
            TokenExpired: If the token is past its expiry
        """
        claims = self.access_verifier.verify(access_token)
        user = await self.store.get_by_id(claims.sub)
        if user is None:
            raise TokenInvalid()
        return user

    async def _start_session(self, user: User) -> TokenPair:
        refresh_token = self.codec.issue_refresh_token(user.id, user.email)
        await self.store.set_refresh_hash(user.id, hash_token(refresh_token))
        return self._pair(user, refresh_token)

    async def _revoke_on_replay(self, user_id: UUID, reason: str) -> None:
        logger.warning("refresh_token_replay_detected", user_id=str(user_id), reason=reason)
        await self.store.set_refresh_hash(user_id, None)

    def _pair(self, user: User, refresh_token: str) -> TokenPair:
        return TokenPair(
            access_token=self.codec.issue_access_token(user.id, user.email),
            refresh_token=refresh_token,
            token_type="bearer",
            expires_in=int(self.codec.access_ttl.total_seconds()),
        )

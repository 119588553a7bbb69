"""Unit tests for AuthService.

Covers the session lifecycle over an in-memory credential store: signup,
signin, single-use refresh rotation with replay detection, logout, and
access-token authentication.
"""

import asyncio
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

import jwt
import pytest

from src.exceptions import (
    EmailTaken,
    InvalidCredentials,
    SessionNotFound,
    TokenExpired,
    TokenInvalid,
    TokenMismatch,
    Unavailable,
)
from src.models.auth import TokenPair
from src.services.auth_service import AuthService, normalize_email
from src.services.token_service import hash_token
from src.services.user_store import InMemoryUserStore

EMAIL = "alice@example.com"
PASSWORD = "correct-horse-battery"


class InterleavingStore(InMemoryUserStore):
    """Yields to the event loop after each read and records swap outcomes."""

    def __init__(self):
        super().__init__()
        self.swap_results = []

    async def get_by_id(self, user_id):
        user = await super().get_by_id(user_id)
        await asyncio.sleep(0)
        return user

    async def swap_refresh_hash(self, user_id, expected_hash, new_hash):
        swapped = await super().swap_refresh_hash(user_id, expected_hash, new_hash)
        self.swap_results.append(swapped)
        return swapped


async def _signup(auth_service, email=EMAIL, password=PASSWORD) -> TokenPair:
    return await auth_service.signup(email, password)


async def _user_for(auth_service, pair: TokenPair):
    claims = auth_service.codec.verify_access_token(pair.access_token)
    return await auth_service.store.get_by_id(claims.sub)


def test_normalize_email():
    assert normalize_email("  Alice@Example.COM ") == "alice@example.com"


class TestSignup:
    """Tests for signup."""

    async def test_returns_token_pair(self, auth_service, settings):
        pair = await _signup(auth_service)
        assert pair.token_type == "bearer"
        assert pair.expires_in == settings.access_token_ttl_seconds
        assert auth_service.codec.verify_access_token(pair.access_token).email == EMAIL
        auth_service.codec.verify_refresh_token(pair.refresh_token)

    async def test_expires_in_follows_configured_ttl(self, settings, store):
        short = settings.model_copy(update={"access_token_ttl_minutes": 5})
        service = AuthService.from_settings(short, store)

        pair = await _signup(service)
        assert pair.expires_in == short.access_token_ttl_seconds == 300

    async def test_stores_hashes_not_raw_values(self, auth_service):
        pair = await _signup(auth_service)
        user = await _user_for(auth_service, pair)

        assert user.password_hash != PASSWORD
        assert auth_service.hasher.verify(PASSWORD, user.password_hash)
        assert user.refresh_token_hash == hash_token(pair.refresh_token)
        assert user.refresh_token_hash != pair.refresh_token

    async def test_email_is_normalized(self, auth_service):
        pair = await _signup(auth_service, email="  Bob@Example.COM")
        user = await _user_for(auth_service, pair)
        assert user.email == "bob@example.com"

    async def test_duplicate_email_any_case_is_taken(self, auth_service):
        await _signup(auth_service, email="A@x.com")
        with pytest.raises(EmailTaken):
            await _signup(auth_service, email="a@x.com")


class TestSignin:
    """Tests for signin."""

    async def test_correct_password_succeeds(self, auth_service):
        await _signup(auth_service)
        pair = await auth_service.signin(EMAIL, PASSWORD)
        assert auth_service.codec.verify_access_token(pair.access_token).email == EMAIL

    async def test_email_case_insensitive(self, auth_service):
        await _signup(auth_service)
        await auth_service.signin(EMAIL.upper(), PASSWORD)

    async def test_wrong_password_is_invalid_credentials(self, auth_service):
        await _signup(auth_service)
        with pytest.raises(InvalidCredentials):
            await auth_service.signin(EMAIL, "wrong-password")

    async def test_unknown_email_is_same_error(self, auth_service):
        with pytest.raises(InvalidCredentials) as unknown:
            await auth_service.signin("ghost@example.com", PASSWORD)

        await _signup(auth_service)
        with pytest.raises(InvalidCredentials) as wrong:
            await auth_service.signin(EMAIL, "wrong-password")

        assert unknown.value.message == wrong.value.message

    async def test_signin_replaces_previous_session(self, auth_service):
        first = await _signup(auth_service)
        second = await auth_service.signin(EMAIL, PASSWORD)

        user = await _user_for(auth_service, second)
        assert user.refresh_token_hash == hash_token(second.refresh_token)

        with pytest.raises(TokenMismatch):
            await auth_service.refresh(first.refresh_token)


class TestRefresh:
    """Tests for refresh rotation and replay detection."""

    async def test_rotates_to_new_pair(self, auth_service):
        pair = await _signup(auth_service)
        rotated = await auth_service.refresh(pair.refresh_token)

        assert rotated.refresh_token != pair.refresh_token
        user = await _user_for(auth_service, rotated)
        assert user.refresh_token_hash == hash_token(rotated.refresh_token)

    async def test_rotated_token_can_refresh_again(self, auth_service):
        pair = await _signup(auth_service)
        second = await auth_service.refresh(pair.refresh_token)
        third = await auth_service.refresh(second.refresh_token)
        assert third.refresh_token not in (pair.refresh_token, second.refresh_token)

    async def test_reuse_is_mismatch_and_revokes_session(self, auth_service):
        pair = await _signup(auth_service)
        rotated = await auth_service.refresh(pair.refresh_token)

        with pytest.raises(TokenMismatch):
            await auth_service.refresh(pair.refresh_token)

        user = await _user_for(auth_service, rotated)
        assert user.refresh_token_hash is None

        # The legitimate holder's newer token is dead too.
        with pytest.raises(SessionNotFound):
            await auth_service.refresh(rotated.refresh_token)

    async def test_after_logout_is_session_not_found(self, auth_service):
        pair = await _signup(auth_service)
        user = await _user_for(auth_service, pair)

        await auth_service.logout(user.id)

        with pytest.raises(SessionNotFound):
            await auth_service.refresh(pair.refresh_token)

    async def test_expired_token_is_token_expired(self, auth_service, settings):
        pair = await _signup(auth_service)
        user = await _user_for(auth_service, pair)

        now = datetime.now(timezone.utc)
        expired = jwt.encode(
            {
                "sub": str(user.id),
                "email": user.email,
                "typ": "refresh",
                "jti": "expired-jti",
                "iat": now - timedelta(days=8),
                "exp": now - timedelta(seconds=1),
            },
            settings.refresh_token_secret.get_secret_value(),
            algorithm=settings.jwt_algorithm,
        )
        # Make the stored hash match so only expiry can fail.
        await auth_service.store.set_refresh_hash(user.id, hash_token(expired))

        with pytest.raises(TokenExpired):
            await auth_service.refresh(expired)

    async def test_garbage_token_is_invalid(self, auth_service):
        with pytest.raises(TokenInvalid):
            await auth_service.refresh("garbage")

    async def test_access_token_cannot_refresh(self, auth_service):
        pair = await _signup(auth_service)
        with pytest.raises(TokenInvalid):
            await auth_service.refresh(pair.access_token)

    async def test_unknown_user_is_session_not_found(self, auth_service):
        token = auth_service.codec.issue_refresh_token(uuid4(), "nobody@example.com")
        with pytest.raises(SessionNotFound):
            await auth_service.refresh(token)

    async def test_concurrent_refresh_exactly_one_wins(self, hasher, codec):
        store = InterleavingStore()
        auth_service = AuthService(store=store, hasher=hasher, codec=codec)
        pair = await _signup(auth_service)
        user = await _user_for(auth_service, pair)

        results = await asyncio.gather(
            auth_service.refresh(pair.refresh_token),
            auth_service.refresh(pair.refresh_token),
            return_exceptions=True,
        )

        # Both callers read the same stored hash and reached the swap.
        assert sorted(store.swap_results) == [False, True]

        successes = [r for r in results if isinstance(r, TokenPair)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], TokenMismatch)

        # The loser revoked the session, so the winner's token is dead too.
        stored = await store.get_by_id(user.id)
        assert stored.refresh_token_hash is None
        with pytest.raises(SessionNotFound):
            await auth_service.refresh(successes[0].refresh_token)

    async def test_lost_swap_revokes_session(self, auth_service):
        """A store-level CAS loss is treated like a replay."""
        pair = await _signup(auth_service)
        user = await _user_for(auth_service, pair)
        auth_service.store.swap_refresh_hash = AsyncMock(return_value=False)

        with pytest.raises(TokenMismatch):
            await auth_service.refresh(pair.refresh_token)

        stored = await auth_service.store.get_by_id(user.id)
        assert stored.refresh_token_hash is None


class TestLogout:
    """Tests for logout."""

    async def test_clears_session(self, auth_service):
        pair = await _signup(auth_service)
        user = await _user_for(auth_service, pair)

        await auth_service.logout(user.id)

        stored = await auth_service.store.get_by_id(user.id)
        assert stored.refresh_token_hash is None

    async def test_is_idempotent(self, auth_service):
        pair = await _signup(auth_service)
        user = await _user_for(auth_service, pair)

        await auth_service.logout(user.id)
        await auth_service.logout(user.id)

    async def test_unknown_user_is_not_an_error(self, auth_service):
        await auth_service.logout(uuid4())

    async def test_signin_after_logout_starts_new_session(self, auth_service):
        pair = await _signup(auth_service)
        user = await _user_for(auth_service, pair)
        await auth_service.logout(user.id)

        fresh = await auth_service.signin(EMAIL, PASSWORD)
        await auth_service.refresh(fresh.refresh_token)


class TestAuthenticate:
    """Tests for resolving access tokens to users."""

    async def test_returns_user(self, auth_service):
        pair = await _signup(auth_service)
        user = await auth_service.authenticate(pair.access_token)
        assert user.email == EMAIL

    async def test_still_valid_after_logout(self, auth_service):
        """Access tokens are not revocable; only their lifetime bounds them."""
        pair = await _signup(auth_service)
        user = await auth_service.authenticate(pair.access_token)
        await auth_service.logout(user.id)
        assert (await auth_service.authenticate(pair.access_token)).id == user.id

    async def test_unknown_user_is_invalid(self, auth_service):
        token = auth_service.codec.issue_access_token(uuid4(), "gone@example.com")
        with pytest.raises(TokenInvalid):
            await auth_service.authenticate(token)

    async def test_refresh_token_rejected(self, auth_service):
        pair = await _signup(auth_service)
        with pytest.raises(TokenInvalid):
            await auth_service.authenticate(pair.refresh_token)


class TestStoreFailures:
    """Store failures propagate as Unavailable."""

    async def test_signin_unavailable(self, hasher, codec):
        store = AsyncMock()
        store.get_by_email.side_effect = Unavailable()
        service = AuthService(store=store, hasher=hasher, codec=codec)

        with pytest.raises(Unavailable):
            await service.signin(EMAIL, PASSWORD)

    async def test_from_settings_uses_configured_rounds(self, settings, store):
        service = AuthService.from_settings(settings, store)
        assert service.hasher.rounds == settings.bcrypt_rounds
        assert service.store is store


class TestPasswordHashingThreads:
    """bcrypt work runs in worker threads, off the event loop thread."""

    @staticmethod
    def _record_thread(monkeypatch, hasher, name, threads):
        original = getattr(hasher, name)

        def recording(*args):
            threads.append(threading.get_ident())
            return original(*args)

        monkeypatch.setattr(hasher, name, recording)

    async def test_signup_and_signin(self, auth_service, monkeypatch):
        threads = []
        for name in ("hash", "verify", "dummy_verify"):
            self._record_thread(monkeypatch, auth_service.hasher, name, threads)

        await _signup(auth_service)
        await auth_service.signin(EMAIL, PASSWORD)
        with pytest.raises(InvalidCredentials):
            await auth_service.signin("ghost@example.com", PASSWORD)

        assert len(threads) == 3
        assert threading.get_ident() not in threads

    async def test_signin_does_not_block_other_requests(self, auth_service, monkeypatch):
        await _signup(auth_service)
        started = threading.Event()
        release = threading.Event()
        original = auth_service.hasher.verify

        def slow_verify(password, password_hash):
            started.set()
            release.wait(timeout=5)
            return original(password, password_hash)

        monkeypatch.setattr(auth_service.hasher, "verify", slow_verify)

        signin = asyncio.create_task(auth_service.signin(EMAIL, PASSWORD))
        while not started.is_set():
            await asyncio.sleep(0.01)

        # The loop still serves other work while bcrypt runs.
        user = await auth_service.store.get_by_email(EMAIL)
        assert user is not None
        assert not signin.done()

        release.set()
        assert isinstance(await signin, TokenPair)

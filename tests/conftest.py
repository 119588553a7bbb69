"""Pytest configuration and fixtures."""

import os
from typing import Generator
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing app
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret-0123456789abcdef")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret-fedcba9876543210")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from src.config import Settings  # noqa: E402
from src.services.auth_service import AuthService  # noqa: E402
from src.services.password_hasher import PasswordHasher  # noqa: E402
from src.services.token_service import TokenCodec  # noqa: E402
from src.services.user_store import InMemoryUserStore  # noqa: E402

ACCESS_SECRET = "unit-access-secret-0123456789abcdefghij"
REFRESH_SECRET = "unit-refresh-secret-0123456789abcdefghij"


class MockConnection:
    """Mock asyncpg connection with common query methods."""

    def __init__(self):
        self.execute = AsyncMock()
        self.fetchrow = AsyncMock()
        self.fetchval = AsyncMock()
        self.fetch = AsyncMock()


class MockPool:
    """Mock asyncpg pool with acquire() context manager."""

    def __init__(self, conn: MockConnection):
        self._conn = conn

    def acquire(self):
        return _MockPoolAcquire(self._conn)


class _MockPoolAcquire:
    def __init__(self, conn):
        self._conn = conn

    async def __aenter__(self):
        return self._conn

    async def __aexit__(self, *args):
        pass


@pytest.fixture
def settings() -> Settings:
    """Deterministic settings independent of the process environment."""
    return Settings(
        access_token_secret=ACCESS_SECRET,
        refresh_token_secret=REFRESH_SECRET,
        bcrypt_rounds=4,
        store_backend="memory",
        _env_file=None,
    )


@pytest.fixture
def hasher() -> PasswordHasher:
    """bcrypt hasher at the cheapest cost factor."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def codec(settings: Settings) -> TokenCodec:
    return TokenCodec(settings)


@pytest.fixture
def store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def auth_service(store, hasher, codec) -> AuthService:
    """AuthService over an empty in-memory store."""
    return AuthService(store=store, hasher=hasher, codec=codec)


@pytest.fixture
def mock_pool():
    """Return (pool, connection) pair for database mocking."""
    conn = MockConnection()
    pool = MockPool(conn)
    return pool, conn


@pytest.fixture
def client() -> Generator:
    """TestClient over the real app, backed by a fresh in-memory store."""
    from fastapi.testclient import TestClient

    from src.main import app

    with TestClient(app) as tc:
        yield tc

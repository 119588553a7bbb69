"""Credential store: persistence of users and their session hashes.

Two implementations share the ``UserStore`` protocol: ``PostgresUserStore``
for deployments (asyncpg) and ``InMemoryUserStore`` for local runs and
tests. Both enforce refresh-hash rotation as a single compare-and-set so
that concurrent refreshes for one user are serialized at the store.
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Optional, Protocol, TypeVar
from uuid import UUID, uuid4

import asyncpg
import structlog

from src.database import get_pool
from src.exceptions import EmailTaken, Unavailable
from src.models.user import User

logger = structlog.get_logger(__name__)

T = TypeVar("T")

USER_COLUMNS = "id, email, password_hash, refresh_token_hash, created_at, updated_at"


class UserStore(Protocol):
    """Operations the auth service needs from the credential store."""

    async def create_user(self, email: str, password_hash: str) -> User:
        ...

    async def get_by_email(self, email: str) -> Optional[User]:
        ...

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        ...

    async def set_refresh_hash(self, user_id: UUID, token_hash: Optional[str]) -> None:
        ...

    async def swap_refresh_hash(
        self, user_id: UUID, expected_hash: str, new_hash: str
    ) -> bool:
        ...

    async def health_check(self) -> bool:
        ...


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        password_hash=row["password_hash"],
        refresh_token_hash=row["refresh_token_hash"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresUserStore:
    """asyncpg-backed credential store.

    Every call runs under ``timeout`` seconds. Connectivity and database
    failures surface as ``Unavailable``.
    """

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout

    async def _run(self, operation: str, coro: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncpg.UniqueViolationError:
            raise
        except (
            asyncpg.PostgresError,
            asyncpg.InterfaceError,
            asyncpg.exceptions.InternalClientError,
            OSError,
            RuntimeError,
            asyncio.TimeoutError,
        ) as e:
            logger.error(
                "store_unavailable",
                operation=operation,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise Unavailable(cause=e) from e

    async def create_user(self, email: str, password_hash: str) -> User:
        """Insert a new user with no active session.

        Raises:
            EmailTaken: If the email already exists (case-insensitive)
            Unavailable: If the store cannot be reached
        """
        user_id = uuid4()
        now = datetime.now(timezone.utc)

        async def _insert():
            pool = await get_pool()
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO users (id, email, password_hash, refresh_token_hash, created_at, updated_at)
                    VALUES ($1, $2, $3, NULL, $4, $5)
                    """,
                    user_id,
                    email,
                    password_hash,
                    now,
                    now,
                )

        try:
            await self._run("create_user", _insert())
        except asyncpg.UniqueViolationError:
            raise EmailTaken()

        return User(
            id=user_id,
            email=email,
            password_hash=password_hash,
            refresh_token_hash=None,
            created_at=now,
            updated_at=now,
        )

    async def get_by_email(self, email: str) -> Optional[User]:
        """Get a user by email (case-insensitive)."""

        async def _fetch():
            pool = await get_pool()
            async with pool.acquire() as conn:
                return await conn.fetchrow(
                    f"SELECT {USER_COLUMNS} FROM users WHERE LOWER(email) = LOWER($1)",
                    email,
                )

        row = await self._run("get_by_email", _fetch())
        return _row_to_user(row) if row is not None else None

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        """Get a user by UUID."""

        async def _fetch():
            pool = await get_pool()
            async with pool.acquire() as conn:
                return await conn.fetchrow(
                    f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
                    user_id,
                )

        row = await self._run("get_by_id", _fetch())
        return _row_to_user(row) if row is not None else None

    async def set_refresh_hash(self, user_id: UUID, token_hash: Optional[str]) -> None:
        """Unconditionally set (or clear, with None) the stored refresh hash."""

        async def _update():
            pool = await get_pool()
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    UPDATE users
                    SET refresh_token_hash = $1, updated_at = $2
                    WHERE id = $3
                    """,
                    token_hash,
                    datetime.now(timezone.utc),
                    user_id,
                )

        await self._run("set_refresh_hash", _update())

    async def swap_refresh_hash(
        self, user_id: UUID, expected_hash: str, new_hash: str
    ) -> bool:
        """Replace the refresh hash only if it still equals ``expected_hash``.

        Returns:
            True if this call won the swap, False if the stored hash had
            already changed
        """

        async def _update():
            pool = await get_pool()
            async with pool.acquire() as conn:
                return await conn.execute(
                    """
                    UPDATE users
                    SET refresh_token_hash = $1, updated_at = $2
                    WHERE id = $3 AND refresh_token_hash = $4
                    """,
                    new_hash,
                    datetime.now(timezone.utc),
                    user_id,
                    expected_hash,
                )

        result = await self._run("swap_refresh_hash", _update())
        return result == "UPDATE 1"

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            pool = await get_pool()
            async with pool.acquire() as conn:
                result = await conn.fetchval("SELECT 1")
                return result == 1
        except Exception as e:
            logger.error("store_health_check_failed", error=str(e))
            return False


class InMemoryUserStore:
    """Process-local credential store.

    A single ``asyncio.Lock`` guards all writes so the refresh-hash swap is
    atomic with respect to other coroutines. Only suitable for a single
    process.
    """

    def __init__(self):
        self._users: dict[UUID, User] = {}
        self._ids_by_email: dict[str, UUID] = {}
        self._lock = asyncio.Lock()

    async def create_user(self, email: str, password_hash: str) -> User:
        key = email.lower()
        async with self._lock:
            if key in self._ids_by_email:
                raise EmailTaken()
            now = datetime.now(timezone.utc)
            user = User(
                id=uuid4(),
                email=email,
                password_hash=password_hash,
                refresh_token_hash=None,
                created_at=now,
                updated_at=now,
            )
            self._users[user.id] = user
            self._ids_by_email[key] = user.id
        return user.model_copy()

    async def get_by_email(self, email: str) -> Optional[User]:
        user_id = self._ids_by_email.get(email.lower())
        if user_id is None:
            return None
        return self._users[user_id].model_copy()

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        user = self._users.get(user_id)
        return user.model_copy() if user is not None else None

    async def set_refresh_hash(self, user_id: UUID, token_hash: Optional[str]) -> None:
        async with self._lock:
            user = self._users.get(user_id)
            if user is not None:
                self._users[user_id] = user.model_copy(
                    update={
                        "refresh_token_hash": token_hash,
                        "updated_at": datetime.now(timezone.utc),
                    }
                )

    async def swap_refresh_hash(
        self, user_id: UUID, expected_hash: str, new_hash: str
    ) -> bool:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None or user.refresh_token_hash != expected_hash:
                return False
            self._users[user_id] = user.model_copy(
                update={
                    "refresh_token_hash": new_hash,
                    "updated_at": datetime.now(timezone.utc),
                }
            )
            return True

    async def health_check(self) -> bool:
        return True

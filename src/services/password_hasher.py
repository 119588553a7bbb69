"""Password hashing with bcrypt."""

import bcrypt

# bcrypt only considers the first 72 bytes of input.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Hash and verify passwords with a configurable bcrypt cost factor."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds
        # Reference hash used to equalize signin timing for unknown emails.
        self._dummy_hash = bcrypt.hashpw(
            b"dummy-password-for-timing", bcrypt.gensalt(rounds=rounds)
        )

    def hash(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain-text password to hash

        Returns:
            Bcrypt hash string

        Raises:
            ValueError: If the password is empty or longer than 72 bytes
        """
        encoded = self._encode(password)
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(encoded, salt).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password against a bcrypt hash.

        Args:
            password: Plain-text password to check
            password_hash: Bcrypt hash to verify against

        Returns:
            True if the password matches, False otherwise (including for
            unusable input or a malformed stored hash)
        """
        try:
            encoded = self._encode(password)
            return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
        except ValueError:
            return False

    def dummy_verify(self, password: str) -> None:
        """Spend the same time as a real verify without checking anything."""
        try:
            bcrypt.checkpw(self._encode(password), self._dummy_hash)
        except ValueError:
            pass

    @staticmethod
    def _encode(password: str) -> bytes:
        if not password:
            raise ValueError("Password cannot be empty")
        encoded = password.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password cannot exceed {MAX_PASSWORD_BYTES} bytes")
        return encoded

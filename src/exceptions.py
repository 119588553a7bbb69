"""Authentication error taxonomy.

Every error carries a client-safe ``message``. The gateway maps each type
to an HTTP status and never echoes anything beyond that message.

Hierarchy:
    AuthError
    ├── EmailTaken
    ├── InvalidCredentials
    ├── TokenInvalid
    ├── TokenExpired
    ├── SessionNotFound
    ├── TokenMismatch
    └── Unavailable
"""

from typing import Optional


class AuthError(Exception):
    """Base class for all authentication errors."""

    default_message = "Authentication failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class EmailTaken(AuthError):
    """Raised on signup when the email is already registered (case-insensitive)."""

    default_message = "Email is already registered"


class InvalidCredentials(AuthError):
    """Raised on signin for an unknown email or a wrong password.

    Both cases share this error so callers cannot enumerate accounts.
    """

    default_message = "Invalid email or password"


class TokenInvalid(AuthError):
    """Raised when a token is malformed, badly signed, or of the wrong type."""

    default_message = "Invalid token"


class TokenExpired(AuthError):
    """Raised when a well-formed token is past its expiry."""

    default_message = "Token has expired"


class SessionNotFound(AuthError):
    """Raised on refresh when the user has no active session."""

    default_message = "No active session"


class TokenMismatch(AuthError):
    """Raised when a refresh token does not match the stored session.

    This signals reuse of a rotated-out token. The session is revoked
    before this is raised.
    """

    default_message = "Refresh token is no longer valid"


class Unavailable(AuthError):
    """Raised when the credential store cannot be reached or fails.

    Attributes:
        cause: The underlying exception, for server-side logging only
    """

    default_message = "Service temporarily unavailable"

    def __init__(self, message: Optional[str] = None, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)

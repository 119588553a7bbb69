"""Services package exports."""

from src.services.auth_service import AuthService
from src.services.logging_service import configure_logging, get_logger
from src.services.password_hasher import PasswordHasher
from src.services.token_service import TokenCodec

__all__ = [
    "AuthService",
    "PasswordHasher",
    "TokenCodec",
    "configure_logging",
    "get_logger",
]

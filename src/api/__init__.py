"""API package exports."""

from src.api.auth import router as auth_router
from src.api.middleware import CorrelationIdMiddleware
from src.api.routes import router

__all__ = ["auth_router", "router", "CorrelationIdMiddleware"]

"""Service-level routes."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from src.api.dependencies import get_auth_service
from src.services.auth_service import AuthService

router = APIRouter()


@router.get("/health")
async def health_check(auth_service: AuthService = Depends(get_auth_service)) -> dict:
    """Health check endpoint.

    Returns:
        Status, timestamp in ISO8601 format, and credential store health
    """
    store_healthy = await auth_service.store.health_check()
    return {
        "status": "healthy" if store_healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "store": "healthy" if store_healthy else "unhealthy",
    }

"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.api.auth import auth_error_handler
from src.api.auth import router as auth_router
from src.api.middleware import CorrelationIdMiddleware
from src.api.routes import router
from src.config import get_settings
from src.exceptions import AuthError
from src.services.auth_service import AuthService
from src.services.logging_service import configure_logging, get_logger
from src.services.user_store import InMemoryUserStore, PostgresUserStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("main")

    if settings.store_backend == "postgres":
        from src.database import close_database, init_database, run_migrations

        try:
            await init_database(settings)
            await run_migrations()
            logger.info("database_initialized")
        except Exception as e:
            logger.warning(
                "database_initialization_failed",
                error=str(e),
                note="Continuing without database - auth requests will return 503",
            )
        store = PostgresUserStore(timeout=settings.store_timeout_seconds)
    else:
        store = InMemoryUserStore()

    app.state.auth_service = AuthService.from_settings(settings, store)

    logger.info(
        "application_started",
        store_backend=settings.store_backend,
        access_ttl_minutes=settings.access_token_ttl_minutes,
        refresh_ttl_days=settings.refresh_token_ttl_days,
        log_level=settings.log_level,
    )

    yield

    if settings.store_backend == "postgres":
        await close_database()

    logger.info("application_shutdown")


app = FastAPI(
    title="Auth Service",
    description="Signup, signin, logout and refresh-token rotation",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with a 400 and the first failing field."""
    correlation_id = getattr(request.state, "correlation_id", None) or str(uuid4())
    logger = structlog.get_logger()

    errors = exc.errors()
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
        message = first_error.get("msg", "Validation failed")
        detail = f"Field '{field}': {message}"
    else:
        detail = "Request validation failed"

    # Never log the rejected input itself: it may hold a password.
    logger.warning(
        "validation_error",
        correlation_id=correlation_id,
        detail=detail,
    )

    return JSONResponse(
        status_code=400,
        content={
            "error": "Validation error",
            "detail": detail,
            "correlation_id": correlation_id,
        },
        headers={"X-Correlation-Id": correlation_id},
    )


app.add_exception_handler(AuthError, auth_error_handler)

# Correlation ID middleware for request tracking and observability
app.add_middleware(CorrelationIdMiddleware)

app.include_router(auth_router)
app.include_router(router)

"""
Token Lifecycle service - FastAPI Application.

This is the main entry point for the Token Lifecycle service, providing a
FastAPI application with authentication and user administration endpoints.
"""
import asyncio
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from token_lifecycle import __version__
from token_lifecycle.api import router as auth_router
from token_lifecycle.api import users_router
from token_lifecycle.config import settings
from token_lifecycle.database import init_db
from token_lifecycle.dependencies import get_auth_service, reset_dependencies
from token_lifecycle.errors import AuthError, UnauthorizedError, UnavailableError
from token_lifecycle.token import validate_signing_config

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format=settings.LOG_FORMAT,
)
logger = logging.getLogger("token_lifecycle")

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    debug=settings.DEBUG,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_reaper_task: Optional[asyncio.Task] = None


# Exception handlers
@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    """Translate service error kinds into status codes."""
    headers = None
    if isinstance(exc, UnauthorizedError):
        headers = {"WWW-Authenticate": "Bearer"}
    elif isinstance(exc, UnavailableError):
        headers = {"Retry-After": "1"}
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=headers,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {str(exc)}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# Health check endpoint
@app.get(
    "/health",
    tags=["health"],
    summary="Health check",
    description="Check if the API is running.",
)
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "version": __version__}


# Include routers
app.include_router(auth_router, prefix="/auth")
app.include_router(users_router, prefix="/users")


async def reap_refresh_tokens(interval_seconds: float) -> None:
    """Periodically delete expired refresh token records."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await run_in_threadpool(get_auth_service().ledger.reap_expired)
        except UnavailableError:
            logger.warning("Refresh token reaping skipped: storage unavailable")
        except Exception:
            logger.error("Refresh token reaping failed", exc_info=True)


# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize the application on startup."""
    global _reaper_task
    logger.info("Initializing Token Lifecycle API")

    # Refuse to start with unusable signing secrets
    validate_signing_config(settings.JWT_ACCESS_SECRET_KEY, settings.JWT_REFRESH_SECRET_KEY)

    # Initialize database
    init_db(settings.DATABASE_URL)
    reset_dependencies()

    if settings.LEDGER_REAP_INTERVAL_SECONDS > 0:
        _reaper_task = asyncio.create_task(reap_refresh_tokens(settings.LEDGER_REAP_INTERVAL_SECONDS))

    logger.info("Token Lifecycle API initialized")


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Clean up resources on shutdown."""
    global _reaper_task
    logger.info("Shutting down Token Lifecycle API")
    if _reaper_task is not None:
        _reaper_task.cancel()
        try:
            await _reaper_task
        except asyncio.CancelledError:
            pass
        _reaper_task = None


# Run the application if executed directly
if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
    )

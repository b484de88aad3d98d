# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""GrantCore - Main Application Module."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from beartype import beartype
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.middleware import RestrictedPathMiddleware
from .api.v1 import router as v1_router
from .core.auth.oauth2.errors import OAuth2Error, OAuth2ErrorCode
from .core.cache import get_cache
from .core.config import get_settings
from .core.database import get_database
from .core.logging_utils import configure_logging, get_logger, resolve_level

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle - startup and shutdown."""
    # Startup
    settings = get_settings()
    configure_logging(level=resolve_level(settings.log_level))
    logger.info("Starting GrantCore in %s mode", settings.api_env)
    settings.warn_on_token_lifetimes()

    # Initialize database pool
    db = get_database()
    await db.connect()
    logger.info("Database connection pool initialized")

    # Initialize Redis pool
    cache = get_cache()
    await cache.connect()
    logger.info("Redis connection pool initialized")

    yield

    # Shutdown
    logger.info("Shutting down GrantCore")

    await db.disconnect()
    logger.info("Database connections closed")

    await cache.disconnect()
    logger.info("Redis connections closed")


async def oauth2_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render an OAuth2Error as the standard error body."""
    assert isinstance(exc, OAuth2Error)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=exc.headers or None,
    )


async def server_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log an unexpected failure and answer with ``server_error``."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=OAuth2Error(OAuth2ErrorCode.SERVER_ERROR).to_dict(),
    )


@beartype
def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    app = FastAPI(
        title="GrantCore",
        description="Delegated access authorization server",
        version=__version__,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    app.add_exception_handler(OAuth2Error, oauth2_error_handler)
    app.add_exception_handler(Exception, server_error_handler)

    # Delegated tokens never reach account management
    app.add_middleware(
        RestrictedPathMiddleware,
        restricted_prefixes=tuple(settings.oauth_restricted_path_prefixes),
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routers
    app.include_router(v1_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint returning API information."""
        return {
            "name": settings.app_name,
            "version": __version__,
            "status": "operational",
            "environment": settings.api_env,
        }

    return app


# Create the application instance
app = create_app()


@beartype
def main() -> None:
    """Run the main application entry point."""
    settings = get_settings()

    uvicorn.run(
        "grant_core.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level="info" if not settings.is_production else "error",
    )


if __name__ == "__main__":
    main()

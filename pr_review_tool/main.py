"""
FastAPI Application Entry Point

This module creates and configures the FastAPI application.
It sets up all routes, middleware, and exception handlers.

Design Decisions:
- Use lifespan events for startup/shutdown
- Add CORS middleware for browser clients
- Include comprehensive error handling
- Expose health check endpoints
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pr_review_tool import __version__
from pr_review_tool.api import router as api_router
from pr_review_tool.config import get_settings
from pr_review_tool.logging_config import get_logger, setup_logging
from pr_review_tool.webhook import router as webhook_router

# Initialize logging first
setup_logging()

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events for the application.
    """
    settings = get_settings()
    logger.info(
        "Starting PR Review Tool",
        host=settings.host,
        port=settings.port
    )

    try:
        settings.get_token()
        logger.info("Configuration validated successfully")
    except ValueError as e:
        # Health endpoints still work; /ready reports the problem
        logger.warning("GitHub token missing", error=str(e))

    yield

    logger.info("Shutting down PR Review Tool")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title="PR Review Tool",
        description="Pattern-based GitHub pull request reviewer and repository statistics",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(webhook_router)
    app.include_router(api_router)

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request,
        exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            error_type=type(exc).__name__
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "type": type(exc).__name__
            }
        )

    @app.get("/")
    async def root():
        """Root endpoint with basic info."""
        return {
            "name": "PR Review Tool",
            "version": __version__,
            "status": "running",
            "docs": "/docs"
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint for load balancers and monitors."""
        return {
            "status": "healthy",
            "service": "pr-review-tool",
            "version": __version__
        }

    @app.get("/ready")
    async def readiness_check():
        """
        Readiness check endpoint.

        Ready means a GitHub token is configured.
        """
        try:
            get_settings().get_token()
        except ValueError as e:
            logger.error("Readiness check failed", error=str(e))
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Not ready: {e}"
            )

        return {
            "status": "ready",
            "service": "pr-review-tool"
        }

    return app


# Create the application instance
app = create_app()

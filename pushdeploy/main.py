"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pushdeploy import __version__
from pushdeploy.api.middleware import (
    DEPLOYMENT_ID_HEADER,
    REQUEST_ID_HEADER,
    RequestLoggingMiddleware,
)
from pushdeploy.api.v1.router import router as v1_router
from pushdeploy.config import Settings, get_settings
from pushdeploy.core.exceptions import InvalidRepoUrlError, PushDeployError
from pushdeploy.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

# Errors the caller can fix; everything else is reported as a server fault
CLIENT_ERRORS: tuple[type[PushDeployError], ...] = (InvalidRepoUrlError,)


def error_response(
    status_code: int,
    code: str,
    message: str,
    **extra: Any,
) -> JSONResponse:
    """Render the ``{"error": {...}}`` envelope shared by every handler."""
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, **extra}},
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    settings = get_settings()
    configure_logging(settings)
    logger.info(
        "application.starting",
        version=__version__,
        environment=settings.app_env,
        storage_configured=settings.storage_configured,
        fetch_strategy=settings.fetch_strategy,
        work_root=settings.work_root,
    )
    if not settings.storage_configured:
        logger.warning("application.storage_missing", region=settings.aws_region)

    yield

    # Shutdown
    logger.info("application.shutdown")


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Map pipeline and unexpected errors onto the JSON error envelope."""

    @app.exception_handler(PushDeployError)
    async def pushdeploy_error_handler(
        request: Request, exc: PushDeployError
    ) -> JSONResponse:
        """Handle application-specific errors."""
        if isinstance(exc, CLIENT_ERRORS):
            status_code = status.HTTP_400_BAD_REQUEST
        else:
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
            logger.error(
                "request.failed",
                path=request.url.path,
                stage=exc.stage,
                error=exc.message,
            )

        return error_response(
            status_code,
            type(exc).__name__.upper(),
            exc.message,
            details=exc.details,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected errors."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            path=request.url.path,
            exc_info=True,
        )

        if settings.is_development:
            return error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "INTERNAL_ERROR",
                str(exc),
                type=type(exc).__name__,
            )
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "An unexpected error occurred",
        )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="pushdeploy API",
        description="Build a GitHub repository and publish its static output to S3",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

    # Add middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        # Browser clients read the id of a streaming deploy from the headers
        expose_headers=[DEPLOYMENT_ID_HEADER, REQUEST_ID_HEADER],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # Register exception handlers
    register_exception_handlers(app, settings)

    # Include routers
    app.include_router(v1_router)

    return app


# Create app instance
app = create_app()


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "pushdeploy.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )


if __name__ == "__main__":
    run()

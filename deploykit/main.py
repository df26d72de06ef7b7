"""FastAPI application entry point for the deployment dashboard."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from deploykit import __version__
from deploykit.api.middleware import DeployContextMiddleware
from deploykit.api.v1.router import router as v1_router
from deploykit.config import settings
from deploykit.core.exceptions import (
    ConfigurationError,
    DeployKitError,
    LockHeldError,
    PipelineStateError,
)
from deploykit.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

ERROR_STATUS = {
    LockHeldError: status.HTTP_409_CONFLICT,
    PipelineStateError: status.HTTP_409_CONFLICT,
    ConfigurationError: status.HTTP_400_BAD_REQUEST,
}


def error_status(exc: DeployKitError) -> int:
    for exc_type, code in ERROR_STATUS.items():
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    configure_logging()
    logger.info(
        "application.starting",
        version=__version__,
        environment=settings.app_env,
        project_root=str(settings.project_path),
    )

    yield

    logger.info("application.shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="deploykit",
        description="Deployment orchestration and infrastructure reconciliation dashboard",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(DeployContextMiddleware)

    @app.exception_handler(DeployKitError)
    async def deploykit_error_handler(
        request: Request, exc: DeployKitError
    ) -> JSONResponse:
        """Handle application-specific errors."""
        return JSONResponse(
            status_code=error_status(exc),
            content={
                "error": {
                    "code": type(exc).__name__.upper(),
                    "message": exc.message,
                    "details": exc.details,
                }
            },
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        """Report an error no deployment step turned into a DeployKitError."""
        request_id = getattr(request.state, "request_id", None)
        logger.error(
            "api.unexpected_error",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            exc_info=True,
        )
        details: dict[str, str | None] = {"request_id": request_id}
        if settings.is_development:
            details["type"] = type(exc).__name__
        message = str(exc) if settings.is_development else "Unexpected deploykit error"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": {"code": "INTERNAL_ERROR", "message": message, "details": details}},
        )

    app.include_router(v1_router)

    return app


app = create_app()

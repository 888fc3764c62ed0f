"""
FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from hookgate import __version__
from hookgate.api import hooks
from hookgate.config import Settings, get_settings
from hookgate.middleware.logging import RequestLoggingMiddleware
from hookgate.providers.registry import build_default_registry
from hookgate.services.classifier import RequestClassifier
from hookgate.services.hook_service import HookService
from hookgate.services.metrics_extractor import LoggingMetricsPublisher, MetricsExtractor
from hookgate.services.trigger_client import BuildTriggerClient
from hookgate.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application with all services wired from settings.

    Args:
        settings: Settings to use, defaults to the environment loaded ones
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    trigger_client = BuildTriggerClient(settings)
    hook_service = HookService(
        settings=settings,
        registry=build_default_registry(settings),
        trigger_client=trigger_client,
        classifier=RequestClassifier(),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting webhook gateway",
            extra={
                "environment": settings.environment,
                "log_only_mode": settings.is_log_only_mode,
                "providers": hook_service.registry.list_supported(),
            },
        )
        yield
        logger.info("Shutting down webhook gateway")
        await hook_service.wait_for_pending()
        await trigger_client.aclose()

    app = FastAPI(
        title="Webhook Gateway",
        description="Turns source code hosting webhooks into build triggers",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.hook_service = hook_service
    app.state.metrics_extractor = (
        MetricsExtractor(LoggingMetricsPublisher()) if settings.metrics_enabled else None
    )

    app.add_middleware(RequestLoggingMiddleware)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "Welcome to the webhook gateway!",
            "version": __version__,
            "time": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint for container orchestration."""
        return {"status": "healthy", "version": __version__}

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(status_code=404, content={"error": "Not Found"})
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    app.include_router(hooks.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)

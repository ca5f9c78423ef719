"""
Plant ID Log

FastAPI application that identifies plant species from photographs and
keeps a local log of past identifications. It is the presentation
surface of the identification core: routes turn user intents into core
events and return screen snapshots.

Usage:
    uvicorn plantid.main:app --reload
    uvicorn plantid.main:app --host 127.0.0.1 --port 8000
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from plantid.api.routes import health_router, history_router, screen_router
from plantid.api.routes.health import mark_started
from plantid.core.config import Settings, get_settings
from plantid.core.dependencies import AppContainer, build_container
from plantid.core.errors import (
    InitializationError,
    PipelineBusy,
    PlantIdError,
    ScreenTransitionError,
    StorageError,
)

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Runs on startup:
    - Capture permission, storage schema, classifier readiness (once)
    - Activate the Capture screen if all steps succeeded

    Runs on shutdown:
    - Close the record store
    """
    container: AppContainer = app.state.container
    logger.info(f"Starting {container.settings.app_name}...")
    mark_started(app)

    report = await container.sequencer.run()
    if report.ready:
        container.screens.activate(report)
        logger.info("Application startup complete")
    else:
        # The app stays up to report the failure; every intent is refused
        logger.error(f"Initialization failed: {report.error}")

    yield

    logger.info(f"Shutting down {container.settings.app_name}...")
    container.record_store.close()


def _error_body(exc: PlantIdError, **details) -> dict:
    return {
        "error": exc.code,
        "message": exc.message,
        "details": details or None,
    }


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Map core errors to JSON error responses."""

    @app.exception_handler(PipelineBusy)
    async def pipeline_busy_handler(request: Request, exc: PipelineBusy):
        return JSONResponse(status_code=409, content=_error_body(exc))

    @app.exception_handler(ScreenTransitionError)
    async def screen_transition_handler(request: Request, exc: ScreenTransitionError):
        return JSONResponse(status_code=409, content=_error_body(exc))

    @app.exception_handler(InitializationError)
    async def initialization_handler(request: Request, exc: InitializationError):
        step = getattr(exc.step, "value", exc.step)
        return JSONResponse(status_code=503, content=_error_body(exc, step=step))

    @app.exception_handler(StorageError)
    async def storage_handler(request: Request, exc: StorageError):
        logger.error(f"Storage error on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=500, content=_error_body(exc))

    @app.exception_handler(PlantIdError)
    async def plant_id_handler(request: Request, exc: PlantIdError):
        return JSONResponse(status_code=400, content=_error_body(exc))

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again.",
                "details": {"exception": str(exc)} if settings.debug else None
            }
        )


def create_app(container: Optional[AppContainer] = None) -> FastAPI:
    """
    Create the application around a container of core components.

    Args:
        container: Pre-wired components; built from settings if omitted
    """
    container = container or build_container()
    settings = container.settings
    configure_logging(settings)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="""
## Plant ID Log

Identify a plant from a photo and keep a local history of identifications.

### Screens

- **Capture**: send a camera frame or pick a gallery image
- **Results**: top prediction with confidence, plus the ranked top 3
- **History**: most recent identifications, newest first

### API Endpoints

- `GET /api/v1/screen` - Current screen snapshot
- `POST /api/v1/screen/capture` - Identify a camera frame
- `POST /api/v1/screen/pick` - Identify a gallery image
- `POST /api/v1/screen/history` - Show history
- `POST /api/v1/screen/identify-another` - Back to Capture from Results
- `POST /api/v1/screen/new-scan` - Back to Capture from History
- `GET /api/v1/history` - Recent identifications
- `DELETE /api/v1/history?confirm=true` - Clear history
- `GET /api/v1/health/ready` - Startup report
        """,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )
    application.state.container = container

    # Local rendering layer only
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost", "http://127.0.0.1"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(application, settings)

    # Include routers
    application.include_router(health_router, prefix=settings.api_prefix)
    application.include_router(screen_router, prefix=settings.api_prefix)
    application.include_router(history_router, prefix=settings.api_prefix)

    @application.get("/api", tags=["Root"])
    async def api_info():
        """API information endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "documentation": "/docs",
            "health_check": f"{settings.api_prefix}/health",
            "screen_endpoint": f"{settings.api_prefix}/screen"
        }

    return application


app = create_app()


# Entry point for running with Python
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "plantid.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )

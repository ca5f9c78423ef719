"""
Health and startup status endpoints.

- ``/health``: process is up
- ``/health/ready``: outcome of the startup sequence
- ``/health/live``: liveness check
"""

import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from plantid.core.dependencies import AppContainer, get_container

router = APIRouter(prefix="/health", tags=["Health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: float
    version: str


class ReadinessResponse(BaseModel):
    """Startup report with component status."""
    status: str
    timestamp: float
    version: str
    completed_steps: list[str]
    step_times_ms: dict[str, float] = Field(default_factory=dict)
    components: dict[str, dict]
    uptime_seconds: Optional[float] = None


def mark_started(app) -> None:
    """Record when the app started (called from the lifespan)."""
    app.state.started_at = time.time()


def _uptime(request: Request) -> Optional[float]:
    started_at = getattr(request.app.state, "started_at", None)
    return time.time() - started_at if started_at else None


def _classifier_status(container: AppContainer) -> dict:
    if not container.classifier.is_loaded:
        return {"status": "not_loaded"}
    info = container.classifier.get_model_info()
    return {
        "status": "ready",
        "name": info.name,
        "version": info.version,
        "num_classes": info.num_classes,
        "top_k": info.top_k,
    }


@router.get("", response_model=HealthResponse)
async def health_check(container: AppContainer = Depends(get_container)) -> HealthResponse:
    """The process is running; says nothing about startup."""
    return HealthResponse(
        status="healthy",
        timestamp=time.time(),
        version=container.settings.app_version,
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(
    request: Request,
    container: AppContainer = Depends(get_container),
) -> ReadinessResponse:
    """
    Startup report.

    Steps, in order: capture permission, history schema, classifier.

    Returns:
        The report when every step succeeded; 503 naming the failed
        step otherwise.
    """
    report = container.sequencer.report
    if report is None:
        raise HTTPException(status_code=503, detail="App is still starting")

    if not report.ready:
        raise HTTPException(
            status_code=503,
            detail={
                "error": "initialization_error",
                "step": report.failed_step.value if report.failed_step else None,
                "message": report.error.message if report.error else "App is not ready",
            },
        )

    return ReadinessResponse(
        status="ready",
        timestamp=time.time(),
        version=container.settings.app_version,
        completed_steps=[step.value for step in report.completed_steps],
        step_times_ms={k: round(v, 2) for k, v in report.step_times_ms.items()},
        components={
            "classifier": _classifier_status(container),
            "record_store": {
                "status": "ready",
                "backend": type(container.record_store).__name__,
            },
            "pipeline": {"status": "busy" if container.pipeline.busy else "idle"},
        },
        uptime_seconds=_uptime(request),
    )


@router.get("/live")
async def liveness_check() -> dict:
    return {"status": "alive"}

"""
Screen API endpoints.

The rendering layer reads the current screen and sends user intents:
- Capture a camera frame / pick a gallery image
- Switch to History or back to Results
- Identify another plant / start a new scan
"""

import logging

from fastapi import APIRouter, Depends

from plantid.capture.sources import EncodedImageSource, FileImageSource
from plantid.core.errors import CaptureError
from plantid.core.dependencies import AppContainer, get_container, get_screens
from plantid.models.enums import AcquisitionSource
from plantid.models.schemas import (
    CaptureRequest,
    ErrorResponse,
    PickRequest,
    ScreenResponse,
)
from plantid.services.screen_state import ScreenStateMachine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/screen", tags=["Screen"])

_ERROR_RESPONSES = {
    409: {"model": ErrorResponse, "description": "Intent not allowed right now"},
    503: {"model": ErrorResponse, "description": "App failed to initialize"},
}


def _max_bytes(container: AppContainer) -> int:
    return int(container.settings.max_image_size_mb * 1024 * 1024)


@router.get("", response_model=ScreenResponse, responses=_ERROR_RESPONSES)
async def get_screen(screens: ScreenStateMachine = Depends(get_screens)) -> ScreenResponse:
    """Current screen snapshot."""
    return ScreenResponse.from_snapshot(screens.snapshot())


@router.post(
    "/capture",
    response_model=ScreenResponse,
    responses=_ERROR_RESPONSES,
    summary="Identify a camera frame",
    description="""
    Runs one identification on a captured frame.

    On success the screen moves to Results. On failure it stays on
    Capture and `notice` carries the error; if only saving failed the
    unsaved result is returned in `unsaved_run`.
    """
)
async def capture(
    request: CaptureRequest,
    screens: ScreenStateMachine = Depends(get_screens),
    container: AppContainer = Depends(get_container),
) -> ScreenResponse:
    source = EncodedImageSource(
        request.image, source=AcquisitionSource.CAMERA, max_bytes=_max_bytes(container)
    )
    run = await screens.capture(source)
    logger.info(f"Capture intent finished: run {run.run_id[:8]} {run.status.value}")
    return ScreenResponse.from_snapshot(screens.snapshot())


@router.post(
    "/pick",
    response_model=ScreenResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Picking by path is disabled"},
        **_ERROR_RESPONSES,
    },
    summary="Identify a gallery image"
)
async def pick(
    request: PickRequest,
    screens: ScreenStateMachine = Depends(get_screens),
    container: AppContainer = Depends(get_container),
) -> ScreenResponse:
    if request.path is not None:
        gallery_dir = container.settings.gallery_dir
        if gallery_dir is None:
            raise CaptureError("Picking by path is disabled; upload the image instead")
        source = FileImageSource(
            request.path, max_bytes=_max_bytes(container), root=gallery_dir
        )
    else:
        source = EncodedImageSource(
            request.image, source=AcquisitionSource.GALLERY, max_bytes=_max_bytes(container)
        )
    run = await screens.capture(source)
    logger.info(f"Pick intent finished: run {run.run_id[:8]} {run.status.value}")
    return ScreenResponse.from_snapshot(screens.snapshot())


@router.post("/history", response_model=ScreenResponse, responses=_ERROR_RESPONSES)
async def show_history(screens: ScreenStateMachine = Depends(get_screens)) -> ScreenResponse:
    """Switch to the History screen."""
    await screens.show_history()
    return ScreenResponse.from_snapshot(screens.snapshot())


@router.post("/results", response_model=ScreenResponse, responses=_ERROR_RESPONSES)
async def show_results(screens: ScreenStateMachine = Depends(get_screens)) -> ScreenResponse:
    """Return to the Results screen while a result is held."""
    screens.show_results()
    return ScreenResponse.from_snapshot(screens.snapshot())


@router.post("/identify-another", response_model=ScreenResponse, responses=_ERROR_RESPONSES)
async def identify_another(screens: ScreenStateMachine = Depends(get_screens)) -> ScreenResponse:
    screens.identify_another()
    return ScreenResponse.from_snapshot(screens.snapshot())


@router.post("/new-scan", response_model=ScreenResponse, responses=_ERROR_RESPONSES)
async def new_scan(screens: ScreenStateMachine = Depends(get_screens)) -> ScreenResponse:
    screens.new_scan()
    return ScreenResponse.from_snapshot(screens.snapshot())

"""
History API endpoints.

Read the identification log and clear it from the History screen.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from plantid.models.schemas import ErrorResponse, HistoryRecordOut, HistoryResponse
from plantid.core.dependencies import get_screens
from plantid.services.screen_state import ScreenStateMachine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/history", tags=["History"])


@router.get("", response_model=HistoryResponse)
async def list_history(
    limit: int = Query(default=20, ge=1, le=500),
    screens: ScreenStateMachine = Depends(get_screens),
) -> HistoryResponse:
    """Recent identifications, newest first."""
    store = screens.record_store
    records = await asyncio.to_thread(store.list_recent, limit)
    count = await asyncio.to_thread(store.count)
    return HistoryResponse(
        records=[HistoryRecordOut.from_record(r) for r in records],
        count=count,
    )


@router.delete(
    "",
    response_model=HistoryResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Confirmation missing"},
        409: {"model": ErrorResponse, "description": "Not on the History screen"},
        500: {"model": ErrorResponse, "description": "History could not be cleared"},
    },
    summary="Clear history",
    description="Deletes every stored identification. Requires `confirm=true`."
)
async def clear_history(
    confirm: bool = Query(default=False, description="Confirm deleting all predictions"),
    screens: ScreenStateMachine = Depends(get_screens),
) -> HistoryResponse:
    if not confirm:
        raise HTTPException(
            status_code=400,
            detail="Are you sure you want to delete all predictions? Pass confirm=true.",
        )
    await screens.clear_history()
    logger.info("History cleared by user")
    return HistoryResponse(records=[], count=0)

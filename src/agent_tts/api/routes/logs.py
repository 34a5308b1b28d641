"""
Playback log API routes.

Read the queue record log and act on single records (replay, favorite).
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from agent_tts.api.deps import get_pipeline
from agent_tts.api.schemas import (
    CountResponse,
    DeleteResponse,
    FavoriteResponse,
    LogEntryResponse,
    ReplayResponse,
)
from agent_tts.exceptions import RecordNotFoundError
from agent_tts.pipeline import Pipeline

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/logs", response_model=list[LogEntryResponse])
def list_logs(
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    profile: Optional[str] = None,
    favorites: bool = False,
    cwd: Optional[str] = None,
    exclude_cwd: Optional[str] = None,
    since: Optional[datetime] = None,
    pipeline: Pipeline = Depends(get_pipeline),
) -> list[LogEntryResponse]:
    """
    List playback log entries, newest first.

    Args:
        limit: Maximum entries returned
        offset: Entries to skip
        profile: Only this profile
        favorites: Only favorites
        cwd: Exact working directory
        exclude_cwd: Hide this working directory
        since: Only entries at or after this time
    """
    rows = pipeline.get_logs(
        limit=limit,
        offset=offset,
        profile_id=profile,
        favorites_only=favorites,
        cwd=cwd,
        exclude_cwd=exclude_cwd,
        since=since,
    )
    return [LogEntryResponse.model_validate(row) for row in rows]


@router.get("/logs/favorites/count", response_model=CountResponse)
def favorites_count(pipeline: Pipeline = Depends(get_pipeline)) -> CountResponse:
    return CountResponse(count=pipeline.favorites_count())


@router.delete("/logs", response_model=DeleteResponse)
def clear_old_entries(
    days: int = Query(..., ge=0),
    pipeline: Pipeline = Depends(get_pipeline),
) -> DeleteResponse:
    """Delete entries older than N days (favorites are kept)."""
    return DeleteResponse(deleted=pipeline.clear_old_entries(days))


@router.post("/logs/{record_id}/replay", response_model=ReplayResponse)
def replay(record_id: int, pipeline: Pipeline = Depends(get_pipeline)) -> ReplayResponse:
    """
    Queue a stored entry for playback again.

    Raises:
        HTTPException: 404 if the entry does not exist
    """
    try:
        queued = pipeline.replay(record_id)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return ReplayResponse(id=record_id, queued=queued)


@router.post("/logs/{record_id}/favorite", response_model=FavoriteResponse)
def toggle_favorite(
    record_id: int, pipeline: Pipeline = Depends(get_pipeline)
) -> FavoriteResponse:
    try:
        is_favorite = pipeline.toggle_favorite(record_id)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return FavoriteResponse(id=record_id, is_favorite=is_favorite)

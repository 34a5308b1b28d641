"""
Control API routes.

Playback controls, mute and per-profile toggles.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from agent_tts.api.deps import get_pipeline
from agent_tts.api.schemas import (
    ControlResponse,
    MuteRequest,
    ProfileToggleRequest,
    StatusResponse,
)
from agent_tts.pipeline import Pipeline

logger = logging.getLogger(__name__)
router = APIRouter()

PLAYBACK_ACTIONS = ("pause", "resume", "stop", "skip")


def _status(pipeline: Pipeline) -> StatusResponse:
    return StatusResponse.model_validate(pipeline.get_status())


@router.get("/status", response_model=StatusResponse)
def get_status(pipeline: Pipeline = Depends(get_pipeline)) -> StatusResponse:
    return _status(pipeline)


@router.post("/control/{action}", response_model=ControlResponse)
def control(action: str, pipeline: Pipeline = Depends(get_pipeline)) -> ControlResponse:
    """
    Run a playback control: pause, resume, stop or skip.

    Raises:
        HTTPException: 404 for an unknown action
    """
    if action not in PLAYBACK_ACTIONS:
        raise HTTPException(status_code=404, detail=f"Unknown action: {action}")
    getattr(pipeline, action)()
    logger.info(f"API control: {action}")
    return ControlResponse(action=action, status=_status(pipeline))


@router.post("/mute", response_model=ControlResponse)
def set_mute(request: MuteRequest, pipeline: Pipeline = Depends(get_pipeline)) -> ControlResponse:
    pipeline.set_muted(request.muted)
    return ControlResponse(action="mute" if request.muted else "unmute", status=_status(pipeline))


@router.post("/profiles/{profile_id}/enabled", response_model=ControlResponse)
def set_profile_enabled(
    profile_id: str,
    request: ProfileToggleRequest,
    pipeline: Pipeline = Depends(get_pipeline),
) -> ControlResponse:
    """
    Enable or disable watching for a profile.

    Raises:
        HTTPException: 404 if the profile is not configured
    """
    if pipeline.get_profile(profile_id) is None:
        raise HTTPException(status_code=404, detail=f"Profile not found: {profile_id}")
    pipeline.set_profile_enabled(profile_id, request.enabled)
    return ControlResponse(
        action="enable" if request.enabled else "disable", status=_status(pipeline)
    )

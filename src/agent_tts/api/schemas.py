"""
API schemas for agent-tts.

Pydantic models for request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

# ===== Status =====


class ProfileStatus(BaseModel):
    """One configured profile and whether it is being watched."""

    id: str
    name: str
    icon: Optional[str] = None
    enabled: bool
    watching: bool
    watch_errors: list[str] = []


class StatusResponse(BaseModel):
    """Pipeline status."""

    muted: bool
    profiles: list[ProfileStatus] = Field(default_factory=list)
    queue_size: int
    is_playing: bool
    playing_id: Optional[int] = None


# ===== Playback log =====


class LogEntryResponse(BaseModel):
    """A queue record with the display details of its profile's voice."""

    id: int
    timestamp: datetime
    file_path: str
    profile_id: str
    profile_name: Optional[str] = None
    original_text: str
    filtered_text: str
    state: str
    role: str
    api_response_status: Optional[int] = None
    api_response_message: Optional[str] = None
    processing_time_ms: Optional[int] = None
    is_favorite: bool = False
    cwd: Optional[str] = None
    images: list[str] = Field(default_factory=list)
    voice_name: Optional[str] = None
    avatar_url: Optional[str] = None
    profile_url: Optional[str] = None


class FavoriteResponse(BaseModel):
    id: int
    is_favorite: bool


class CountResponse(BaseModel):
    count: int


class ReplayResponse(BaseModel):
    id: int
    queued: bool


class DeleteResponse(BaseModel):
    deleted: int


# ===== Control =====


class ControlResponse(BaseModel):
    """Result of a control operation."""

    action: str
    status: StatusResponse


class MuteRequest(BaseModel):
    muted: bool


class ProfileToggleRequest(BaseModel):
    enabled: bool

"""
SQLAlchemy database models for agent-tts.

These models hold the state the pipeline needs to resume after a restart:
per-file read offsets, the per-message playback log and persisted toggles.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

from agent_tts.utils.timeutil import as_utc


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class QueueState(str, enum.Enum):
    """Lifecycle state of a queue record."""

    QUEUED = "queued"  # Waiting for playback
    PLAYING = "playing"  # Currently being synthesized or played
    PLAYED = "played"  # Finished (or interrupted by the user)
    ERROR = "error"  # Synthesis/playback failed or crash-recovered
    USER = "user"  # User turn, logged only


class MessageRole(str, enum.Enum):
    """Role of the message author."""

    USER = "user"
    ASSISTANT = "assistant"


def _enum_column(enum_cls: type[enum.Enum]) -> Enum:
    return Enum(
        enum_cls,
        native_enum=False,
        values_callable=lambda x: [e.value for e in x],
    )


class FileWatchState(Base):
    """Read progress for one watched file."""

    __tablename__ = "file_watch_state"

    file_path: Mapped[str] = mapped_column(String(4096), primary_key=True)
    profile_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    last_modified: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )  # File mtime at last read
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_processed_offset: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<FileWatchState(file_path={self.file_path!r}, "
            f"offset={self.last_processed_offset}, size={self.file_size})>"
        )


class QueueRecord(Base):
    """One message's journey from ingestion through playback."""

    __tablename__ = "queue_record"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    file_path: Mapped[str] = mapped_column(String(4096), nullable=False)
    profile_id: Mapped[str] = mapped_column(String(255), nullable=False)
    original_text: Mapped[str] = mapped_column(Text, nullable=False)
    filtered_text: Mapped[str] = mapped_column(Text, nullable=False)
    state: Mapped[QueueState] = mapped_column(
        _enum_column(QueueState),
        nullable=False,
        default=QueueState.QUEUED,
    )
    api_response_status: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    api_response_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processing_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_favorite: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="0"
    )
    cwd: Mapped[Optional[str]] = mapped_column(String(4096), nullable=True)
    role: Mapped[MessageRole] = mapped_column(
        _enum_column(MessageRole),
        nullable=False,
        default=MessageRole.ASSISTANT,
    )
    images: Mapped[Optional[list]] = mapped_column(
        JSON, nullable=True
    )  # Stored image paths, relative to the image dir

    __table_args__ = (
        Index("ix_queue_record_timestamp", "timestamp"),
        Index("ix_queue_record_profile_id", "profile_id"),
        Index("ix_queue_record_state", "state"),
        Index("ix_queue_record_cwd", "cwd"),
    )

    def to_dict(self) -> dict:
        """Convert to a plain dictionary for events and JSON output."""
        return {
            "id": self.id,
            "timestamp": as_utc(self.timestamp).isoformat() if self.timestamp else None,
            "file_path": self.file_path,
            "profile_id": self.profile_id,
            "original_text": self.original_text,
            "filtered_text": self.filtered_text,
            "state": self.state.value if self.state else None,
            "api_response_status": self.api_response_status,
            "api_response_message": self.api_response_message,
            "processing_time_ms": self.processing_time_ms,
            "is_favorite": self.is_favorite,
            "cwd": self.cwd,
            "role": self.role.value if self.role else None,
            "images": list(self.images or []),
        }

    def __repr__(self) -> str:
        return (
            f"<QueueRecord(id={self.id}, profile_id={self.profile_id!r}, "
            f"state={self.state})>"
        )


class AppSetting(Base):
    """Persisted key/value toggle (e.g. 'global:mute', 'profile:claude:enabled')."""

    __tablename__ = "app_settings"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

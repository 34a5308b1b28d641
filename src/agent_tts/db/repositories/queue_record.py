"""
Queue record repository.

All playback state transitions go through here so the at-most-one-playing
rule is enforced in one place.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from agent_tts.db.repositories.base import BaseRepository
from agent_tts.models.db import MessageRole, QueueRecord, QueueState
from agent_tts.utils.timeutil import as_utc, utc_now

RECOVERY_MESSAGE = "Interrupted - process exited during playback"
PREEMPTED_MESSAGE = "Interrupted - new message started playing"


class QueueRecordRepository(BaseRepository[QueueRecord]):
    """Repository for QueueRecord model."""

    def __init__(self, session: Session):
        super().__init__(QueueRecord, session)

    def add(
        self,
        *,
        timestamp: datetime,
        file_path: str,
        profile_id: str,
        original_text: str,
        filtered_text: str,
        role: MessageRole,
        cwd: Optional[str] = None,
        images: Optional[list[str]] = None,
    ) -> QueueRecord:
        """
        Insert a record for a newly ingested message.

        User messages go straight to the terminal USER state; assistant
        messages start QUEUED.
        """
        state = QueueState.USER if role == MessageRole.USER else QueueState.QUEUED
        return self.create(
            timestamp=as_utc(timestamp),
            file_path=file_path,
            profile_id=profile_id,
            original_text=original_text,
            filtered_text=filtered_text,
            state=state,
            role=role,
            cwd=cwd,
            images=images or None,
        )

    def mark_playing(self, record_id: int) -> Optional[QueueRecord]:
        return self.update(
            record_id,
            state=QueueState.PLAYING,
            api_response_status=None,
            api_response_message=None,
        )

    def mark_played(
        self,
        record_id: int,
        processing_time_ms: int,
        status: int = 200,
        message: Optional[str] = None,
    ) -> Optional[QueueRecord]:
        return self.update(
            record_id,
            state=QueueState.PLAYED,
            api_response_status=status,
            api_response_message=message,
            processing_time_ms=processing_time_ms,
        )

    def mark_error(
        self,
        record_id: int,
        message: str,
        processing_time_ms: Optional[int] = None,
        status: Optional[int] = None,
    ) -> Optional[QueueRecord]:
        return self.update(
            record_id,
            state=QueueState.ERROR,
            api_response_status=status,
            api_response_message=message,
            processing_time_ms=processing_time_ms,
        )

    def reset_stuck_playing(
        self, exclude_id: Optional[int] = None, message: str = PREEMPTED_MESSAGE
    ) -> int:
        """
        Move every PLAYING record (except exclude_id) to ERROR.

        Returns:
            Number of records reset
        """
        query = self.session.query(QueueRecord).filter(
            QueueRecord.state == QueueState.PLAYING
        )
        if exclude_id is not None:
            query = query.filter(QueueRecord.id != exclude_id)
        count = query.update(
            {
                QueueRecord.state: QueueState.ERROR,
                QueueRecord.api_response_message: message,
            },
            synchronize_session=False,
        )
        self.session.flush()
        return count

    def recover_interrupted(self) -> int:
        """Reclassify crash leftovers found in PLAYING at startup."""
        return self.reset_stuck_playing(exclude_id=None, message=RECOVERY_MESSAGE)

    def count_playing(self) -> int:
        return (
            self.session.query(QueueRecord)
            .filter(QueueRecord.state == QueueState.PLAYING)
            .count()
        )

    def toggle_favorite(self, record_id: int) -> Optional[bool]:
        """
        Flip the favorite flag.

        Returns:
            The new flag value, or None if the record does not exist
        """
        record = self.get(record_id)
        if record is None:
            return None
        record.is_favorite = not record.is_favorite
        self.session.flush()
        return record.is_favorite

    def count_favorites(self) -> int:
        return (
            self.session.query(QueueRecord)
            .filter(QueueRecord.is_favorite.is_(True))
            .count()
        )

    def search(
        self,
        limit: int = 50,
        offset: int = 0,
        profile_id: Optional[str] = None,
        favorites_only: bool = False,
        cwd: Optional[str] = None,
        exclude_cwd: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> List[QueueRecord]:
        """
        Query the playback log, newest first.

        Args:
            limit: Maximum rows returned
            offset: Rows to skip (pagination)
            profile_id: Only this profile
            favorites_only: Only favorited rows
            cwd: Exact working-directory match
            exclude_cwd: Drop rows with this working directory (NULL cwd kept)
            since: Only rows at or after this time

        Returns:
            Matching records ordered by timestamp DESC
        """
        query = self.session.query(QueueRecord)

        if profile_id:
            query = query.filter(QueueRecord.profile_id == profile_id)
        if favorites_only:
            query = query.filter(QueueRecord.is_favorite.is_(True))
        if cwd:
            query = query.filter(QueueRecord.cwd == cwd)
        if exclude_cwd:
            query = query.filter(
                (QueueRecord.cwd.is_(None)) | (QueueRecord.cwd != exclude_cwd)
            )
        if since is not None:
            query = query.filter(QueueRecord.timestamp >= as_utc(since))

        return (
            query.order_by(QueueRecord.timestamp.desc(), QueueRecord.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def delete_older_than(self, days: int, keep_favorites: bool = True) -> int:
        """
        Retention sweep: delete records older than N days.

        Returns:
            Number of records deleted
        """
        cutoff = utc_now() - timedelta(days=days)
        query = self.session.query(QueueRecord).filter(QueueRecord.timestamp < cutoff)
        if keep_favorites:
            query = query.filter(QueueRecord.is_favorite.is_(False))
        return query.delete(synchronize_session=False)

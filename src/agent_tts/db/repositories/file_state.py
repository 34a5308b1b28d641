"""
File watch state repository.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from agent_tts.db.repositories.base import BaseRepository
from agent_tts.models.db import FileWatchState


class FileWatchStateRepository(BaseRepository[FileWatchState]):
    """Repository for FileWatchState model."""

    def __init__(self, session: Session):
        super().__init__(FileWatchState, session)

    def get_by_path(self, file_path: str) -> Optional[FileWatchState]:
        """Get stored read progress for a file, or None if never seen."""
        return self.get(file_path)

    def upsert(
        self,
        file_path: str,
        profile_id: str,
        file_size: int,
        offset: int,
        last_modified: Optional[datetime] = None,
    ) -> FileWatchState:
        """
        Record read progress for a file.

        Args:
            file_path: Absolute file path
            profile_id: Owning profile
            file_size: Observed size in bytes
            offset: Bytes consumed so far (clamped to file_size)
            last_modified: Observed modification time

        Returns:
            The stored FileWatchState
        """
        offset = min(offset, file_size)
        state = self.get_by_path(file_path)
        if state is None:
            state = FileWatchState(
                file_path=file_path,
                profile_id=profile_id,
                file_size=file_size,
                last_processed_offset=offset,
                last_modified=last_modified,
            )
            self.session.add(state)
        else:
            state.profile_id = profile_id
            state.file_size = file_size
            state.last_processed_offset = offset
            state.last_modified = last_modified
        self.session.flush()
        return state

    def get_by_profile(self, profile_id: str) -> List[FileWatchState]:
        """Get every tracked file for a profile."""
        return (
            self.session.query(FileWatchState)
            .filter(FileWatchState.profile_id == profile_id)
            .all()
        )

    def delete_by_profile(self, profile_id: str) -> int:
        """Forget all tracked files for a profile. Returns rows deleted."""
        return (
            self.session.query(FileWatchState)
            .filter(FileWatchState.profile_id == profile_id)
            .delete(synchronize_session=False)
        )

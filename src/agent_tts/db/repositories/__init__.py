"""
Repository layer for database operations.

Provides a clean API for the state store's tables.
"""

from agent_tts.db.repositories.base import BaseRepository
from agent_tts.db.repositories.file_state import FileWatchStateRepository
from agent_tts.db.repositories.queue_record import QueueRecordRepository
from agent_tts.db.repositories.settings import SettingsRepository

__all__ = [
    "BaseRepository",
    "FileWatchStateRepository",
    "QueueRecordRepository",
    "SettingsRepository",
]

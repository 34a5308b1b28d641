"""State store: engine, sessions and repositories."""

from agent_tts.db.connection import Database

__all__ = ["Database"]

"""
Persisted toggle repository (global mute, per-profile enabled flags).
"""

from typing import Optional

from sqlalchemy.orm import Session

from agent_tts.db.repositories.base import BaseRepository
from agent_tts.models.db import AppSetting

MUTE_KEY = "global:mute"


def _profile_key(profile_id: str) -> str:
    return f"profile:{profile_id}:enabled"


class SettingsRepository(BaseRepository[AppSetting]):
    """Repository for AppSetting key/value rows."""

    def __init__(self, session: Session):
        super().__init__(AppSetting, session)

    def get_value(self, key: str) -> Optional[str]:
        row = self.get(key)
        return row.value if row else None

    def set_value(self, key: str, value: str) -> None:
        row = self.get(key)
        if row is None:
            self.session.add(AppSetting(key=key, value=value))
        else:
            row.value = value
        self.session.flush()

    def get_bool(self, key: str, default: bool) -> bool:
        value = self.get_value(key)
        if value is None:
            return default
        return value == "true"

    def set_bool(self, key: str, value: bool) -> None:
        self.set_value(key, "true" if value else "false")

    def is_muted(self) -> bool:
        return self.get_bool(MUTE_KEY, default=False)

    def set_muted(self, muted: bool) -> None:
        self.set_bool(MUTE_KEY, muted)

    def is_profile_enabled(self, profile_id: str, default: bool = True) -> bool:
        return self.get_bool(_profile_key(profile_id), default=default)

    def set_profile_enabled(self, profile_id: str, enabled: bool) -> None:
        self.set_bool(_profile_key(profile_id), enabled)

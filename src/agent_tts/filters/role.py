"""Role gate: keep only messages from the allowed roles."""

from typing import Iterable, Optional

from agent_tts.filters.base import MessageFilter
from agent_tts.models.parsed import ParsedMessage


class RoleFilter(MessageFilter):
    name = "role"

    def __init__(self, roles: Iterable[str] = ("assistant",), enabled: bool = True):
        super().__init__(enabled)
        self.roles = set(roles)

    def apply(self, message: ParsedMessage) -> Optional[ParsedMessage]:
        return message if message.role in self.roles else None

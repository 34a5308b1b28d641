"""Replace URLs with a short spoken token."""

import re

from agent_tts.filters.base import TextFilter

URL_RE = re.compile(r"(?:https?://|ftp://|file://|www\.)[^\s]+", re.IGNORECASE)


class UrlFilter(TextFilter):
    name = "url"

    def __init__(self, replacement: str = "URL", enabled: bool = True):
        super().__init__(enabled)
        self.replacement = replacement

    def transform(self, text: str) -> str:
        return URL_RE.sub(self.replacement, text)

"""Length limiter: keep speech to a bounded size, drop trivially short messages."""

import re
from typing import Optional

from agent_tts.filters.base import MessageFilter
from agent_tts.models.parsed import ParsedMessage

SENTENCE_RE = re.compile(r"[^.!?]+[.!?]+")


class LengthFilter(MessageFilter):
    """
    Truncate at the last complete sentence that fits max_length.

    When not even the first sentence fits, cut hard and append the
    truncation indicator. Messages shorter than min_length are dropped.
    """

    name = "length"

    def __init__(
        self,
        max_length: int = 1000,
        min_length: int = 1,
        truncate_indicator: str = "...",
        enabled: bool = True,
    ):
        super().__init__(enabled)
        if max_length <= len(truncate_indicator):
            raise ValueError("max_length must be longer than the truncation indicator")
        self.max_length = max_length
        self.min_length = min_length
        self.truncate_indicator = truncate_indicator

    def apply(self, message: ParsedMessage) -> Optional[ParsedMessage]:
        content = message.content.strip()
        if len(content) < self.min_length:
            return None
        if len(content) <= self.max_length:
            return message
        return message.with_content(self.truncate(content))

    def truncate(self, text: str) -> str:
        kept = ""
        for match in SENTENCE_RE.finditer(text):
            sentence = match.group(0)
            if len(kept) + len(sentence) > self.max_length:
                break
            kept += sentence
        kept = kept.strip()
        if kept:
            return kept
        cut = self.max_length - len(self.truncate_indicator)
        return text[:cut].rstrip() + self.truncate_indicator

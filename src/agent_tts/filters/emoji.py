"""Strip emoji code points so engines don't read their names aloud."""

import re

from agent_tts.filters.base import TextFilter

EMOJI_RE = re.compile(
    "["
    "\U0001F600-\U0001F64F"  # emoticons
    "\U0001F300-\U0001F5FF"  # symbols & pictographs
    "\U0001F680-\U0001F6FF"  # transport & map
    "\U0001F1E0-\U0001F1FF"  # flags
    "\u2600-\u26FF"  # misc symbols
    "\u2700-\u27BF"  # dingbats
    "\U0001F900-\U0001F9FF"  # supplemental symbols
    "\U0001FA70-\U0001FAFF"  # symbols & pictographs extended-A
    "\U0001F018-\U0001F270"
    "\u238C-\u2454"
    "\u20D0-\u20FF"  # combining marks for symbols
    "\uFE00-\uFE0F"  # variation selectors
    "\u200D"  # zero-width joiner
    "\U000E0020-\U000E007F"  # tags
    "]+"
)
_HSPACE_RE = re.compile(r"[^\S\n]{2,}")


class EmojiFilter(TextFilter):
    name = "emoji"

    def transform(self, text: str) -> str:
        # Keep newlines: later filters and the engine use them as pauses
        text = EMOJI_RE.sub("", text)
        text = _HSPACE_RE.sub(" ", text)
        return "\n".join(line.strip() for line in text.split("\n")).strip()

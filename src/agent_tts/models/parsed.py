"""
Parsed message data models.

Intermediate dataclasses produced by parsers and consumed by the filter chain
and message processor. Never persisted in this shape.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional


@dataclass
class ImageRef:
    """An image referenced by a message: inline bytes or a path on disk."""

    data: Optional[bytes] = None
    media_type: Optional[str] = None
    source_path: Optional[str] = None


@dataclass
class ParsedMessage:
    """A single conversational turn extracted from a log."""

    role: str  # 'user' or 'assistant'
    content: str
    timestamp: datetime
    cwd: Optional[str] = None
    images: list[ImageRef] = field(default_factory=list)

    def with_content(self, content: str) -> "ParsedMessage":
        """Return a copy of this message with different content."""
        return replace(self, content=content)

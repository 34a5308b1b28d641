"""
Parser metadata.

Declares a parser's name and how its log format grows, which decides how
the watcher tracks files for it.
"""

from dataclasses import dataclass
from enum import Enum


class LogGrowthMode(str, Enum):
    """How a log format produces new content."""

    APPEND = "append"
    """One file per session, extended in place; tracked by byte offset."""

    NEW_FILE = "new_file"
    """One immutable file per message; tracked by creation time."""


@dataclass(frozen=True)
class ParserMetadata:
    """
    Metadata about a parser implementation.

    Attributes:
        name: Parser type used in profile configuration (e.g. 'claude-code')
        growth_mode: How files of this format grow
        file_suffixes: Extensions the parser reads (informational)
        description: Optional human-readable description
    """

    name: str
    growth_mode: LogGrowthMode
    file_suffixes: tuple[str, ...] = (".jsonl",)
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Parser name cannot be empty")
        for suffix in self.file_suffixes:
            if not suffix.startswith("."):
                raise ValueError(f"File suffix must start with '.': {suffix}")

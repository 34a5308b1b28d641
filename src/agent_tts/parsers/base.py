"""
Base parser protocol and exception classes for session log parsers.

A parser turns the newly read bytes of one log file into structured
messages. Parsers are pure apart from optional side lookups such as reading
a companion metadata file.
"""

from pathlib import Path
from typing import Protocol

from agent_tts.models.parsed import ParsedMessage
from agent_tts.parsers.metadata import ParserMetadata


class ParserError(Exception):
    """Base exception for all parser errors."""

    pass


class ParseFormatError(ParserError):
    """Raised when the log format is invalid or unrecognized."""

    pass


class ParseDataError(ParserError):
    """Raised when required data is missing or malformed."""

    pass


class UnknownParserError(ParserError):
    """Raised when a profile names a parser type that is not registered."""

    def __init__(self, parser_type: str):
        self.parser_type = parser_type
        super().__init__(f"Unknown parser type: {parser_type}")


class MessageParser(Protocol):
    """
    Protocol for session log parsers.

    Parsers must tolerate malformed input: a record that cannot be decoded
    is skipped, never fatal to the batch.
    """

    @property
    def metadata(self) -> ParserMetadata:
        """Parser name and the log-growth mode of its format."""
        ...

    def parse(self, raw: bytes, file_path: Path) -> list[ParsedMessage]:
        """
        Parse newly read content into messages.

        Args:
            raw: Bytes read from the file (complete lines in append mode,
                 the whole file in new-file mode)
            file_path: Path the bytes came from

        Returns:
            Messages in file order; empty when nothing is extractable
        """
        ...

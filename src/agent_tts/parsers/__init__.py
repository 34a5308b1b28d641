"""
Format parsers for AI coding-assistant session logs.
"""

from agent_tts.parsers.base import (
    MessageParser,
    ParseDataError,
    ParseFormatError,
    ParserError,
    UnknownParserError,
)
from agent_tts.parsers.metadata import LogGrowthMode, ParserMetadata
from agent_tts.parsers.registry import ParserRegistry, create_default_registry

__all__ = [
    "LogGrowthMode",
    "MessageParser",
    "ParseDataError",
    "ParseFormatError",
    "ParserError",
    "ParserMetadata",
    "ParserRegistry",
    "UnknownParserError",
    "create_default_registry",
]

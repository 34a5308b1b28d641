"""
Parser registry.

Maps the parser type named in a profile ("claude-code", "codex",
"opencode", or a plugin's name) to a parser instance.
"""

import logging
from importlib import import_module
from pathlib import Path
from typing import Iterable, Optional

from agent_tts.parsers.base import MessageParser, UnknownParserError

logger = logging.getLogger(__name__)


class ParserRegistry:
    """
    Registry of parsers keyed by metadata name.

    Example:
        >>> registry = ParserRegistry()
        >>> registry.register(ClaudeCodeParser())
        >>> registry.get("claude-code").parse(raw, path)
    """

    def __init__(self) -> None:
        self._parsers: dict[str, MessageParser] = {}

    def register(self, parser: MessageParser) -> None:
        """
        Register a parser under its metadata name.

        A later registration with the same name replaces the earlier one.
        """
        name = parser.metadata.name
        if name in self._parsers:
            logger.info(f"Replacing parser registered as {name!r}")
        self._parsers[name] = parser
        logger.debug(f"Registered parser: {name} ({type(parser).__name__})")

    def get(self, parser_type: str) -> MessageParser:
        """
        Look up a parser by type name.

        Raises:
            UnknownParserError: If no parser has that name
        """
        try:
            return self._parsers[parser_type]
        except KeyError:
            raise UnknownParserError(parser_type) from None

    def names(self) -> list[str]:
        return sorted(self._parsers)

    def __contains__(self, parser_type: str) -> bool:
        return parser_type in self._parsers

    def load_modules(self, modules: Iterable[str]) -> None:
        """
        Register parsers from external modules.

        Each module must expose get_parser() or a PARSER attribute. Failures
        are logged and skipped.
        """
        for module_path in modules:
            try:
                module = import_module(module_path)
                factory = getattr(module, "get_parser", None)
                parser = factory() if callable(factory) else getattr(module, "PARSER", None)
                if parser:
                    self.register(parser)
                    logger.info(f"Loaded external parser from {module_path}")
                else:
                    logger.warning(
                        f"Module {module_path} did not provide get_parser()/PARSER"
                    )
            except Exception as import_error:
                logger.warning(f"Failed to load parser module {module_path}: {import_error}")


def create_default_registry(
    extra_modules: Optional[Iterable[str]] = None,
    opencode_storage_dir: Optional[Path] = None,
) -> ParserRegistry:
    """
    Build a registry with the built-in parsers plus optional plugin modules.
    """
    from agent_tts.parsers.claude_code import ClaudeCodeParser
    from agent_tts.parsers.codex import CodexParser
    from agent_tts.parsers.opencode import OpenCodeParser

    registry = ParserRegistry()
    registry.register(ClaudeCodeParser())
    registry.register(CodexParser())
    registry.register(OpenCodeParser(storage_dir=opencode_storage_dir))

    if extra_modules:
        registry.load_modules(extra_modules)

    return registry

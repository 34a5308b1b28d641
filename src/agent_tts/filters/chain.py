"""
Filter chain: the ordered transforms between a parsed message and speech.

Default order:
    role -> markdown -> url -> emoji -> filepath -> pronunciation -> length

Profiles can toggle or reconfigure built-ins by name, and add custom
filters (declarative rules or plugin callables) before/after any named
filter or at the end.
"""

import logging
from importlib import import_module
from typing import Any, Iterable, Mapping, Optional

from agent_tts.exceptions import FilterPluginError
from agent_tts.filters.base import FunctionFilter, MessageFilter
from agent_tts.filters.emoji import EmojiFilter
from agent_tts.filters.filepath import FilepathFilter
from agent_tts.filters.length import LengthFilter
from agent_tts.filters.markdown import MarkdownFilter
from agent_tts.filters.pronunciation import PronunciationFilter
from agent_tts.filters.role import RoleFilter
from agent_tts.filters.rules import RuleFilter
from agent_tts.filters.url import UrlFilter
from agent_tts.models.parsed import ParsedMessage
from agent_tts.profiles import FilterConfig

logger = logging.getLogger(__name__)

BUILTIN_ORDER = ("role", "markdown", "url", "emoji", "filepath", "pronunciation", "length")


class FilterChain:
    """Ordered list of filters applied with drop-or-modify semantics."""

    def __init__(self, filters: Optional[Iterable[MessageFilter]] = None):
        self.filters: list[MessageFilter] = list(filters or [])

    def apply(self, message: ParsedMessage) -> Optional[ParsedMessage]:
        """
        Run every enabled filter in order.

        Returns:
            The final message, or None if a filter dropped it. A filter that
            raises is logged and skipped; the message continues unchanged.
        """
        current = message
        for flt in self.filters:
            if not flt.enabled:
                continue
            try:
                result = flt.apply(current)
            except Exception as e:
                logger.warning(f"Filter {flt.name!r} failed, skipping it: {e}", exc_info=True)
                continue
            if result is None:
                logger.debug(f"Message dropped by filter {flt.name!r}")
                return None
            current = result
        return current

    def get(self, name: str) -> Optional[MessageFilter]:
        return next((f for f in self.filters if f.name == name), None)

    def names(self) -> list[str]:
        return [f.name for f in self.filters]

    def insert(
        self, flt: MessageFilter, before: Optional[str] = None, after: Optional[str] = None
    ) -> None:
        """Insert before/after a named filter; unknown anchors append with a warning."""
        anchor = before or after
        if anchor:
            for idx, existing in enumerate(self.filters):
                if existing.name == anchor:
                    self.filters.insert(idx if before else idx + 1, flt)
                    return
            logger.warning(f"Filter anchor {anchor!r} not found; appending {flt.name!r}")
        self.filters.append(flt)

    def replace(self, flt: MessageFilter) -> None:
        for idx, existing in enumerate(self.filters):
            if existing.name == flt.name:
                self.filters[idx] = flt
                return
        self.filters.append(flt)

    def remove(self, name: str) -> None:
        self.filters = [f for f in self.filters if f.name != name]


def _build_builtin(name: str, options: Mapping[str, Any], enabled: bool) -> MessageFilter:
    if name == "role":
        return RoleFilter(roles=options.get("roles", ("assistant",)), enabled=enabled)
    if name == "markdown":
        return MarkdownFilter(enabled=enabled)
    if name == "url":
        return UrlFilter(replacement=options.get("replacement", "URL"), enabled=enabled)
    if name == "emoji":
        return EmojiFilter(enabled=enabled)
    if name == "filepath":
        return FilepathFilter(enabled=enabled)
    if name == "pronunciation":
        return PronunciationFilter(
            replacements=options.get("replacements"),
            use_defaults=options.get("use_defaults", True),
            enabled=enabled,
        )
    if name == "length":
        return LengthFilter(
            max_length=options.get("max_length", 1000),
            min_length=options.get("min_length", 1),
            truncate_indicator=options.get("truncate_indicator", "..."),
            enabled=enabled,
        )
    raise ValueError(f"Unknown built-in filter: {name}")


def load_plugin(reference: str, name: str, options: Mapping[str, Any]) -> MessageFilter:
    """
    Resolve a "package.module:attribute" plugin reference.

    The attribute may be a MessageFilter instance, a MessageFilter subclass
    (instantiated with the filter options), or a plain callable taking a
    ParsedMessage and returning a ParsedMessage or None.

    Raises:
        FilterPluginError: If the reference cannot be resolved
    """
    module_path, sep, attr = reference.partition(":")
    if not sep or not module_path or not attr:
        raise FilterPluginError(reference, "expected 'module:attribute'")
    try:
        module = import_module(module_path)
    except ImportError as e:
        raise FilterPluginError(reference, str(e)) from e
    target = getattr(module, attr, None)
    if target is None:
        raise FilterPluginError(reference, f"module has no attribute {attr!r}")

    if isinstance(target, MessageFilter):
        target.name = name
        return target
    if isinstance(target, type) and issubclass(target, MessageFilter):
        instance = target(**options)
        instance.name = name
        return instance
    if callable(target):
        return FunctionFilter(name, target)
    raise FilterPluginError(reference, "target is not callable")


def build_filter_chain(
    configs: Iterable[FilterConfig] = (),
    pronunciations: Optional[Mapping[str, str]] = None,
) -> FilterChain:
    """
    Build a profile's chain from its filter configuration.

    Raises:
        FilterPluginError: If a plugin filter cannot be loaded
    """
    chain = FilterChain([_build_builtin(name, {}, True) for name in BUILTIN_ORDER])

    for config in configs:
        if config.name in BUILTIN_ORDER and not config.plugin and not config.rules:
            chain.replace(_build_builtin(config.name, config.options, config.enabled))
            continue

        if config.plugin:
            flt = load_plugin(config.plugin, config.name, config.options)
        elif config.rules:
            flt = RuleFilter(config.name, config.rules)
        else:
            logger.warning(f"Filter {config.name!r} has no plugin or rules; ignoring it")
            continue
        flt.enabled = config.enabled
        chain.insert(flt, before=config.before, after=config.after)

    if pronunciations:
        pron = chain.get("pronunciation")
        if isinstance(pron, PronunciationFilter):
            for original, spoken in pronunciations.items():
                pron.add_replacement(original, spoken)

    return chain

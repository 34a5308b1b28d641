"""Base class for message filters."""

from typing import Callable, Optional

from agent_tts.models.parsed import ParsedMessage

FilterFunc = Callable[[ParsedMessage], Optional[ParsedMessage]]


class MessageFilter:
    """
    A named, toggleable transform in a filter chain.

    apply() returns the (possibly modified) message, or None to drop it.
    Dropping short-circuits the rest of the chain.
    """

    name: str = "filter"

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def apply(self, message: ParsedMessage) -> Optional[ParsedMessage]:
        raise NotImplementedError

    def __repr__(self) -> str:
        state = "on" if self.enabled else "off"
        return f"<{type(self).__name__} {self.name!r} ({state})>"


class TextFilter(MessageFilter):
    """Filter that only rewrites content; an empty result drops the message."""

    def transform(self, text: str) -> str:
        raise NotImplementedError

    def apply(self, message: ParsedMessage) -> Optional[ParsedMessage]:
        if not message.content:
            return message
        content = self.transform(message.content)
        if not content.strip():
            return None
        return message.with_content(content)


class FunctionFilter(MessageFilter):
    """Adapter for user-supplied plugin callables."""

    def __init__(self, name: str, func: FilterFunc, enabled: bool = True):
        super().__init__(enabled)
        self.name = name
        self.func = func

    def apply(self, message: ParsedMessage) -> Optional[ParsedMessage]:
        result = self.func(message)
        if result is not None and not isinstance(result, ParsedMessage):
            raise TypeError(
                f"Filter {self.name!r} returned {type(result).__name__}, "
                "expected ParsedMessage or None"
            )
        return result

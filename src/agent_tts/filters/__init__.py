"""
Text filters that turn parsed messages into speech-ready text.
"""

from agent_tts.filters.base import FunctionFilter, MessageFilter, TextFilter
from agent_tts.filters.chain import BUILTIN_ORDER, FilterChain, build_filter_chain

__all__ = [
    "BUILTIN_ORDER",
    "FilterChain",
    "FunctionFilter",
    "MessageFilter",
    "TextFilter",
    "build_filter_chain",
]

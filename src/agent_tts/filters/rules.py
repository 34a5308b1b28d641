"""Declarative pattern/replacement filters defined in profile configuration."""

import re
from typing import Iterable

from agent_tts.filters.base import TextFilter
from agent_tts.profiles import RewriteRule


class RuleFilter(TextFilter):
    """Apply regex replacement rules in order. An empty result drops the message."""

    def __init__(self, name: str, rules: Iterable[RewriteRule], enabled: bool = True):
        super().__init__(enabled)
        self.name = name
        self.rules = [
            (re.compile(rule.pattern, re.IGNORECASE if rule.ignore_case else 0), rule.replacement)
            for rule in rules
        ]

    def transform(self, text: str) -> str:
        for pattern, replacement in self.rules:
            text = pattern.sub(replacement, text)
        return text

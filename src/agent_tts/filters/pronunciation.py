"""
Pronunciation rewriting for technical text.

Jargon and acronyms are replaced with phonetic spellings in a single pass,
so one replacement never feeds another ("async" stays "a sync" rather than
becoming "a sink"). Symbols are replaced literally. camelCase identifiers
are split into words and version numbers are spelled out.
"""

import re
from typing import Mapping, Optional

from agent_tts.filters.base import TextFilter

DEFAULT_REPLACEMENTS: dict[str, str] = {
    "git": "ghit",
    "github": "ghit hub",
    "gif": "jiff",
    "npm": "N P M",
    "api": "A P I",
    "url": "U R L",
    "sql": "sequel",
    "sqlite": "sequel light",
    "json": "jay son",
    "xml": "X M L",
    "html": "H T M L",
    "css": "C S S",
    ".js": "dot J S",
    ".ts": "dot T S",
    "ui": "U I",
    "ux": "U X",
    "cli": "C L I",
    "gui": "gooey",
    "ide": "I D E",
    "os": "O S",
    "io": "I O",
    "tts": "T T S",
    "async": "a sync",
    "sync": "sink",
    "regex": "reg ex",
    "enum": "e num",
    "oauth": "oh auth",
    "uuid": "U U I D",
    "guid": "goo id",
    "rest": "REST",
    "graphql": "graph Q L",
    "yaml": "yam-ul",
    "dll": "D L L",
    "exe": "E X E",
    "pdf": "P D F",
    "png": "P N G",
    "jpg": "jay peg",
    "jpeg": "jay peg",
    "svg": "S V G",
    "mp3": "M P 3",
    "mp4": "M P 4",
    "~": "tilde",
    "`": "backtick",
    "/": "slash",
    "\\": "backslash",
    "@": "at",
    "#": "hash",
    "$": "dollar",
    "%": "percent",
    "^": "caret",
    "&": "and",
    "*": "asterisk",
}

CAMEL_CASE_RE = re.compile(r"([a-z])([A-Z])")
VERSION_RE = re.compile(r"(?<![\w.])(v?)(\d+(?:\.\d+){2,})(?![\w]|\.\d)|(?<![\w.])(v)(\d+\.\d+)(?![\w]|\.\d)")
MULTISPACE_RE = re.compile(r"[^\S\n]{2,}")

_ONES = [
    "zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine",
    "ten", "eleven", "twelve", "thirteen", "fourteen", "fifteen", "sixteen",
    "seventeen", "eighteen", "nineteen",
]
_TENS = ["", "", "twenty", "thirty", "forty", "fifty", "sixty", "seventy", "eighty", "ninety"]


def number_to_words(value: int) -> str:
    """Spell 0-999 in words; larger numbers are returned as digits."""
    if value < 20:
        return _ONES[value]
    if value < 100:
        tens, ones = divmod(value, 10)
        return _TENS[tens] + ("" if ones == 0 else f"-{_ONES[ones]}")
    if value < 1000:
        hundreds, rest = divmod(value, 100)
        words = f"{_ONES[hundreds]} hundred"
        return words if rest == 0 else f"{words} {number_to_words(rest)}"
    return str(value)


def spell_version(version: str) -> str:
    """'1.2.3' -> 'one dot two dot three'."""
    return " dot ".join(
        number_to_words(int(part)) if len(part) <= 3 else part for part in version.split(".")
    )


def _key_pattern(key: str) -> str:
    escaped = re.escape(key)
    prefix = r"\b" if key[0].isalnum() or key[0] == "_" else ""
    suffix = r"\b" if key[-1].isalnum() or key[-1] == "_" else ""
    return f"{prefix}{escaped}{suffix}"


class PronunciationFilter(TextFilter):
    name = "pronunciation"

    def __init__(
        self,
        replacements: Optional[Mapping[str, str]] = None,
        use_defaults: bool = True,
        enabled: bool = True,
    ):
        super().__init__(enabled)
        self.replacements: dict[str, str] = dict(DEFAULT_REPLACEMENTS) if use_defaults else {}
        for key, value in (replacements or {}).items():
            self.replacements[key.lower()] = value
        self._pattern: Optional[re.Pattern] = None

    def add_replacement(self, original: str, replacement: str) -> None:
        self.replacements[original.lower()] = replacement
        self._pattern = None

    def remove_replacement(self, original: str) -> None:
        self.replacements.pop(original.lower(), None)
        self._pattern = None

    def _compiled(self) -> Optional[re.Pattern]:
        if self._pattern is None and self.replacements:
            # Longest keys first so 'github' wins over 'git', 'sqlite' over 'sql'
            keys = sorted(self.replacements, key=len, reverse=True)
            self._pattern = re.compile(
                "|".join(_key_pattern(k) for k in keys), re.IGNORECASE
            )
        return self._pattern

    def _replace(self, match: re.Match) -> str:
        token = match.group(0)
        replacement = self.replacements.get(token.lower(), token)
        if not token[0].isalnum():
            # Symbols and dotted suffixes are glued to neighbours; pad them
            return f" {replacement} "
        return replacement

    def transform(self, text: str) -> str:
        text = VERSION_RE.sub(self._replace_version, text)
        text = CAMEL_CASE_RE.sub(r"\1 \2", text)

        pattern = self._compiled()
        if pattern is not None:
            text = pattern.sub(self._replace, text)

        text = MULTISPACE_RE.sub(" ", text)
        return "\n".join(line.strip() for line in text.split("\n")).strip()

    @staticmethod
    def _replace_version(match: re.Match) -> str:
        prefix = match.group(1) or match.group(3) or ""
        version = match.group(2) or match.group(4)
        spoken = spell_version(version)
        return f"version {spoken}" if prefix else spoken

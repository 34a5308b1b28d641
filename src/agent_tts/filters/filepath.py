"""
File path simplification for speech.

A path like /usr/local/bin/node is spoken as "node"; ./src/Button.tsx
as "Button dot T S X". Very generic directory names keep their parent
("local slash bin") so the listener can still tell them apart.
"""

import re

from agent_tts.filters.base import TextFilter

GENERIC_DIR_NAMES = {"storage", "share", "local", "bin", "lib", "src", "dist"}

BACKTICK_PATH_RE = re.compile(r"`([^`]*[\\/][^`]*)`")
QUOTED_PATH_RE = re.compile(r"\"([^\"\s]*[\\/][^\"\s]*)\"")
PAREN_PATH_RE = re.compile(r"\(([^)\s]*[\\/][^)\s]*)\)")
STANDALONE_PATH_RE = re.compile(
    r"(?:(?<=\s)|^)((?:~|\.{1,2}|[A-Za-z]:)?[\\/][\w.-]+(?:[\\/][\w.-]+)+[\\/]?)(?=\s|$)",
    re.MULTILINE,
)
WINDOWS_ENV_RE = re.compile(r"%[A-Z_]+%")
PATH_INDICATOR_RE = re.compile(r"^(?:\.|~|/|[A-Za-z]:|\\\\)")
EXTENSION_RE = re.compile(r"\.\w{1,4}$")
SEPARATOR_RE = re.compile(r"[\\/]")


def looks_like_path(text: str) -> bool:
    """True for text with a separator and either a path prefix or an extension."""
    if not SEPARATOR_RE.search(text):
        return False
    return bool(PATH_INDICATOR_RE.match(text) or EXTENSION_RE.search(text))


def simplify_path(path: str) -> str:
    """
    Reduce a path to its last meaningful segment.

    Returns:
        The last segment, "parent/last" for generic directory names, or
        "filepath" when nothing usable is left.
    """
    # Placeholders like ~/.cache/<project-slug>/logs: keep what follows
    if "<" in path and ">" in path:
        after = path.split(">", 1)[1]
        if after:
            path = after

    path = re.sub(r"[\\/]+$", "", path)
    segments = SEPARATOR_RE.split(path)
    last = segments[-1] if segments else ""

    if last in ("", ".", ".."):
        parent = segments[-2] if len(segments) > 1 else ""
        return parent or "filepath"

    if last.lower() in GENERIC_DIR_NAMES and len(segments) > 1:
        parent = segments[-2]
        if parent and parent not in (".", "..", "~"):
            return f"{parent}/{last}"

    return last


def speak_filename(name: str) -> str:
    """Spell dots and short extensions: 'vite.config.ts' -> 'vite dot config dot T S'."""
    prefix = ""
    if name.startswith(".") and len(name) > 1:
        prefix = "dot "
        name = name[1:]

    parts = name.split(".")
    if len(parts) == 1 or not parts[-1]:
        return prefix + name.rstrip(".")

    *stem, ext = parts
    if ext.isalpha() and len(ext) <= 3:
        ext = " ".join(ext.upper())
    return prefix + " dot ".join([p for p in stem if p] + [ext])


def speak_path(path: str) -> str:
    simplified = simplify_path(path)
    return " slash ".join(speak_filename(seg) for seg in simplified.split("/"))


class FilepathFilter(TextFilter):
    name = "filepath"

    def transform(self, text: str) -> str:
        text = BACKTICK_PATH_RE.sub(
            lambda m: speak_path(WINDOWS_ENV_RE.sub("", m.group(1))), text
        )
        text = QUOTED_PATH_RE.sub(self._replace_if_path, text)
        text = PAREN_PATH_RE.sub(self._replace_if_path, text)
        return STANDALONE_PATH_RE.sub(self._replace_standalone, text)

    @staticmethod
    def _replace_if_path(match: re.Match) -> str:
        path = match.group(1)
        if not looks_like_path(path):
            return match.group(0)
        return speak_path(path)

    @staticmethod
    def _replace_standalone(match: re.Match) -> str:
        path = match.group(1)
        # Sentence punctuation glued to the path stays in the sentence
        trimmed = path.rstrip(".,")
        trailing = path[len(trimmed) :]
        return speak_path(trimmed) + trailing

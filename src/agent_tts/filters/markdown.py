"""
Markdown cleanup for speech.

Removes code fences, inline-code markers, link syntax, headers and emphasis,
and punctuates lists so the engine pauses between items.
"""

import re

from agent_tts.filters.base import TextFilter

CODE_FENCE_RE = re.compile(r"```[\s\S]*?```")
INLINE_CODE_RE = re.compile(r"`([^`]+)`")
IMAGE_RE = re.compile(r"!\[([^\]]*)\]\([^)]+\)")
LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]+\)")
HEADER_RE = re.compile(r"^[^\S\n]*#{1,6}[^\S\n]+", re.MULTILINE)
BOLD_ITALIC_RE = re.compile(r"\*\*\*([^*]+)\*\*\*")
BOLD_RE = re.compile(r"\*\*([^*]+)\*\*")
ITALIC_STAR_RE = re.compile(r"(?<![\w*])\*(?!\s)([^*\n]+?)(?<!\s)\*(?![\w*])")
UNDERSCORE_RE = re.compile(r"(?<!\w)_{1,3}([^_\n]+?)_{1,3}(?!\w)")
STRIKE_RE = re.compile(r"~~([^~]+)~~")
HRULE_RE = re.compile(r"^[^\S\n]*(?:-{3,}|\*{3,}|_{3,})[^\S\n]*$", re.MULTILINE)
BLOCKQUOTE_RE = re.compile(r"^[^\S\n]*>[^\S\n]?", re.MULTILINE)
TABLE_RULE_RE = re.compile(r"^[ \t]*\|?[ \t:|-]*-{3,}[ \t:|-]*\|?[ \t]*$", re.MULTILINE)

NUMBERED_ITEM_RE = re.compile(r"^\s*\d+\.\s+")
BULLET_ITEM_RE = re.compile(r"^\s*[-*+]\s+")
BULLET_MARKER_RE = re.compile(r"^[ \t]*[-*+][ \t]+", re.MULTILINE)
NUMBERED_MARKER_RE = re.compile(r"^([ \t]*\d+)\.[ \t]+", re.MULTILINE)

SENTENCE_END_RE = re.compile(r"[.!?]$")


def _is_list_item(line: str) -> bool:
    return bool(NUMBERED_ITEM_RE.match(line) or BULLET_ITEM_RE.match(line))


def _list_item_content(line: str) -> str:
    line = NUMBERED_ITEM_RE.sub("", line, count=1)
    return BULLET_ITEM_RE.sub("", line, count=1).strip()


def _ends_with_punctuation(text: str) -> bool:
    return bool(SENTENCE_END_RE.search(text.strip()))


def punctuate_lists(text: str) -> str:
    """
    End list items and the line introducing a list with a period.

    Items already ending in . ! or ? are left alone; an intro line ending
    in ':' has the colon replaced.
    """
    lines = text.split("\n")
    out: list[str] = []

    for i, line in enumerate(lines):
        next_non_empty = next((l for l in lines[i + 1 :] if l.strip()), None)

        if _is_list_item(line):
            content = _list_item_content(line)
            if content and not _ends_with_punctuation(content):
                stripped = line.rstrip()
                line = stripped + "." + line[len(stripped) :]
        elif line.strip() and next_non_empty is not None and _is_list_item(next_non_empty):
            stripped = line.rstrip()
            if not _ends_with_punctuation(stripped):
                line = stripped[:-1] + "." if stripped.endswith(":") else stripped + "."

        out.append(line)

    return "\n".join(out)


class MarkdownFilter(TextFilter):
    name = "markdown"

    def transform(self, text: str) -> str:
        # Code blocks first so their contents can't match anything below
        text = CODE_FENCE_RE.sub("", text)
        text = INLINE_CODE_RE.sub(r"\1", text)
        text = IMAGE_RE.sub(r"\1", text)
        text = LINK_RE.sub(r"\1", text)
        text = HEADER_RE.sub("", text)
        text = HRULE_RE.sub("", text)
        text = TABLE_RULE_RE.sub("", text)
        text = BLOCKQUOTE_RE.sub("", text)

        text = BOLD_ITALIC_RE.sub(r"\1", text)
        text = BOLD_RE.sub(r"\1", text)
        text = ITALIC_STAR_RE.sub(r"\1", text)
        text = UNDERSCORE_RE.sub(r"\1", text)
        text = STRIKE_RE.sub(r"\1", text)

        text = punctuate_lists(text)
        text = BULLET_MARKER_RE.sub("", text)
        text = NUMBERED_MARKER_RE.sub(r"\1. ", text)

        text = re.sub(r"[^\S\n]+", " ", text)
        text = "\n".join(line.strip() for line in text.split("\n"))
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()

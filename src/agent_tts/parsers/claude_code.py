"""
Claude Code session log parser.

Claude Code appends one JSON object per line to
~/.claude/projects/<project>/<session>.jsonl. Conversational records have
`type` "user" or "assistant" and a `message` whose `content` is either a
string or a list of typed blocks (text, tool_use, tool_result, thinking,
image). Most records carry the session's `cwd`.
"""

import logging
from pathlib import Path
from typing import Any, Optional

from agent_tts.models.parsed import ImageRef, ParsedMessage
from agent_tts.parsers.images import extract_image_blocks, extract_vision_refs
from agent_tts.parsers.metadata import LogGrowthMode, ParserMetadata
from agent_tts.parsers.utils import coerce_timestamp, extract_text_content, iter_json_lines

logger = logging.getLogger(__name__)

# Claude Code wraps slash commands and local command output in these tags
_COMMAND_MARKERS = ("<command-name>", "<local-command-stdout>", "<command-message>")


class ClaudeCodeParser:
    """Parser for Claude Code JSONL session logs."""

    def __init__(self) -> None:
        self._metadata = ParserMetadata(
            name="claude-code",
            growth_mode=LogGrowthMode.APPEND,
            file_suffixes=(".jsonl",),
            description="Claude Code session logs",
        )

    @property
    def metadata(self) -> ParserMetadata:
        return self._metadata

    def parse(self, raw: bytes, file_path: Path) -> list[ParsedMessage]:
        records = list(iter_json_lines(raw, source=str(file_path)))

        # Records without their own cwd inherit the first one seen in the batch
        batch_cwd: Optional[str] = next(
            (r["cwd"] for r in records if isinstance(r.get("cwd"), str) and r["cwd"]),
            None,
        )

        messages: list[ParsedMessage] = []
        for record in records:
            message = self._build_message(record, batch_cwd)
            if message is not None:
                messages.append(message)
        return messages

    def _build_message(
        self, record: dict[str, Any], batch_cwd: Optional[str]
    ) -> Optional[ParsedMessage]:
        record_type = record.get("type")
        body = record.get("message")
        if record_type not in ("user", "assistant") or not isinstance(body, dict):
            return None
        if record.get("isMeta") or record.get("isSidechain"):
            return None

        content = body.get("content")
        images: list[ImageRef] = extract_image_blocks(content)

        if record_type == "user":
            text = self._user_text(content)
        else:
            text = extract_text_content(content, separator="\n\n")
            text, vision = extract_vision_refs(text)
            images.extend(vision)

        if not text.strip():
            return None

        return ParsedMessage(
            role=record_type,
            content=text,
            timestamp=coerce_timestamp(record.get("timestamp")),
            cwd=record.get("cwd") or batch_cwd,
            images=images,
        )

    @staticmethod
    def _user_text(content: Any) -> str:
        # Tool results come back as user records; they are not things the user said
        if isinstance(content, list) and any(
            isinstance(item, dict) and item.get("type") == "tool_result"
            for item in content
        ):
            return ""
        text = extract_text_content(content, separator="\n\n")
        if text.lstrip().startswith(_COMMAND_MARKERS):
            return ""
        return text

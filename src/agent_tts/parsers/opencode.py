"""
OpenCode message-part parser.

OpenCode writes every message part as its own immutable JSON file under
~/.local/share/opencode/storage/part/<messageID>/<partID>.json. Text parts
look like:

    {"type": "text", "text": "...", "sessionID": "ses_..", "messageID": "msg_..",
     "time": {"start": 1718000000000}}

The part does not say who wrote it. Role and working directory come from
the companion message file storage/message/<sessionID>/<messageID>.json.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from agent_tts.models.parsed import ParsedMessage
from agent_tts.parsers.metadata import LogGrowthMode, ParserMetadata
from agent_tts.parsers.utils import coerce_timestamp
from agent_tts.utils.timeutil import from_epoch

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_DIR = Path("~/.local/share/opencode/storage").expanduser()


class OpenCodeParser:
    """Parser for OpenCode per-part JSON files."""

    def __init__(self, storage_dir: Optional[Path] = None) -> None:
        self.storage_dir = storage_dir or DEFAULT_STORAGE_DIR
        self._metadata = ParserMetadata(
            name="opencode",
            growth_mode=LogGrowthMode.NEW_FILE,
            file_suffixes=(".json",),
            description="OpenCode message part files",
        )

    @property
    def metadata(self) -> ParserMetadata:
        return self._metadata

    def _message_path(self, session_id: str, message_id: str) -> Path:
        return self.storage_dir / "message" / session_id / f"{message_id}.json"

    def _load_message_info(self, session_id: str, message_id: str) -> Optional[dict[str, Any]]:
        path = self._message_path(session_id, message_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.debug(f"Message file not found: {path}")
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Cannot read message file {path}: {e}")
            return None
        return data if isinstance(data, dict) else None

    def parse(self, raw: bytes, file_path: Path) -> list[ParsedMessage]:
        try:
            part = json.loads(raw.decode("utf-8", errors="replace"))
        except json.JSONDecodeError:
            logger.debug(f"Skipping invalid JSON part: {file_path}")
            return []

        if not isinstance(part, dict) or part.get("type") != "text":
            return []
        text = part.get("text")
        if not isinstance(text, str) or not text.strip():
            return []
        # Synthetic parts are tool output OpenCode injects, not spoken text
        if part.get("synthetic"):
            return []

        session_id = part.get("sessionID")
        message_id = part.get("messageID")
        if not session_id or not message_id:
            logger.debug(f"Part without sessionID/messageID: {file_path.name}")
            return []

        info = self._load_message_info(session_id, message_id)
        if info is None:
            return []

        role = info.get("role")
        if role not in ("user", "assistant"):
            logger.debug(f"Skipping {role} part: {file_path.name}")
            return []

        path_info = info.get("path") or {}
        cwd = path_info.get("cwd") if isinstance(path_info, dict) else None

        return [
            ParsedMessage(
                role=role,
                content=text,
                timestamp=self._timestamp(part, info, file_path),
                cwd=cwd,
            )
        ]

    @staticmethod
    def _timestamp(part: dict[str, Any], info: dict[str, Any], file_path: Path):
        start = (part.get("time") or {}).get("start")
        if isinstance(start, (int, float)) and start > 0:
            return coerce_timestamp(start)

        created = (info.get("time") or {}).get("created") or info.get("createdAt")
        if created:
            return coerce_timestamp(created)

        try:
            stat = file_path.stat()
        except OSError:
            return coerce_timestamp(None)
        return from_epoch(getattr(stat, "st_birthtime", stat.st_ctime))

"""
OpenAI Codex session log parser.

Codex stores JSONL session logs under ~/.codex/sessions/YYYY/MM/DD/*.jsonl.
Each line contains a JSON object with a `type` and `payload`.
Key record types:
- session_meta: session id, cwd, cli_version, originator
- turn_context: per-turn cwd, model, approval policy
- response_item: user/assistant messages, reasoning blocks, tool calls
- event_msg: agent_message / agent_reasoning / token_count events

Assistant text appears both as a response_item message and as an
event_msg agent_message; only response_item messages are used so each
turn is spoken once.
"""

import json
import logging
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Any, Optional

from agent_tts.models.parsed import ParsedMessage
from agent_tts.parsers.images import extract_vision_refs
from agent_tts.parsers.metadata import LogGrowthMode, ParserMetadata
from agent_tts.parsers.utils import coerce_timestamp, iter_json_lines

logger = logging.getLogger(__name__)

_TEXT_ITEM_TYPES = {"input_text", "output_text", "text"}

SESSION_CWD_CACHE_SIZE = 256


class CodexParser:
    """Parser for OpenAI Codex JSONL session logs."""

    def __init__(self, cwd_cache_size: int = SESSION_CWD_CACHE_SIZE) -> None:
        self._metadata = ParserMetadata(
            name="codex",
            growth_mode=LogGrowthMode.APPEND,
            file_suffixes=(".jsonl",),
            description="OpenAI Codex session logs",
        )
        # Session cwd per file (LRU); later batches no longer contain session_meta.
        # An evicted file falls back to re-reading its header.
        self._session_cwd: OrderedDict[str, Optional[str]] = OrderedDict()
        self._cwd_cache_size = cwd_cache_size
        self._lock = threading.Lock()

    @property
    def metadata(self) -> ParserMetadata:
        return self._metadata

    def _iter_sample_lines(self, file_path: Path, max_lines: int = 20) -> list[str]:
        """Read up to N lines from the head of a file."""
        lines: list[str] = []
        with file_path.open("r", encoding="utf-8", errors="ignore") as f:
            for idx, line in enumerate(f):
                if idx >= max_lines:
                    break
                if line.strip():
                    lines.append(line)
        return lines

    def _lookup_session_cwd(self, file_path: Path) -> Optional[str]:
        key = str(file_path)
        with self._lock:
            if key in self._session_cwd:
                self._session_cwd.move_to_end(key)
                return self._session_cwd[key]

        cwd: Optional[str] = None
        try:
            for line in self._iter_sample_lines(file_path):
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if data.get("type") in ("session_meta", "turn_context"):
                    cwd = (data.get("payload") or {}).get("cwd") or None
                    if cwd:
                        break
        except OSError as e:
            logger.debug(f"Cannot read session header of {file_path.name}: {e}")

        self._remember_cwd(key, cwd)
        return cwd

    def _remember_cwd(self, key: str, cwd: Optional[str]) -> None:
        with self._lock:
            self._session_cwd[key] = cwd
            self._session_cwd.move_to_end(key)
            while len(self._session_cwd) > self._cwd_cache_size:
                self._session_cwd.popitem(last=False)

    def parse(self, raw: bytes, file_path: Path) -> list[ParsedMessage]:
        messages: list[ParsedMessage] = []
        cwd: Optional[str] = None

        for data in iter_json_lines(raw, source=str(file_path)):
            rec_type = data.get("type")
            payload = data.get("payload") or {}
            if not isinstance(payload, dict):
                continue

            if rec_type in ("session_meta", "turn_context"):
                if payload.get("cwd"):
                    cwd = payload["cwd"]
                    self._remember_cwd(str(file_path), cwd)
                continue

            if rec_type != "response_item" or payload.get("type") != "message":
                continue

            role = payload.get("role")
            if role not in ("user", "assistant"):
                continue

            text = self._message_text(payload.get("content"), role)
            images = []
            if role == "assistant":
                text, images = extract_vision_refs(text)
            if not text.strip():
                continue

            if cwd is None:
                cwd = self._lookup_session_cwd(file_path)

            messages.append(
                ParsedMessage(
                    role=role,
                    content=text,
                    timestamp=coerce_timestamp(data.get("timestamp")),
                    cwd=cwd,
                    images=images,
                )
            )

        return messages

    @staticmethod
    def _message_text(content: Any, role: str) -> str:
        text_parts = []
        for item in content or []:
            if isinstance(item, dict) and item.get("type") in _TEXT_ITEM_TYPES:
                text = item.get("text") or ""
            elif isinstance(item, str):
                text = item
            else:
                continue
            # Codex injects environment context and instructions as user input
            if role == "user" and text.lstrip().startswith("<"):
                continue
            if text:
                text_parts.append(text)
        return "\n\n".join(text_parts)

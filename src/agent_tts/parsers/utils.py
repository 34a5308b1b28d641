"""
Utility functions shared by the format parsers.
"""

import json
import logging
from datetime import datetime
from typing import Any, Iterator, Optional

from dateutil import parser as date_parser

from agent_tts.utils.timeutil import as_utc, from_epoch, utc_now

logger = logging.getLogger(__name__)


def parse_iso_timestamp(timestamp_str: str) -> datetime:
    """
    Parse an ISO 8601 timestamp string to a UTC datetime.

    Args:
        timestamp_str: ISO 8601 formatted timestamp (e.g., "2025-10-16T19:12:28.024Z")

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        ValueError: If the timestamp string is invalid
    """
    try:
        return as_utc(date_parser.isoparse(timestamp_str))
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid timestamp format: {timestamp_str}") from e


def coerce_timestamp(value: Any, default: Optional[datetime] = None) -> datetime:
    """
    Best-effort timestamp from an ISO string or epoch milliseconds.

    Falls back to `default` (or now) when the value is missing or invalid.
    """
    if isinstance(value, (int, float)) and value > 0:
        return from_epoch(value / 1000.0)
    if isinstance(value, str) and value:
        try:
            return parse_iso_timestamp(value)
        except ValueError:
            pass
    return default or utc_now()


def iter_json_lines(raw: bytes, source: str = "") -> Iterator[dict[str, Any]]:
    """
    Decode newline-delimited JSON, skipping blank and malformed lines.

    Yields:
        Each line's JSON object (non-object values are skipped)
    """
    text = raw.decode("utf-8", errors="replace")
    for line in text.splitlines():
        if not line.strip():
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            logger.debug(f"Skipping invalid JSON line in {source}")
            continue
        if isinstance(data, dict):
            yield data


def extract_text_content(content: Any, separator: str = "\n\n") -> str:
    """
    Extract text from a message content field.

    Content can be a plain string or a list of typed blocks; only
    'text' blocks contribute (tool calls, thinking and images are skipped).
    """
    if isinstance(content, str):
        return content

    if isinstance(content, list):
        text_parts = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text":
                text = item.get("text")
                if isinstance(text, str) and text:
                    text_parts.append(text)
        return separator.join(text_parts)

    return ""

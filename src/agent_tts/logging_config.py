"""
Logging setup for agent-tts.

Configures console and rotating file handlers for a process context
("cli", "daemon", "api"). Modules log through logging.getLogger(__name__).
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from typing import Optional

from agent_tts.config import Settings, settings

_configured_context: Optional[str] = None


class JsonFormatter(logging.Formatter):
    """Render records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _build_formatter(config: Settings) -> logging.Formatter:
    if config.log_format == "json":
        return JsonFormatter()
    return logging.Formatter(
        fmt="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def setup_logging(context: str = "cli", config: Optional[Settings] = None) -> None:
    """
    Configure root logging for a process context.

    Args:
        context: Name used for the log file ({log_dir}/{context}.log)
        config: Settings to use (defaults to the global settings)

    Raises:
        PermissionError: If the log directory cannot be created
    """
    global _configured_context
    config = config or settings

    if _configured_context == context:
        return

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    root.setLevel(config.log_level.upper())
    formatter = _build_formatter(config)

    if config.log_console_enabled:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    if config.log_file_enabled:
        log_dir = config.log_directory
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / f"{context}.log",
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Third-party loggers are noisy at INFO
    for name in ("httpx", "httpcore", "openai", "watchdog", "sqlalchemy.engine"):
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured_context = context
    logging.getLogger(__name__).debug(f"Logging configured for context: {context}")

"""
Profile configuration.

A profile names one conversational source: the log files to watch, the
parser for their format, the filter chain and the voice used to speak it.
Profiles are read from a JSON file validated with Pydantic.

Example config.json:

    {
      "muted": false,
      "profiles": [
        {
          "id": "claude",
          "name": "Claude Code",
          "watch": ["~/.claude/projects/**/*.jsonl"],
          "parser": {"type": "claude-code"},
          "filters": [{"name": "length", "options": {"max_length": 800}}],
          "pronunciations": {"kubectl": "cube control"},
          "tts": {"type": "openai", "voice_id": "nova"}
        }
      ]
    }
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from agent_tts.exceptions import ConfigError

logger = logging.getLogger(__name__)


class ParserConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: str = "claude-code"


class RewriteRule(BaseModel):
    """Declarative regex replacement used by 'rules' filters."""

    pattern: str
    replacement: str = ""
    ignore_case: bool = False


class FilterConfig(BaseModel):
    """
    Configuration of one filter in a profile's chain.

    Built-in filters are configured by name (enabled flag, options).
    Any other name defines a custom filter: either declarative `rules`
    or a `plugin` reference of the form "package.module:callable".
    Custom filters go `before` or `after` a named filter, else at the end.
    """

    model_config = ConfigDict(extra="forbid")

    name: str
    enabled: bool = True
    options: dict[str, Any] = Field(default_factory=dict)
    plugin: Optional[str] = None
    rules: list[RewriteRule] = Field(default_factory=list)
    before: Optional[str] = None
    after: Optional[str] = None

    @model_validator(mode="after")
    def _single_anchor(self) -> "FilterConfig":
        if self.before and self.after:
            raise ValueError(f"Filter {self.name!r}: set only one of 'before' or 'after'")
        return self


class TTSConfig(BaseModel):
    """Speech synthesis provider settings."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["openai", "kokoro", "elevenlabs"] = "openai"
    api_key: Optional[str] = None
    voice_id: Optional[str] = None
    model: Optional[str] = None
    base_url: Optional[str] = None
    speed: Optional[float] = None
    response_format: Optional[str] = None
    voice_name: Optional[str] = None  # Display name
    avatar_url: Optional[str] = None
    profile_url: Optional[str] = None
    options: dict[str, Any] = Field(default_factory=dict)


class ProfileConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    name: str = ""
    icon: Optional[str] = None
    enabled: bool = True
    watch: list[str]
    exclude: list[str] = Field(default_factory=list)
    parser: ParserConfig = Field(default_factory=ParserConfig)
    filters: list[FilterConfig] = Field(default_factory=list)
    pronunciations: dict[str, str] = Field(default_factory=dict)
    tts: TTSConfig = Field(default_factory=TTSConfig)

    @field_validator("watch")
    @classmethod
    def _watch_not_empty(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("watch must list at least one glob pattern")
        return value

    @model_validator(mode="after")
    def _default_name(self) -> "ProfileConfig":
        if not self.name:
            self.name = self.id
        return self

    def expanded_watch(self) -> list[str]:
        """Watch patterns with ~ expanded."""
        return [str(Path(p).expanduser()) for p in self.watch]

    def expanded_exclude(self) -> list[str]:
        return [str(Path(p).expanduser()) for p in self.exclude]


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    muted: bool = False
    profiles: list[ProfileConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_ids(self) -> "AppConfig":
        seen: set[str] = set()
        duplicates = []
        for profile in self.profiles:
            if profile.id in seen:
                duplicates.append(profile.id)
            seen.add(profile.id)
        if duplicates:
            raise ValueError(f"Duplicate profile ids: {', '.join(duplicates)}")
        return self

    def get_profile(self, profile_id: str) -> Optional[ProfileConfig]:
        return next((p for p in self.profiles if p.id == profile_id), None)


def load_config(path: Path) -> AppConfig:
    """
    Load and validate a profiles file.

    Raises:
        ConfigError: If the file is missing, not JSON, or fails validation
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e


ConfigListener = Callable[[AppConfig], None]
ErrorListener = Callable[[str], None]


class FileConfigSource:
    """
    Profiles file with last-known-good semantics.

    reload() re-reads the file. A valid file replaces the current config and
    notifies change listeners; an invalid one keeps the current config and
    notifies error listeners.
    """

    def __init__(self, path: Path):
        self.path = path
        self._config: Optional[AppConfig] = None
        self._lock = threading.Lock()
        self._change_listeners: list[ConfigListener] = []
        self._error_listeners: list[ErrorListener] = []

    @property
    def current(self) -> AppConfig:
        if self._config is None:
            raise ConfigError("Configuration has not been loaded")
        return self._config

    def load(self) -> AppConfig:
        """
        Initial load. Errors propagate: there is no last-known-good yet.

        Raises:
            ConfigError: If the file is missing or invalid
        """
        config = load_config(self.path)
        with self._lock:
            self._config = config
        logger.info(f"✓ Loaded {len(config.profiles)} profile(s) from {self.path}")
        return config

    def reload(self) -> bool:
        """
        Re-read the file.

        Returns:
            True if a new configuration was applied
        """
        try:
            config = load_config(self.path)
        except ConfigError as e:
            logger.warning(f"✗ Config reload failed, keeping previous config: {e}")
            for listener in list(self._error_listeners):
                self._notify(listener, str(e))
            return False

        with self._lock:
            self._config = config
        logger.info(f"✓ Config reloaded ({len(config.profiles)} profile(s))")
        for listener in list(self._change_listeners):
            self._notify(listener, config)
        return True

    def on_change(self, listener: ConfigListener) -> None:
        self._change_listeners.append(listener)

    def on_error(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    @staticmethod
    def _notify(listener: Callable[[Any], None], payload: Any) -> None:
        try:
            listener(payload)
        except Exception as e:
            logger.error(f"Config listener failed: {e}", exc_info=True)

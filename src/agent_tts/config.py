"""
agent-tts Configuration.

Centralized process settings using Pydantic Settings.
Loads configuration from environment variables (prefixed AGENT_TTS_) and .env.

Profile configuration (what to watch and how to speak it) lives in a
separate JSON file; see agent_tts.profiles.
"""

import os
import platform
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

APP_DIR_NAME = "agent-tts"


def _xdg_dir(env_var: str, home_parts: tuple[str, ...], fallback: str) -> str:
    xdg_home = os.getenv(env_var)
    if xdg_home:
        return str(Path(xdg_home) / APP_DIR_NAME)

    home = os.getenv("HOME")
    if home:
        return str(Path(home).joinpath(*home_parts, APP_DIR_NAME))

    # Fallback for development/testing environments without HOME
    return fallback


def get_xdg_config_dir() -> str:
    """
    Get XDG-compliant config directory for agent-tts.

    Uses $XDG_CONFIG_HOME/agent-tts, else $HOME/.config/agent-tts,
    else a relative .agent_tts_config directory.

    Returns:
        str: Path to config directory
    """
    return _xdg_dir("XDG_CONFIG_HOME", (".config",), ".agent_tts_config")


def get_xdg_state_dir() -> str:
    """
    Get XDG-compliant state directory for agent-tts.

    Holds the database, stored images and logs.

    Returns:
        str: Path to state directory
    """
    return _xdg_dir("XDG_STATE_HOME", (".local", "state"), ".agent_tts_state")


def get_xdg_cache_dir() -> str:
    """
    Get XDG-compliant cache directory for agent-tts.

    Returns:
        str: Path to cache directory
    """
    return _xdg_dir("XDG_CACHE_HOME", (".cache",), ".agent_tts_cache")


def default_player_command() -> list[str]:
    """Return the audio player command line for the current platform."""
    system = platform.system()
    if system == "Darwin":
        return ["afplay"]
    if system == "Windows":
        return [
            "powershell",
            "-NoProfile",
            "-Command",
            "(New-Object Media.SoundPlayer $args[0]).PlaySync()",
        ]
    return ["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="AGENT_TTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Profiles file (JSON)
    config_file: str = ""  # Defaults to $XDG_CONFIG_HOME/agent-tts/config.json

    # Database
    database_url: str = ""  # Defaults to sqlite file in the XDG state dir
    database_echo: bool = False

    # Audio
    audio_cache_enabled: bool = True
    audio_cache_dir: str = f"{get_xdg_cache_dir()}/audio"
    player_command: list[str] | str = []  # Empty = platform default
    image_dir: str = f"{get_xdg_state_dir()}/images"

    # Watching
    watch_debounce_seconds: float = 0.25  # Coalesce bursts of modify events
    watch_use_polling: bool = platform.system() == "Darwin"
    watch_poll_interval: float = 1.0

    # Parsers
    parser_modules: list[str] | str = []  # Optional additional parser module paths
    opencode_storage_dir: str = ""  # Defaults to ~/.local/share/opencode/storage

    # Retention
    retention_days: int = 7

    # API
    api_host: str = "127.0.0.1"
    api_port: int = 3456

    # Logging
    log_level: str = "INFO"
    log_dir: str = ""  # Defaults to $XDG_STATE_HOME/agent-tts/logs if empty
    log_format: str = "standard"  # standard or json
    log_console_enabled: bool = True
    log_file_enabled: bool = True
    log_max_bytes: int = 10_485_760  # 10MB per log file
    log_backup_count: int = 5

    @property
    def config_path(self) -> Path:
        """Path of the profiles file."""
        if self.config_file:
            return Path(self.config_file).expanduser()
        return Path(get_xdg_config_dir()) / "config.json"

    @property
    def resolved_database_url(self) -> str:
        """Database URL, using an XDG sqlite file if not specified."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{Path(get_xdg_state_dir()) / 'agent-tts.db'}"

    @property
    def log_directory(self) -> Path:
        """Get the log directory path, using XDG default if not specified."""
        if self.log_dir:
            return Path(self.log_dir).expanduser()
        return Path(get_xdg_state_dir()) / "logs"

    @property
    def parser_module_list(self) -> list[str]:
        """Parser plugin modules (comma-separated env values accepted)."""
        if isinstance(self.parser_modules, str):
            return [m.strip() for m in self.parser_modules.split(",") if m.strip()]
        return list(self.parser_modules)

    @property
    def player_argv(self) -> list[str]:
        """Player command as an argv list (space-separated env values accepted)."""
        if isinstance(self.player_command, str):
            parts = self.player_command.split()
        else:
            parts = list(self.player_command)
        return parts or default_player_command()


# Global settings instance
settings = Settings()

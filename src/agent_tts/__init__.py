"""agent-tts: speak AI coding-assistant session logs as they are written."""

__version__ = "0.1.0"

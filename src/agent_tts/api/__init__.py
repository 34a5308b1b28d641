"""HTTP surface over the pipeline control operations and playback log."""

from agent_tts.api.app import create_app

__all__ = ["create_app"]

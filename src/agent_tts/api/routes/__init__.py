"""
API routes for agent-tts.
"""

from agent_tts.api.routes import control, logs

__all__ = ["control", "logs"]

"""Request dependencies."""

from fastapi import Request

from agent_tts.pipeline import Pipeline


def get_pipeline(request: Request) -> Pipeline:
    """The Pipeline the app was created for (stored in app.state)."""
    return request.app.state.pipeline

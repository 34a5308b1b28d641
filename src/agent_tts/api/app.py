"""
agent-tts FastAPI application.

The app wraps an existing Pipeline; it never owns pipeline state. The
pipeline is started and stopped by whoever created it (the CLI `run`
command).
"""

import logging

from fastapi import FastAPI

from agent_tts import __version__
from agent_tts.api.routes import control, logs
from agent_tts.pipeline import Pipeline

logger = logging.getLogger(__name__)


def create_app(pipeline: Pipeline) -> FastAPI:
    """Build the HTTP app for a pipeline (stored in app.state.pipeline)."""
    app = FastAPI(
        title="agent-tts API",
        description="Control and playback log for spoken AI assistant sessions",
        version=__version__,
        docs_url="/docs",
        redoc_url=None,
    )
    app.state.pipeline = pipeline

    @app.get("/health")
    def health() -> dict[str, str]:
        """Health check endpoint."""
        db_status = "healthy" if pipeline.database.check_connection() else "unhealthy"
        return {
            "status": "healthy" if db_status == "healthy" else "degraded",
            "database": db_status,
        }

    app.include_router(control.router, tags=["control"])
    app.include_router(logs.router, tags=["logs"])
    return app

"""Custom exceptions for agent-tts."""

from typing import Optional


class AgentTTSError(Exception):
    """Base exception for agent-tts."""

    pass


class StoreInitError(AgentTTSError):
    """Raised when the persistent state store cannot be opened at startup."""

    def __init__(self, database_url: str, cause: Exception):
        self.database_url = database_url
        self.cause = cause
        super().__init__(f"Cannot open state store at {database_url}: {cause}")


class ConfigError(AgentTTSError):
    """Raised when the profiles configuration is missing or invalid."""

    pass


class SynthesisError(AgentTTSError):
    """Raised when a speech provider fails to return audio."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class PlaybackError(AgentTTSError):
    """Raised when the audio player exits unsuccessfully."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        self.returncode = returncode
        super().__init__(message)


class FilterPluginError(AgentTTSError):
    """Raised when a plugin filter reference cannot be resolved."""

    def __init__(self, reference: str, reason: str):
        self.reference = reference
        super().__init__(f"Cannot load filter plugin {reference!r}: {reason}")


class RecordNotFoundError(AgentTTSError):
    """Raised when a control operation names a queue record that does not exist."""

    def __init__(self, record_id: int):
        self.record_id = record_id
        super().__init__(f"Queue record {record_id} not found")

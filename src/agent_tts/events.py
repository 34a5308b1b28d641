"""
Typed pipeline events and a small synchronous event bus.

External layers (CLI, HTTP API) observe the pipeline through these events;
they never mutate pipeline state except through control operations.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogAdded:
    """A queue record was created (user turn logged or assistant turn queued)."""

    record: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StatusChanged:
    """Playback started or finished."""

    playing: bool
    playing_id: Optional[int] = None
    played_id: Optional[int] = None


@dataclass(frozen=True)
class ConfigErrorEvent:
    """A configuration reload failed; the previous configuration stays active."""

    message: str


PipelineEvent = Union[LogAdded, StatusChanged, ConfigErrorEvent]
EventHandler = Callable[[PipelineEvent], None]


class EventBus:
    """
    Fan-out of pipeline events to subscribers.

    Handlers run synchronously on the publishing thread. A handler that
    raises is logged and the remaining handlers still run.
    """

    def __init__(self) -> None:
        self._handlers: list[tuple[Optional[type], EventHandler]] = []
        self._lock = threading.Lock()

    def subscribe(
        self, handler: EventHandler, event_type: Optional[type] = None
    ) -> Callable[[], None]:
        """
        Register a handler, optionally for a single event type.

        Returns:
            A callable that removes the subscription
        """
        entry = (event_type, handler)
        with self._lock:
            self._handlers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._handlers:
                    self._handlers.remove(entry)

        return unsubscribe

    def publish(self, event: PipelineEvent) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for event_type, handler in handlers:
            if event_type is not None and not isinstance(event, event_type):
                continue
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Event handler failed for {type(event).__name__}: {e}", exc_info=True
                )

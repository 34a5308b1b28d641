"""
Message processor: change batches in, queue records out.

For every parsed message of a batch:
- user turns are stored in the USER state (logged, never spoken)
- assistant turns go through the profile's filter chain; a non-empty
  result is stored QUEUED and handed to the playback queue, an empty or
  dropped result leaves no trace

Each message is persisted in its own transaction so one failure does not
block the rest of the batch.
"""

import logging
from typing import Callable, Optional

from agent_tts.db.connection import Database
from agent_tts.db.repositories import QueueRecordRepository
from agent_tts.events import EventBus, LogAdded
from agent_tts.filters.chain import FilterChain
from agent_tts.models.db import MessageRole
from agent_tts.models.parsed import ParsedMessage
from agent_tts.parsers.base import UnknownParserError
from agent_tts.parsers.images import ImageStore
from agent_tts.parsers.registry import ParserRegistry
from agent_tts.watch import ChangeBatch

logger = logging.getLogger(__name__)

ReadyCallback = Callable[[int], None]


class MessageProcessor:
    """Turns ChangeBatches into queue records."""

    def __init__(
        self,
        database: Database,
        registry: ParserRegistry,
        events: EventBus,
        on_ready: Optional[ReadyCallback] = None,
        image_store: Optional[ImageStore] = None,
    ):
        self.database = database
        self.registry = registry
        self.events = events
        self.on_ready = on_ready
        self.image_store = image_store
        # Profile id -> chain; replaced wholesale on config change
        self.chains: dict[str, FilterChain] = {}

    def set_chains(self, chains: dict[str, FilterChain]) -> None:
        self.chains = dict(chains)

    def process(self, batch: ChangeBatch) -> list[int]:
        """
        Parse a batch and persist its messages.

        Returns:
            Ids of the records created, in file order
        """
        try:
            parser = self.registry.get(batch.parser_type)
        except UnknownParserError as e:
            logger.error(f"✗ [{batch.profile_id}] {e}")
            return []

        try:
            messages = parser.parse(batch.raw, batch.file_path)
        except Exception as e:
            logger.error(
                f"✗ [{batch.profile_id}] Parser {batch.parser_type} failed on "
                f"{batch.file_path.name}: {e}",
                exc_info=True,
            )
            return []

        if not messages:
            return []
        logger.debug(f"[{batch.profile_id}] {len(messages)} message(s) from {batch.file_path.name}")

        record_ids = []
        for message in messages:
            try:
                record_id = self._process_message(batch, message)
            except Exception as e:
                logger.error(
                    f"✗ [{batch.profile_id}] Failed to store message from "
                    f"{batch.file_path.name}: {e}",
                    exc_info=True,
                )
                continue
            if record_id is not None:
                record_ids.append(record_id)
        return record_ids

    def _process_message(self, batch: ChangeBatch, message: ParsedMessage) -> Optional[int]:
        if message.role == MessageRole.USER.value:
            role = MessageRole.USER
            filtered_text = message.content
        else:
            chain = self.chains.get(batch.profile_id)
            result = chain.apply(message) if chain is not None else message
            if result is None or not result.content.strip():
                logger.debug(f"[{batch.profile_id}] Message dropped by filters")
                return None
            role = MessageRole.ASSISTANT
            filtered_text = result.content

        images = self._store_images(message)

        with self.database.session() as session:
            record = QueueRecordRepository(session).add(
                timestamp=message.timestamp,
                file_path=str(batch.file_path),
                profile_id=batch.profile_id,
                original_text=message.content,
                filtered_text=filtered_text,
                role=role,
                cwd=message.cwd,
                images=images,
            )
            record_id = record.id
            payload = record.to_dict()

        self.events.publish(LogAdded(record=payload))
        if role == MessageRole.ASSISTANT and self.on_ready is not None:
            self.on_ready(record_id)
        return record_id

    def _store_images(self, message: ParsedMessage) -> list[str]:
        if not message.images or self.image_store is None:
            return []
        try:
            return self.image_store.save_all(message.images)
        except OSError as e:
            logger.warning(f"Cannot store message images: {e}")
            return []

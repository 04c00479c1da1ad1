"""Read receipts.

Marking a message read is best effort: unknown conversations or messages are
logged and dropped. Every call that finds the message re-saves the
conversation and rebroadcasts it, even when the reader was already recorded.
The updated conversation goes to every other connection in the room and,
separately, to the reporting connection.
"""
import logging
from typing import Any, Dict, Optional

from together.errors import (
    ConversationNotFound,
    MessageNotFound,
    NotAParticipant,
    TogetherError,
)

from .directory import ConnectionDirectory
from .schemas import Conversation
from .service import ConversationQueries
from .store import ConversationStore

logger = logging.getLogger(__name__)

MESSAGE_READ = "messageRead"


class ReadReceiptTracker:
    def __init__(
        self,
        store: ConversationStore,
        queries: ConversationQueries,
        directory: ConnectionDirectory,
    ) -> None:
        self.store = store
        self.queries = queries
        self.directory = directory

    def _require_message(self, user_id: str, conversation_id: str, message_id: str) -> Conversation:
        conversation = self.store.get(conversation_id)
        if conversation is None:
            raise ConversationNotFound()
        if not conversation.is_participant(user_id):
            raise NotAParticipant()
        if self.store.get_message(conversation_id, message_id) is None:
            raise MessageNotFound()
        return conversation

    async def mark_read(
        self,
        user_id: str,
        conversation_id: str,
        message_id: str,
        reporter_handle: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Record ``user_id`` as a reader of a message and republish.

        Returns:
            The populated conversation that was broadcast, or None when the
            receipt was dropped.
        """
        try:
            self._require_message(user_id, conversation_id, message_id)
            added = self.store.add_reader(conversation_id, message_id, user_id)
        except TogetherError as exc:
            logger.warning(
                "[Receipts] Dropped read of %s in %s by %s: %s",
                message_id, conversation_id, user_id, exc.message,
            )
            return None
        logger.debug("[Receipts] %s read %s (new=%s)", user_id, message_id, added)

        conversation = self.store.get(conversation_id, with_messages=True)
        payload = {"conversation": self.queries.populate(conversation, include_messages=True)}
        await self.directory.broadcast(conversation_id, MESSAGE_READ, payload, exclude_handle=reporter_handle)
        if reporter_handle:
            await self.directory.send(reporter_handle, MESSAGE_READ, payload)
        return payload["conversation"]

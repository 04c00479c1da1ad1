"""Decides which conversation a new message belongs to."""
import logging
from dataclasses import dataclass
from typing import Optional

from together.errors import ConversationNotFound, InvalidMessage, UserNotFound
from together.users.service import UserStore

from .store import ConversationStore, DuplicateDirectConversation

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    conversation_id: str
    created: bool = False


class ConversationResolver:
    """Resolve-or-create step of sending a message.

    An explicit conversation id is returned as-is; participation is checked by
    the caller. A recipient id resolves to the single direct conversation of
    the pair, creating it on first contact.
    """

    def __init__(self, store: ConversationStore, users: UserStore) -> None:
        self.store = store
        self.users = users

    def resolve(
        self,
        sender_id: str,
        conversation_id: Optional[str] = None,
        recipient_id: Optional[str] = None,
    ) -> Resolution:
        if conversation_id:
            return Resolution(conversation_id)
        if not recipient_id:
            raise InvalidMessage("conversationId or recipientId is required")
        if recipient_id == sender_id:
            raise InvalidMessage("Cannot start a conversation with yourself")

        existing = self.store.find_direct(sender_id, recipient_id)
        if existing is not None:
            return Resolution(existing.id)

        if not self.users.exists(recipient_id):
            raise UserNotFound("Recipient not found")

        try:
            conversation = self.store.create_conversation([sender_id, recipient_id])
        except DuplicateDirectConversation:
            # Lost a concurrent first-contact race; append to the winner.
            winner = self.store.find_direct(sender_id, recipient_id)
            if winner is None:
                raise ConversationNotFound()
            logger.info("[Resolver] Reusing concurrently created conversation %s", winner.id)
            return Resolution(winner.id)

        logger.info(
            "[Resolver] Created direct conversation %s for %s -> %s",
            conversation.id, sender_id, recipient_id,
        )
        return Resolution(conversation.id, created=True)

"""Message router: resolve the conversation, append, fan out.

Sending is two explicit steps: the resolver picks (or creates) the
conversation, then the store appends the message and refreshes the
last-message cache in one transaction. Delivery happens only after the
append is durable.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from together.errors import ConversationNotFound, InvalidMessage, NotAParticipant

from .directory import ConnectionDirectory
from .resolver import ConversationResolver
from .schemas import Message
from .service import ConversationQueries
from .store import ConversationStore

logger = logging.getLogger(__name__)

NEW_MESSAGE = "newMessage"
NEW_CONVERSATION_CREATED = "newConversationCreated"


@dataclass
class MessageTarget:
    conversation_id: Optional[str] = None
    recipient_id: Optional[str] = None


@dataclass
class DeliveryResult:
    conversation_id: str
    message: Message
    created: bool = False
    formatted: Dict[str, Any] = field(default_factory=dict)


class MessageRouter:
    def __init__(
        self,
        store: ConversationStore,
        resolver: ConversationResolver,
        queries: ConversationQueries,
        directory: ConnectionDirectory,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.queries = queries
        self.directory = directory

    async def send(self, sender_id: str, target: MessageTarget, content: str) -> DeliveryResult:
        """Append a message from ``sender_id`` and deliver it.

        Raises:
            InvalidMessage: Empty content or no usable target.
            ConversationNotFound: Explicit conversation id does not resolve.
            NotAParticipant: Sender is not in the explicit conversation.
            UserNotFound: Recipient does not exist.
            PersistenceFailure: The append failed.
        """
        if not content or not content.strip():
            raise InvalidMessage()

        if target.conversation_id:
            conversation = self.store.get(target.conversation_id)
            if conversation is None:
                raise ConversationNotFound()
            if not conversation.is_participant(sender_id):
                raise NotAParticipant()

        resolution = self.resolver.resolve(
            sender_id,
            conversation_id=target.conversation_id,
            recipient_id=target.recipient_id,
        )
        message = self.store.append_message(resolution.conversation_id, sender_id, content)
        logger.info(
            "[Router] %s -> %s message %s (created=%s)",
            sender_id, resolution.conversation_id, message.id, resolution.created,
        )

        if resolution.created:
            await self._announce_new_conversation(resolution.conversation_id, sender_id, target.recipient_id)

        formatted = self.queries.format_message(message, resolution.conversation_id)
        await self.directory.broadcast(resolution.conversation_id, NEW_MESSAGE, formatted)

        return DeliveryResult(
            conversation_id=resolution.conversation_id,
            message=message,
            created=resolution.created,
            formatted=formatted,
        )

    async def _announce_new_conversation(self, conversation_id: str, sender_id: str, recipient_id: str) -> None:
        conversation = self.store.get(conversation_id)
        payload = {"conversation": self.queries.populate(conversation)}
        for user_id in (recipient_id, sender_id):
            self.directory.join_user(user_id, conversation_id)
            await self.directory.broadcast_to_user(user_id, NEW_CONVERSATION_CREATED, payload)

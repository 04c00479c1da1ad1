"""Read side of conversations: population and pagination.

Conversations are stored with bare user ids; every response replaces them
with ``{id, name, email, profileImageUrl}`` summaries.
"""
from typing import Any, Dict, Iterable, List, Optional

from together.errors import ConversationNotFound
from together.users.schemas import UserSummary
from together.users.service import UserStore

from .schemas import Conversation, Message
from .store import ConversationStore


def format_message(
    message: Message, conversation_id: str, sender: Optional[UserSummary]
) -> Dict[str, Any]:
    return {
        "id": message.id,
        "content": message.content,
        "timestamp": message.timestamp,
        "sender": sender.model_dump() if sender else None,
        "readBy": list(message.readBy),
        "conversationId": conversation_id,
    }


class ConversationQueries:
    def __init__(self, store: ConversationStore, users: UserStore) -> None:
        self.store = store
        self.users = users

    def populate(self, conversation: Conversation, include_messages: bool = False) -> Dict[str, Any]:
        """Render a conversation with its user references filled in."""
        return self.populate_many([conversation], include_messages)[0]

    def populate_many(
        self, conversations: Iterable[Conversation], include_messages: bool = False
    ) -> List[Dict[str, Any]]:
        conversations = list(conversations)
        ids: List[str] = []
        for c in conversations:
            ids.extend(c.participants)
            if c.groupAdmin:
                ids.append(c.groupAdmin)
            if c.lastMessage:
                ids.append(c.lastMessage.senderId)
            if include_messages:
                ids.extend(m.senderId for m in c.messages)
        summaries = self.users.get_summaries(ids)

        def summary(user_id: Optional[str]) -> Optional[Dict[str, Any]]:
            found = summaries.get(user_id) if user_id else None
            return found.model_dump() if found else None

        rendered = []
        for c in conversations:
            data = {
                "id": c.id,
                "participants": [summaries[p].model_dump() for p in c.participants if p in summaries],
                "isGroupChat": c.isGroupChat,
                "groupName": c.groupName,
                "groupAdmin": summary(c.groupAdmin),
                "groupImageUrl": c.groupImageUrl,
                "lastMessage": None,
                "createdAt": c.createdAt,
                "updatedAt": c.updatedAt,
            }
            if c.lastMessage:
                data["lastMessage"] = {
                    "id": c.lastMessage.id,
                    "content": c.lastMessage.content,
                    "timestamp": c.lastMessage.timestamp,
                    "sender": summary(c.lastMessage.senderId),
                }
            if include_messages:
                data["messages"] = [
                    format_message(m, c.id, summaries.get(m.senderId)) for m in c.messages
                ]
            rendered.append(data)
        return rendered

    def format_message(self, message: Message, conversation_id: str) -> Dict[str, Any]:
        sender = self.users.get_summaries([message.senderId]).get(message.senderId)
        return format_message(message, conversation_id, sender)

    def list_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        return self.populate_many(self.store.list_for_user(user_id))

    def get_for_user(self, conversation_id: str, user_id: str, include_messages: bool = False) -> Conversation:
        """Fetch a conversation the user participates in.

        Raises:
            ConversationNotFound: Absent, or the user is not a participant.
        """
        conversation = self.store.get(conversation_id, with_messages=include_messages)
        if conversation is None or not conversation.is_participant(user_id):
            raise ConversationNotFound("Conversation not found or you are not a participant.")
        return conversation

    def messages_page(
        self,
        conversation_id: str,
        user_id: str,
        limit: int,
        before_message_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """A page of messages immediately preceding a cursor, oldest first.

        The log is walked newest first; everything up to and including the
        cursor is skipped (an unknown cursor is ignored), ``limit`` messages
        are taken and the page is returned in ascending order.
        """
        conversation = self.get_for_user(conversation_id, user_id, include_messages=True)
        newest_first = list(reversed(conversation.messages))

        if before_message_id:
            index = next(
                (i for i, m in enumerate(newest_first) if m.id == before_message_id), None
            )
            if index is not None:
                newest_first = newest_first[index + 1:]

        page = list(reversed(newest_first[:limit]))
        senders = self.users.get_summaries(m.senderId for m in page)
        return [format_message(m, conversation.id, senders.get(m.senderId)) for m in page]

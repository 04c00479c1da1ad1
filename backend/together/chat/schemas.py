"""Data models for conversations, messages and the group HTTP surface.

A Conversation is the unit of persistence: its participants, group metadata,
the append-only message log and a denormalized ``lastMessage`` cache used by
list views.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class Message(BaseModel):
    """A single message embedded in a conversation's log.

    Attributes:
        id: Unique message identifier.
        senderId: Participant who sent the message.
        content: Non-empty message text.
        timestamp: Server time the message was appended.
        readBy: Users who have read the message; always includes the sender.
    """
    id: str
    senderId: str
    content: str
    timestamp: datetime
    readBy: List[str] = Field(default_factory=list)


class LastMessage(BaseModel):
    """Cached summary of the most recent message in a conversation."""
    id: str
    senderId: str
    content: str
    timestamp: datetime


class Conversation(BaseModel):
    """Direct (two participants) or group conversation.

    ``messages`` is only filled when the caller asks the store for the log;
    list views work from ``lastMessage`` alone.
    """
    id: str
    participants: List[str]
    isGroupChat: bool = False
    groupName: Optional[str] = None
    groupAdmin: Optional[str] = None
    groupImageUrl: Optional[str] = None
    messages: List[Message] = Field(default_factory=list)
    lastMessage: Optional[LastMessage] = None
    createdAt: datetime = Field(default_factory=datetime.utcnow)
    updatedAt: datetime = Field(default_factory=datetime.utcnow)

    def is_participant(self, user_id: str) -> bool:
        return user_id in self.participants


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class GroupCreate(BaseModel):
    participantIds: List[str] = Field(..., min_length=1)
    groupName: str = Field(..., min_length=1, max_length=100)


class MemberChange(BaseModel):
    conversationId: str
    userId: str


class LeaveGroupRequest(BaseModel):
    conversationId: str

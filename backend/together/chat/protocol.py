"""Realtime wire protocol.

Every frame is a JSON object whose ``type`` names the event. Inbound frames
are validated into one of the variants below before dispatch; anything else
is rejected with an ``error`` frame.
"""
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


# Outbound event names
CONNECTED = "connected"
ERROR = "error"
JOINED_CONVERSATION = "joinedConversation"
LEFT_CONVERSATION = "leftConversation"
USER_JOINED = "userJoined"
USER_LEFT = "userLeft"
PARTICIPANTS_STATUS = "conversationParticipantsStatus"
MESSAGE_ERROR = "messageError"
USER_TYPING = "userTyping"
PARTICIPANT_STATUS = "participantStatus"
USER_ONLINE = "userOnline"
USER_OFFLINE = "userOffline"


class JoinConversation(BaseModel):
    type: Literal["joinConversation"]
    conversationId: str = Field(..., min_length=1)


class LeaveConversation(BaseModel):
    type: Literal["leaveConversation"]
    conversationId: str = Field(..., min_length=1)


class SendMessage(BaseModel):
    type: Literal["sendMessage"]
    content: str = ""
    conversationId: Optional[str] = None
    recipientId: Optional[str] = None


class MessageRead(BaseModel):
    type: Literal["messageRead"]
    conversationId: str
    messageId: str


class Typing(BaseModel):
    type: Literal["typing"]
    conversationId: str
    isTyping: bool


class GetParticipantStatus(BaseModel):
    type: Literal["getParticipantStatus"]
    targetUserId: str
    conversationId: str


class UserOnlineStatus(BaseModel):
    type: Literal["userOnlineStatus"]
    isOnline: bool


InboundEvent = Annotated[
    Union[
        JoinConversation,
        LeaveConversation,
        SendMessage,
        MessageRead,
        Typing,
        GetParticipantStatus,
        UserOnlineStatus,
    ],
    Field(discriminator="type"),
]

_inbound = TypeAdapter(InboundEvent)


def parse_event(data: dict) -> InboundEvent:
    """Validate a decoded frame.

    Raises:
        pydantic.ValidationError: Unknown ``type`` or missing/invalid fields.
    """
    return _inbound.validate_python(data)

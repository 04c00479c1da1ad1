"""Realtime gateway: WebSocket endpoint for conversations and presence.

Endpoint:
    - WebSocket /ws?token=<bearer token>

Protocol Flow:
    1. Client connects with a token (query ``token`` or Authorization header)
       → invalid credentials: socket closed with 1008 before accept
       → Server sends: {type: "connected", userId, socketId, user}
       → Server joins the connection to every conversation room of the user
       → Rooms receive: {type: "userOnline", userId, userName}
    2. Client sends events, each a JSON object with a ``type``:
       joinConversation, leaveConversation, sendMessage, messageRead,
       typing, getParticipantStatus, userOnlineStatus
    3. Failures are reported on the same connection:
       sendMessage → {type: "messageError", error}
       others      → {type: "error", error, event}
    4. On disconnect → user marked offline
       → Rooms receive: {type: "userOffline", userId, lastOnline}
"""
import json
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from together.auth.service import extract_token
from together.errors import ConversationNotFound, NotAParticipant, TogetherError
from together.users.schemas import UserSummary

from . import protocol
from .messaging import MessageTarget
from .runtime import ChatRuntime, get_runtime

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


class Session:
    """One authenticated connection and the handlers for its inbound events."""

    def __init__(self, runtime: ChatRuntime, handle: str, user: UserSummary) -> None:
        self.runtime = runtime
        self.directory = runtime.directory
        self.handle = handle
        self.user = user

    @property
    def user_id(self) -> str:
        return self.user.id

    async def reply(self, event: str, /, **payload) -> None:
        await self.directory.send(self.handle, event, payload)

    async def broadcast_to_my_rooms(self, event: str, payload: dict) -> None:
        for conversation_id in self.runtime.store.conversation_ids_for(self.user_id):
            await self.directory.broadcast(conversation_id, event, payload, exclude_handle=self.handle)

    def _participant_conversation(self, conversation_id: str):
        conversation = self.runtime.store.get(conversation_id)
        if conversation is None:
            raise ConversationNotFound()
        if not conversation.is_participant(self.user_id):
            raise NotAParticipant()
        return conversation

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def open(self) -> None:
        self.runtime.presence.mark_connected(self.user_id, self.handle)
        for conversation_id in self.runtime.store.conversation_ids_for(self.user_id):
            self.directory.join(self.handle, conversation_id)
        await self.reply(
            protocol.CONNECTED,
            userId=self.user_id,
            socketId=self.handle,
            user=self.user.model_dump(),
        )
        await self.broadcast_to_my_rooms(
            protocol.USER_ONLINE, {"userId": self.user_id, "userName": self.user.name}
        )

    async def close(self) -> None:
        self.directory.unregister(self.handle)
        last_online = self.runtime.presence.mark_disconnected(self.user_id)
        await self.broadcast_to_my_rooms(
            protocol.USER_OFFLINE, {"userId": self.user_id, "lastOnline": last_online}
        )

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def dispatch(self, event: protocol.InboundEvent) -> None:
        handler = getattr(self, f"on_{event.type}")
        try:
            await handler(event)
        except TogetherError as exc:
            logger.info("[WS] %s from %s failed: %s", event.type, self.user_id, exc.message)
            if event.type == "sendMessage":
                await self.reply(protocol.MESSAGE_ERROR, error=exc.message)
            else:
                await self.reply(protocol.ERROR, error=exc.message, event=event.type)

    async def on_joinConversation(self, event: protocol.JoinConversation) -> None:
        conversation = self._participant_conversation(event.conversationId)
        self.directory.join(self.handle, conversation.id)
        await self.reply(protocol.JOINED_CONVERSATION, conversationId=conversation.id)
        await self.directory.broadcast(
            conversation.id,
            protocol.USER_JOINED,
            {"userId": self.user_id, "userName": self.user.name, "conversationId": conversation.id},
            exclude_handle=self.handle,
        )

        summaries = self.runtime.users.get_summaries(conversation.participants)
        online = [
            {"userId": p, "userName": summaries[p].name, "isOnline": True}
            for p in conversation.participants
            if p in summaries and self.directory.is_connected(p)
        ]
        await self.reply(protocol.PARTICIPANTS_STATUS, conversationId=conversation.id, participants=online)

    async def on_leaveConversation(self, event: protocol.LeaveConversation) -> None:
        conversation = self._participant_conversation(event.conversationId)
        was_member = self.handle in self.directory.members(conversation.id)
        self.directory.leave(self.handle, conversation.id)
        await self.reply(protocol.LEFT_CONVERSATION, conversationId=conversation.id)
        if not was_member:
            return
        await self.directory.broadcast(
            conversation.id,
            protocol.USER_LEFT,
            {"userId": self.user_id, "userName": self.user.name, "conversationId": conversation.id},
        )

    async def on_sendMessage(self, event: protocol.SendMessage) -> None:
        target = MessageTarget(conversation_id=event.conversationId, recipient_id=event.recipientId)
        await self.runtime.router.send(self.user_id, target, event.content)

    async def on_messageRead(self, event: protocol.MessageRead) -> None:
        await self.runtime.receipts.mark_read(
            self.user_id, event.conversationId, event.messageId, reporter_handle=self.handle
        )

    async def on_typing(self, event: protocol.Typing) -> None:
        if self.handle not in self.directory.members(event.conversationId):
            return
        await self.directory.broadcast(
            event.conversationId,
            protocol.USER_TYPING,
            {
                "userId": self.user_id,
                "userName": self.user.name,
                "conversationId": event.conversationId,
                "isTyping": event.isTyping,
            },
            exclude_handle=self.handle,
        )

    async def on_getParticipantStatus(self, event: protocol.GetParticipantStatus) -> None:
        status = self.runtime.presence.query_status(event.targetUserId)
        await self.reply(
            protocol.PARTICIPANT_STATUS,
            userId=status.userId,
            userName=status.name,
            isOnline=status.isOnline,
            conversationId=event.conversationId,
        )

    async def on_userOnlineStatus(self, event: protocol.UserOnlineStatus) -> None:
        status = self.runtime.presence.set_explicit_status(
            self.user_id, event.isOnline, handle=self.handle if event.isOnline else None
        )
        if event.isOnline:
            await self.broadcast_to_my_rooms(
                protocol.USER_ONLINE, {"userId": self.user_id, "userName": self.user.name}
            )
        else:
            await self.broadcast_to_my_rooms(
                protocol.USER_OFFLINE,
                {"userId": self.user_id, "lastOnline": status.lastOnline or datetime.utcnow()},
            )


def _handshake_token(websocket: WebSocket) -> Optional[str]:
    return websocket.query_params.get("token") or extract_token(websocket.headers.get("authorization"))


@router.websocket("/ws")
async def realtime_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for all of a user's conversations."""
    runtime = get_runtime()
    try:
        user_id, user = runtime.presence.authenticate(_handshake_token(websocket))
    except TogetherError as exc:
        logger.warning("[WS] Handshake rejected: %s", exc.message)
        await websocket.close(code=1008)  # 1008 = Policy Violation
        return

    await websocket.accept()
    handle = runtime.directory.register(websocket, user_id)
    session = Session(runtime, handle, user)
    logger.info("[WS] User %s connected as %s", user_id, handle)

    try:
        await session.open()

        while True:
            raw = await websocket.receive_text()
            try:
                event = protocol.parse_event(json.loads(raw))
            except (json.JSONDecodeError, ValidationError, TypeError) as exc:
                logger.debug("[WS] Rejected frame from %s: %s", user_id, exc)
                await session.reply(protocol.ERROR, error="Invalid event", event=None)
                continue

            logger.debug("[WS] %s received: type=%s", user_id, event.type)
            await session.dispatch(event)

    except WebSocketDisconnect:
        logger.info("[WS] User %s disconnected (%s)", user_id, handle)
    finally:
        await session.close()

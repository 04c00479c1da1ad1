"""Connection directory for real-time conversation rooms.

Tracks live WebSocket connections and which conversation rooms each one is
subscribed to. A connection is identified by a server-generated handle; the
handle is also what the presence registry stores as the user's ``socketID``.

State:
    - handle -> WebSocket
    - handle -> user id
    - conversation id -> set of handles (room)
    - handle -> set of conversation ids

Thread Safety:
    This implementation is designed for async/await usage with a single event loop.
    It is NOT thread-safe for concurrent access from multiple threads.

Performance Notes:
    - Broadcasting uses asyncio.gather() for concurrent message delivery
    - Failed connections are removed from the room during broadcast
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from .presence import PresenceRegistry

logger = logging.getLogger(__name__)


def make_frame(event: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build an outbound frame: ``{"type": event, **payload}``."""
    return jsonable_encoder({"type": event, **(payload or {})})


class ConnectionDirectory:
    """Process-wide registry of live connections and room memberships.

    Presence and room operations never raise; sending to a missing or dead
    connection is skipped.
    """

    def __init__(self, presence: PresenceRegistry) -> None:
        self.presence = presence
        self._sockets: Dict[str, WebSocket] = {}
        self._owners: Dict[str, str] = {}
        self._rooms: Dict[str, Set[str]] = {}
        self._memberships: Dict[str, Set[str]] = {}

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    def register(self, websocket: WebSocket, user_id: str) -> str:
        """Track an accepted connection and return its new handle."""
        handle = str(uuid.uuid4())
        self._sockets[handle] = websocket
        self._owners[handle] = user_id
        self._memberships[handle] = set()
        logger.info("[Directory] Registered %s for user %s", handle, user_id)
        return handle

    def unregister(self, handle: str) -> List[str]:
        """Forget a connection and drop all of its room memberships.

        Returns:
            The conversation ids the connection was joined to.
        """
        rooms = self._memberships.pop(handle, set())
        for conversation_id in rooms:
            self._discard_member(conversation_id, handle)
        self._sockets.pop(handle, None)
        self._owners.pop(handle, None)
        logger.info("[Directory] Unregistered %s (%d rooms)", handle, len(rooms))
        return sorted(rooms)

    def user_for(self, handle: str) -> Optional[str]:
        return self._owners.get(handle)

    def handle_for(self, user_id: str) -> Optional[str]:
        """The user's current handle, if it belongs to a live connection here."""
        handle = self.presence.current_handle(user_id)
        if handle is None or handle not in self._sockets:
            return None
        return handle

    def is_connected(self, user_id: str) -> bool:
        return self.handle_for(user_id) is not None

    # -------------------------------------------------------------------------
    # Rooms
    # -------------------------------------------------------------------------

    def join(self, handle: str, conversation_id: str) -> None:
        if handle not in self._sockets:
            return
        self._rooms.setdefault(conversation_id, set()).add(handle)
        self._memberships[handle].add(conversation_id)

    def leave(self, handle: str, conversation_id: str) -> None:
        self._discard_member(conversation_id, handle)
        if handle in self._memberships:
            self._memberships[handle].discard(conversation_id)

    def join_user(self, user_id: str, conversation_id: str) -> None:
        handle = self.handle_for(user_id)
        if handle is not None:
            self.join(handle, conversation_id)

    def leave_user(self, user_id: str, conversation_id: str) -> None:
        handle = self.handle_for(user_id)
        if handle is not None:
            self.leave(handle, conversation_id)

    def close_room(self, conversation_id: str) -> None:
        for handle in self._rooms.pop(conversation_id, set()):
            if handle in self._memberships:
                self._memberships[handle].discard(conversation_id)

    def members(self, conversation_id: str) -> Set[str]:
        return set(self._rooms.get(conversation_id, set()))

    def rooms_for(self, handle: str) -> List[str]:
        return sorted(self._memberships.get(handle, set()))

    def _discard_member(self, conversation_id: str, handle: str) -> None:
        room = self._rooms.get(conversation_id)
        if room is None:
            return
        room.discard(handle)
        if not room:
            del self._rooms[conversation_id]

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    async def send(self, handle: str, event: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        websocket = self._sockets.get(handle)
        if websocket is None:
            return False
        return await self._safe_send(websocket, make_frame(event, payload))

    async def broadcast(
        self,
        conversation_id: str,
        event: str,
        payload: Optional[Dict[str, Any]] = None,
        exclude_handle: Optional[str] = None,
    ) -> None:
        """Send a frame to every connection joined to a room concurrently."""
        handles = [
            h for h in self._rooms.get(conversation_id, set())
            if h != exclude_handle and h in self._sockets
        ]
        if not handles:
            return

        frame = make_frame(event, payload)
        results = await asyncio.gather(
            *[self._safe_send(self._sockets[h], frame) for h in handles],
            return_exceptions=True,
        )

        failed = [h for h, success in zip(handles, results) if success is not True]
        for handle in failed:
            self.leave(handle, conversation_id)
            logger.debug("[Directory] Removed dead connection %s from room %s", handle, conversation_id)

    async def broadcast_to_user(
        self, user_id: str, event: str, payload: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Send a frame to the user's current connection; no-op when offline."""
        handle = self.handle_for(user_id)
        if handle is None:
            return False
        return await self.send(handle, event, payload)

    async def broadcast_to_users(
        self, user_ids: Iterable[str], event: str, payload: Optional[Dict[str, Any]] = None
    ) -> None:
        await asyncio.gather(
            *[self.broadcast_to_user(u, event, payload) for u in dict.fromkeys(user_ids)]
        )

    async def _safe_send(self, connection: WebSocket, message: dict) -> bool:
        try:
            await connection.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection: {e}")
            return False

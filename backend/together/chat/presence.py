"""Presence registry: who is online, since when, and on which connection.

Presence lives on the user record (``isOnline``, ``lastOnline``, ``socketID``)
so HTTP handlers and other processes reading the users database see the same
state. Only one connection handle is tracked per user; the most recent
connection wins and any disconnect marks the user offline.
"""
import logging
from datetime import datetime
from typing import Optional, Tuple

from together.auth.service import TokenStore
from together.errors import UserNotFound
from together.users.schemas import PresenceStatus, UserSummary
from together.users.service import UserStore

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Mutates and reads the presence fields of user records."""

    def __init__(self, users: UserStore, tokens: TokenStore) -> None:
        self.users = users
        self.tokens = tokens

    def authenticate(self, token: Optional[str]) -> Tuple[str, UserSummary]:
        """Validate a bearer credential for a realtime handshake.

        Raises:
            Unauthenticated: Missing, unknown or expired token.
            UserNotFound: The token's user no longer exists.
        """
        user_id = self.tokens.resolve(token)
        user = self.users.get_user(user_id)
        if user is None:
            logger.warning("[Presence] Token for deleted user %s", user_id)
            raise UserNotFound()
        return user.id, user.summary()

    def mark_connected(self, user_id: str, handle: str) -> None:
        self.users.mark_online(user_id, handle)
        logger.info("[Presence] %s online on %s", user_id, handle)

    def mark_disconnected(self, user_id: str) -> datetime:
        """Mark the user offline and return the stamped ``lastOnline``."""
        now = datetime.utcnow()
        self.users.mark_offline(user_id, now)
        logger.info("[Presence] %s offline", user_id)
        return now

    def set_explicit_status(
        self, user_id: str, is_online: bool, handle: Optional[str] = None
    ) -> PresenceStatus:
        """Client-driven status override.

        Going offline clears the handle and stamps ``lastOnline``; going
        online keeps the previous ``lastOnline`` untouched.
        """
        if is_online:
            self.users.mark_online(user_id, handle)
        else:
            self.users.mark_offline(user_id, datetime.utcnow())
        logger.debug("[Presence] %s explicit status online=%s", user_id, is_online)
        return self.query_status(user_id)

    def query_status(self, user_id: str) -> PresenceStatus:
        user = self.users.get_user(user_id)
        if user is None:
            raise UserNotFound()
        return PresenceStatus(
            userId=user.id,
            name=user.name,
            isOnline=user.isOnline,
            lastOnline=user.lastOnline,
        )

    def current_handle(self, user_id: str) -> Optional[str]:
        user = self.users.get_user(user_id)
        if user is None or not user.isOnline:
            return None
        return user.socketID

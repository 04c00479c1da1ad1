"""Process-wide wiring of the realtime chat services.

Handlers obtain collaborators through ``get_runtime()`` instead of module
globals, so tests can rebuild everything against fresh stores with
``reset_runtime()``.
"""
from typing import Optional

from together.auth.service import TokenStore
from together.users.service import UserStore

from .directory import ConnectionDirectory
from .groups import GroupService
from .messaging import MessageRouter
from .presence import PresenceRegistry
from .receipts import ReadReceiptTracker
from .resolver import ConversationResolver
from .service import ConversationQueries
from .store import ConversationStore


class ChatRuntime:
    def __init__(self, users: UserStore, tokens: TokenStore, store: ConversationStore) -> None:
        self.users = users
        self.store = store
        self.presence = PresenceRegistry(users, tokens)
        self.directory = ConnectionDirectory(self.presence)
        self.queries = ConversationQueries(store, users)
        self.resolver = ConversationResolver(store, users)
        self.router = MessageRouter(store, self.resolver, self.queries, self.directory)
        self.receipts = ReadReceiptTracker(store, self.queries, self.directory)
        self.groups = GroupService(store, users, self.queries, self.directory)


_runtime: Optional[ChatRuntime] = None


def get_runtime() -> ChatRuntime:
    global _runtime
    if _runtime is None:
        _runtime = ChatRuntime(
            UserStore.get_instance(),
            TokenStore.get_instance(),
            ConversationStore.get_instance(),
        )
    return _runtime


def set_runtime(runtime: ChatRuntime) -> None:
    global _runtime
    _runtime = runtime


def reset_runtime() -> None:
    global _runtime
    _runtime = None

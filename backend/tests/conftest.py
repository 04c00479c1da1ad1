"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from together.auth.service import TokenStore
from together.chat.runtime import get_runtime, reset_runtime
from together.chat.store import ConversationStore
from together.config import AppSettings, AuthSettings, StorageSettings, reset_config, set_config
from together.events.service import EventService
from together.files.service import ImageStorageService
from together.main import app
from together.schedules.service import ScheduleService
from together.todos.service import TODOService
from together.users.service import UserStore

PASSWORD = "Secret#123"


def _reset_singletons() -> None:
    reset_runtime()
    ConversationStore.reset_instance()
    UserStore.reset_instance()
    TODOService.reset_instance()
    EventService.reset_instance()
    ScheduleService.reset_instance()
    ImageStorageService.reset_instance()
    TokenStore.reset_instance()


@pytest.fixture(autouse=True)
def isolated_backend(tmp_path):
    """Point every service at in-memory DuckDB and a temp upload dir."""
    set_config(AppSettings(
        auth=AuthSettings(bcrypt_rounds=4),
        storage=StorageSettings(
            data_dir=str(tmp_path),
            users_db=":memory:",
            conversations_db=":memory:",
            todos_db=":memory:",
            events_db=":memory:",
            schedules_db=":memory:",
            files_db=":memory:",
            upload_dir=str(tmp_path / "uploads"),
        ),
    ))
    _reset_singletons()
    yield
    _reset_singletons()
    reset_config()


@pytest.fixture
def api_client():
    """Provide a TestClient for the main FastAPI app."""
    return TestClient(app)


@pytest.fixture
def runtime():
    return get_runtime()


def register(client: TestClient, name: str, email: str = None) -> dict:
    """Register a user and return ``{"token", "id", "headers"}``."""
    email = email or f"{name.lower()}@example.com"
    resp = client.post("/auth/register", json={"name": name, "email": email, "password": PASSWORD})
    assert resp.status_code == 201, resp.text
    body = resp.json()
    return {
        "token": body["token"],
        "id": body["user"]["id"],
        "headers": {"Authorization": f"Bearer {body['token']}"},
    }


def make_user(name: str) -> str:
    """Create a user directly in the store and return its id."""
    return UserStore.get_instance().create_user(name, f"{name.lower()}@example.com", "x").id


class FakeWebSocket:
    """Stands in for a live connection registered in the directory."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(message)

    def events(self, event_type=None):
        return [m for m in self.sent if event_type is None or m["type"] == event_type]


def connect(runtime, user_id):
    """Register a fake live connection for a user and auto-join its rooms."""
    ws = FakeWebSocket()
    handle = runtime.directory.register(ws, user_id)
    runtime.presence.mark_connected(user_id, handle)
    for conversation_id in runtime.store.conversation_ids_for(user_id):
        runtime.directory.join(handle, conversation_id)
    return ws, handle

"""Tests for the per-user todo lists."""
import pytest
from fastapi.testclient import TestClient

from together.errors import NotFound, TodoNotFound
from together.main import app
from together.todos.service import TODOService

from conftest import register


client = TestClient(app)


@pytest.fixture
def svc():
    s = TODOService(db_path=":memory:")
    yield s
    s._conn.close()


class TestTODOService:
    def test_create_and_get(self, svc):
        todo = svc.create("alice", " Groceries ", [{"title": "milk"}, {"title": "eggs", "completed": True}])
        assert todo["title"] == "Groceries"
        assert todo["user"] == "alice"
        assert todo["completed"] is False
        assert [i["title"] for i in todo["items"]] == ["milk", "eggs"]
        assert svc.get(todo["id"], "alice")["id"] == todo["id"]

    def test_other_owner_sees_nothing(self, svc):
        todo = svc.create("alice", "Private", [])
        with pytest.raises(TodoNotFound):
            svc.get(todo["id"], "bob")
        with pytest.raises(TodoNotFound):
            svc.delete(todo["id"], "bob")
        assert svc.list_for_owner("bob") == []

    def test_completed_follows_items(self, svc):
        todo = svc.create("alice", "Chores", [{"title": "dishes"}, {"title": "laundry"}])
        first, second = [i["id"] for i in todo["items"]]

        assert svc.set_item_completed(todo["id"], "alice", first, True)["completed"] is False
        assert svc.set_item_completed(todo["id"], "alice", second, True)["completed"] is True
        assert svc.set_item_completed(todo["id"], "alice", first, False)["completed"] is False

    def test_unknown_item(self, svc):
        todo = svc.create("alice", "Chores", [{"title": "dishes"}])
        with pytest.raises(NotFound):
            svc.set_item_completed(todo["id"], "alice", "missing", True)

    def test_replace_items(self, svc):
        todo = svc.create("alice", "Trip", [{"title": "tickets"}])
        updated = svc.update(todo["id"], "alice", items=[{"title": "passport", "completed": True}])
        assert [i["title"] for i in updated["items"]] == ["passport"]
        assert updated["completed"] is True
        assert updated["title"] == "Trip"

    def test_list_newest_first(self, svc):
        older = svc.create("alice", "older", [])
        newer = svc.create("alice", "newer", [])
        assert [t["id"] for t in svc.list_for_owner("alice")] == [newer["id"], older["id"]]


class TestTodoEndpoints:
    def test_crud(self):
        alice = register(client, "Alice")
        headers = alice["headers"]

        resp = client.post("/todos", json={"title": "Week", "items": [{"title": "gym"}]}, headers=headers)
        assert resp.status_code == 201
        todo = resp.json()["data"]

        listed = client.get("/todos", headers=headers).json()
        assert listed["count"] == 1

        item_id = todo["items"][0]["id"]
        toggled = client.put(f"/todos/{todo['id']}/items/{item_id}", json={"completed": True}, headers=headers)
        assert toggled.json()["data"]["completed"] is True

        renamed = client.put(f"/todos/{todo['id']}", json={"title": "Next week"}, headers=headers)
        assert renamed.json()["data"]["title"] == "Next week"

        deleted = client.delete(f"/todos/{todo['id']}", headers=headers)
        assert deleted.json() == {"success": True, "data": {}}
        assert client.get(f"/todos/{todo['id']}", headers=headers).status_code == 404

    def test_lists_are_private(self):
        alice, bob = register(client, "Alice"), register(client, "Bob")
        todo = client.post("/todos", json={"title": "Mine", "items": []}, headers=alice["headers"]).json()["data"]

        assert client.get(f"/todos/{todo['id']}", headers=bob["headers"]).status_code == 404
        assert client.get("/todos", headers=bob["headers"]).json()["count"] == 0

    def test_title_required(self):
        alice = register(client, "Alice")
        resp = client.post("/todos", json={"title": "", "items": []}, headers=alice["headers"])
        assert resp.status_code == 400

"""Tests for the per-user schedule slots."""
from datetime import date

import pytest
from fastapi.testclient import TestClient

from together.errors import ScheduleNotFound
from together.main import app
from together.schedules.service import ScheduleService

from conftest import register


client = TestClient(app)

SLOT = {"date": "2026-04-10", "startTime": "9.30", "endTime": "10.30", "category": "Meeting"}


@pytest.fixture
def svc():
    s = ScheduleService(db_path=":memory:")
    yield s
    s._conn.close()


class TestScheduleService:
    def test_create_and_get(self, svc):
        slot = svc.create("alice", date(2026, 4, 10), "9.30", "10.30", "Meeting", note=" standup ")
        assert slot["user"] == "alice"
        assert slot["date"] == "2026-04-10"
        assert slot["startTime"] == "9.30"
        assert slot["note"] == "standup"
        assert svc.get(slot["id"], "alice")["id"] == slot["id"]

    def test_other_owner_sees_nothing(self, svc):
        slot = svc.create("alice", date(2026, 4, 10), "9.30", "10.30", "Family")
        with pytest.raises(ScheduleNotFound):
            svc.get(slot["id"], "bob")
        with pytest.raises(ScheduleNotFound):
            svc.update(slot["id"], "bob", {"note": "hijacked"})
        with pytest.raises(ScheduleNotFound):
            svc.delete(slot["id"], "bob")
        assert svc.list_for_owner("bob") == []

    def test_list_by_day_then_start_time(self, svc):
        afternoon = svc.create("alice", date(2026, 4, 10), "14.00", "15.00", "Study")
        morning = svc.create("alice", date(2026, 4, 10), "9.00", "9.45", "Exercise")
        next_day = svc.create("alice", date(2026, 4, 11), "8.00", "9.00", "Cooking")
        assert [s["id"] for s in svc.list_for_owner("alice")] == [morning["id"], afternoon["id"], next_day["id"]]

    def test_filter_by_date(self, svc):
        svc.create("alice", date(2026, 4, 10), "9.00", "10.00", "Study")
        other = svc.create("alice", date(2026, 4, 11), "9.00", "10.00", "Party")
        assert [s["id"] for s in svc.list_for_owner("alice", on_date=date(2026, 4, 11))] == [other["id"]]
        assert svc.list_for_owner("alice", on_date=date(2026, 4, 12)) == []

    def test_update_can_clear_note(self, svc):
        slot = svc.create("alice", date(2026, 4, 10), "9.00", "10.00", "Study", note="chapter 3")
        updated = svc.update(slot["id"], "alice", {"note": None, "category": None, "endTime": "11.00"})
        assert updated["note"] is None
        assert updated["category"] == "Study"
        assert updated["endTime"] == "11.00"


class TestScheduleEndpoints:
    def test_crud(self):
        alice = register(client, "Alice")
        headers = alice["headers"]

        resp = client.post("/schedules", json={**SLOT, "note": "weekly sync"}, headers=headers)
        assert resp.status_code == 201
        slot = resp.json()["data"]
        assert slot["category"] == "Meeting"

        listed = client.get("/schedules", headers=headers).json()
        assert listed["success"] is True
        assert listed["count"] == 1

        moved = client.put(f"/schedules/{slot['id']}", json={"startTime": "11.00", "endTime": "12.00"}, headers=headers)
        assert moved.status_code == 200
        assert moved.json()["data"]["startTime"] == "11.00"
        assert moved.json()["data"]["note"] == "weekly sync"

        deleted = client.delete(f"/schedules/{slot['id']}", headers=headers)
        assert deleted.json() == {"success": True, "message": "Schedule deleted successfully"}
        again = client.delete(f"/schedules/{slot['id']}", headers=headers)
        assert again.status_code == 404
        assert again.json() == {"success": False, "message": "Schedule not found"}

    def test_date_filter(self):
        alice = register(client, "Alice")
        client.post("/schedules", json=SLOT, headers=alice["headers"])
        client.post("/schedules", json={**SLOT, "date": "2026-04-11"}, headers=alice["headers"])

        day = client.get("/schedules", params={"date": "2026-04-11"}, headers=alice["headers"]).json()
        assert day["count"] == 1
        assert day["data"][0]["date"] == "2026-04-11"
        assert client.get("/schedules", params={"date": "someday"}, headers=alice["headers"]).status_code == 400

    def test_schedules_are_private(self):
        alice, bob = register(client, "Alice"), register(client, "Bob")
        slot = client.post("/schedules", json=SLOT, headers=alice["headers"]).json()["data"]

        assert client.put(f"/schedules/{slot['id']}", json={"note": "x"}, headers=bob["headers"]).status_code == 404
        assert client.get("/schedules", headers=bob["headers"]).json()["count"] == 0

    @pytest.mark.parametrize("override", [
        {"startTime": "9:30"},
        {"endTime": "noon"},
        {"startTime": "930"},
        {"category": "Nap"},
        {"date": "tomorrow"},
        {"note": "x" * 501},
    ])
    def test_invalid_slot_rejected(self, override):
        alice = register(client, "Alice")
        resp = client.post("/schedules", json={**SLOT, **override}, headers=alice["headers"])
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    @pytest.mark.parametrize("missing", ["date", "startTime", "endTime", "category"])
    def test_required_fields(self, missing):
        alice = register(client, "Alice")
        body = {k: v for k, v in SLOT.items() if k != missing}
        assert client.post("/schedules", json=body, headers=alice["headers"]).status_code == 400

    def test_note_at_limit_accepted(self):
        alice = register(client, "Alice")
        resp = client.post("/schedules", json={**SLOT, "note": "x" * 500}, headers=alice["headers"])
        assert resp.status_code == 201

    def test_update_validates_time_format(self):
        alice = register(client, "Alice")
        slot = client.post("/schedules", json=SLOT, headers=alice["headers"]).json()["data"]
        resp = client.put(f"/schedules/{slot['id']}", json={"endTime": "25h"}, headers=alice["headers"])
        assert resp.status_code == 400

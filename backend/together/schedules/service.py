"""ScheduleService - DuckDB-backed per-user schedule slots."""
import datetime
import logging
import uuid
from typing import Any, Dict, List, Optional

import duckdb

from together.config import get_config
from together.errors import ScheduleNotFound

logger = logging.getLogger(__name__)

_CREATE_SCHEDULES = """
CREATE TABLE IF NOT EXISTS schedules (
    id         VARCHAR PRIMARY KEY,
    owner_id   VARCHAR NOT NULL,
    date       DATE NOT NULL,
    start_time VARCHAR NOT NULL,
    end_time   VARCHAR NOT NULL,
    category   VARCHAR NOT NULL,
    note       VARCHAR,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
)
"""

_COLUMNS = "id, owner_id, date, start_time, end_time, category, note, created_at, updated_at"

# "9.30" sorts before "10.00"
_ORDER_BY = """
ORDER BY date,
         CAST(split_part(start_time, '.', 1) AS INTEGER),
         CAST(split_part(start_time, '.', 2) AS INTEGER)
"""

_UPDATABLE = {
    "date": "date",
    "startTime": "start_time",
    "endTime": "end_time",
    "category": "category",
    "note": "note",
}


class ScheduleService:
    """Singleton service for schedule slots; every call is owner-scoped."""

    _instance: Optional["ScheduleService"] = None

    def __init__(self, db_path: Optional[str] = None) -> None:
        storage = get_config().storage
        self._db_path = db_path or storage.db_path(storage.schedules_db)
        self._conn = duckdb.connect(self._db_path)
        self._conn.execute(_CREATE_SCHEDULES)
        logger.info("[ScheduleService] Initialized with db=%s", self._db_path)

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "ScheduleService":
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        if cls._instance is not None:
            cls._instance._conn.close()
            cls._instance = None

    def close(self) -> None:
        self._conn.close()

    def create(
        self,
        owner_id: str,
        date: datetime.date,
        start_time: str,
        end_time: str,
        category: str,
        note: Optional[str] = None,
    ) -> dict:
        schedule_id = str(uuid.uuid4())
        now = datetime.datetime.utcnow()
        self._conn.execute(
            f"INSERT INTO schedules ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                schedule_id, owner_id, date, start_time, end_time, category,
                note.strip() if note else note, now, now,
            ],
        )
        logger.info("[ScheduleService] Created %s on %s for %s", schedule_id, date, owner_id)
        return self.get(schedule_id, owner_id)

    def list_for_owner(self, owner_id: str, on_date: Optional[datetime.date] = None) -> List[dict]:
        """The owner's slots by day and start time, optionally for one day."""
        query = f"SELECT {_COLUMNS} FROM schedules WHERE owner_id = ?"
        params: List[Any] = [owner_id]
        if on_date is not None:
            query += " AND date = ?"
            params.append(on_date)
        rows = self._conn.execute(query + _ORDER_BY, params).fetchall()
        return [self._row_to_dict(r) for r in rows]

    def get(self, schedule_id: str, owner_id: str) -> dict:
        row = self._conn.execute(
            f"SELECT {_COLUMNS} FROM schedules WHERE id = ? AND owner_id = ?",
            [schedule_id, owner_id],
        ).fetchone()
        if not row:
            raise ScheduleNotFound()
        return self._row_to_dict(row)

    def update(self, schedule_id: str, owner_id: str, changes: Dict[str, Any]) -> dict:
        """Apply the given fields; ``note`` may be cleared, the rest may not."""
        current = self.get(schedule_id, owner_id)
        changes = {
            k: v for k, v in changes.items()
            if k in _UPDATABLE and (v is not None or k == "note")
        }
        if not changes:
            return current
        if changes.get("note"):
            changes["note"] = changes["note"].strip()

        assignments = ", ".join(f"{_UPDATABLE[k]} = ?" for k in changes)
        self._conn.execute(
            f"UPDATE schedules SET {assignments}, updated_at = ? WHERE id = ?",
            [*changes.values(), datetime.datetime.utcnow(), schedule_id],
        )
        return self.get(schedule_id, owner_id)

    def delete(self, schedule_id: str, owner_id: str) -> None:
        self.get(schedule_id, owner_id)
        self._conn.execute("DELETE FROM schedules WHERE id = ?", [schedule_id])
        logger.info("[ScheduleService] Deleted %s for %s", schedule_id, owner_id)

    @staticmethod
    def _row_to_dict(row) -> dict:
        return {
            "id": row[0],
            "user": row[1],
            "date": row[2].isoformat(),
            "startTime": row[3],
            "endTime": row[4],
            "category": row[5],
            "note": row[6],
            "createdAt": row[7].isoformat(),
            "updatedAt": row[8].isoformat(),
        }

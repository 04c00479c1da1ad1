"""EventService - DuckDB-backed per-user calendar events."""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import duckdb

from together.config import get_config
from together.errors import BadRequest, EventNotFound

from .schemas import check_event_range

logger = logging.getLogger(__name__)

_CREATE_EVENTS = """
CREATE TABLE IF NOT EXISTS events (
    id          VARCHAR PRIMARY KEY,
    owner_id    VARCHAR NOT NULL,
    title       VARCHAR NOT NULL,
    description VARCHAR,
    start_date  TIMESTAMP NOT NULL,
    end_date    TIMESTAMP,
    location    VARCHAR,
    created_at  TIMESTAMP NOT NULL,
    updated_at  TIMESTAMP NOT NULL
)
"""

_COLUMNS = "id, owner_id, title, description, start_date, end_date, location, created_at, updated_at"

_REQUIRED = ("title", "startDate")

# Request field -> column
_UPDATABLE = {
    "title": "title",
    "description": "description",
    "startDate": "start_date",
    "endDate": "end_date",
    "location": "location",
}


def _require_ordered(start: datetime, end: Optional[datetime]) -> None:
    try:
        check_event_range(start, end)
    except ValueError as exc:
        raise BadRequest(str(exc)) from exc


def _strip(value: Optional[str]) -> Optional[str]:
    return value.strip() if isinstance(value, str) else value


class EventService:
    """Singleton service for calendar events; every call is owner-scoped."""

    _instance: Optional["EventService"] = None

    def __init__(self, db_path: Optional[str] = None) -> None:
        storage = get_config().storage
        self._db_path = db_path or storage.db_path(storage.events_db)
        self._conn = duckdb.connect(self._db_path)
        self._conn.execute(_CREATE_EVENTS)
        logger.info("[EventService] Initialized with db=%s", self._db_path)

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "EventService":
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
        title: str,
        start_date: datetime,
        end_date: Optional[datetime] = None,
        description: Optional[str] = None,
        location: Optional[str] = None,
    ) -> dict:
        _require_ordered(start_date, end_date)
        event_id = str(uuid.uuid4())
        now = datetime.utcnow()
        self._conn.execute(
            f"INSERT INTO events ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                event_id, owner_id, title.strip(), _strip(description),
                start_date, end_date, _strip(location), now, now,
            ],
        )
        logger.info("[EventService] Created %s for %s", event_id, owner_id)
        return self.get(event_id, owner_id)

    def list_for_owner(self, owner_id: str) -> List[dict]:
        """The owner's events, earliest start first."""
        rows = self._conn.execute(
            f"SELECT {_COLUMNS} FROM events WHERE owner_id = ? ORDER BY start_date ASC",
            [owner_id],
        ).fetchall()
        return [self._row_to_dict(r) for r in rows]

    def get(self, event_id: str, owner_id: str) -> dict:
        row = self._conn.execute(
            f"SELECT {_COLUMNS} FROM events WHERE id = ? AND owner_id = ?",
            [event_id, owner_id],
        ).fetchone()
        if not row:
            raise EventNotFound()
        return self._row_to_dict(row)

    def update(self, event_id: str, owner_id: str, changes: Dict[str, Any]) -> dict:
        """Apply the given fields; the resulting range must stay ordered.

        Raises:
            EventNotFound: Unknown event or owned by someone else.
            BadRequest: The end date would precede the start date.
        """
        current = self.get(event_id, owner_id)
        changes = {k: v for k, v in changes.items() if k in _UPDATABLE
                   and not (k in _REQUIRED and v is None)}
        if not changes:
            return current

        start = changes.get("startDate", datetime.fromisoformat(current["startDate"]))
        end = changes["endDate"] if "endDate" in changes else (
            datetime.fromisoformat(current["endDate"]) if current["endDate"] else None
        )
        _require_ordered(start, end)

        assignments = ", ".join(f"{_UPDATABLE[k]} = ?" for k in changes)
        values = [_strip(v) for v in changes.values()]
        self._conn.execute(
            f"UPDATE events SET {assignments}, updated_at = ? WHERE id = ?",
            [*values, datetime.utcnow(), event_id],
        )
        return self.get(event_id, owner_id)

    def delete(self, event_id: str, owner_id: str) -> None:
        self.get(event_id, owner_id)
        self._conn.execute("DELETE FROM events WHERE id = ?", [event_id])
        logger.info("[EventService] Deleted %s for %s", event_id, owner_id)

    @staticmethod
    def _row_to_dict(row) -> dict:
        return {
            "id": row[0],
            "user": row[1],
            "title": row[2],
            "description": row[3],
            "startDate": row[4].isoformat(),
            "endDate": row[5].isoformat() if row[5] else None,
            "location": row[6],
            "createdAt": row[7].isoformat(),
            "updatedAt": row[8].isoformat(),
        }

"""TODOService - DuckDB-backed per-user todo lists."""
import logging
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import duckdb

from together.config import get_config
from together.errors import NotFound, TodoNotFound

logger = logging.getLogger(__name__)

_CREATE_TODOS = """
CREATE TABLE IF NOT EXISTS todos (
    id         VARCHAR PRIMARY KEY,
    owner_id   VARCHAR NOT NULL,
    title      VARCHAR NOT NULL,
    completed  BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
)
"""

_CREATE_ITEMS = """
CREATE TABLE IF NOT EXISTS todo_items (
    id         VARCHAR PRIMARY KEY,
    todo_id    VARCHAR NOT NULL,
    title      VARCHAR NOT NULL,
    completed  BOOLEAN NOT NULL DEFAULT FALSE,
    position   INTEGER NOT NULL,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
)
"""


class TODOService:
    """Singleton service for managing todo lists in DuckDB.

    Every read and write is scoped to an owner; a list owned by someone else
    behaves exactly like a missing one.
    """

    _instance: Optional["TODOService"] = None

    def __init__(self, db_path: Optional[str] = None) -> None:
        storage = get_config().storage
        self._db_path = db_path or storage.db_path(storage.todos_db)
        self._conn = duckdb.connect(self._db_path)
        self._conn.execute(_CREATE_TODOS)
        self._conn.execute(_CREATE_ITEMS)
        logger.info("[TODOService] Initialized with db=%s", self._db_path)

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "TODOService":
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        if cls._instance is not None:
            cls._instance._conn.close()
            cls._instance = None

    # -----------------------------------------------------------------------
    # CRUD
    # -----------------------------------------------------------------------

    def create(self, owner_id: str, title: str, items: Sequence[dict]) -> dict:
        todo_id = str(uuid.uuid4())
        now = datetime.utcnow()
        self._conn.begin()
        try:
            self._conn.execute(
                """
                INSERT INTO todos (id, owner_id, title, completed, created_at, updated_at)
                VALUES (?, ?, ?, FALSE, ?, ?)
                """,
                [todo_id, owner_id, title.strip(), now, now],
            )
            self._insert_items(todo_id, items, now)
            self._conn.commit()
        except duckdb.Error:
            self._conn.rollback()
            raise
        return self.get(todo_id, owner_id)

    def list_for_owner(self, owner_id: str) -> List[dict]:
        """The owner's lists, newest first."""
        rows = self._conn.execute(
            """
            SELECT id, owner_id, title, completed, created_at, updated_at
            FROM todos WHERE owner_id = ? ORDER BY created_at DESC
            """,
            [owner_id],
        ).fetchall()
        items = self._items_for([r[0] for r in rows])
        return [self._row_to_dict(r, items.get(r[0], [])) for r in rows]

    def get(self, todo_id: str, owner_id: str) -> dict:
        row = self._conn.execute(
            """
            SELECT id, owner_id, title, completed, created_at, updated_at
            FROM todos WHERE id = ? AND owner_id = ?
            """,
            [todo_id, owner_id],
        ).fetchone()
        if not row:
            raise TodoNotFound()
        return self._row_to_dict(row, self._items_for([todo_id]).get(todo_id, []))

    def update(
        self,
        todo_id: str,
        owner_id: str,
        title: Optional[str] = None,
        items: Optional[Sequence[dict]] = None,
    ) -> dict:
        """Rename a list and/or replace its items.

        Replacing the items recomputes the list's ``completed`` flag.
        """
        self.get(todo_id, owner_id)
        now = datetime.utcnow()
        self._conn.begin()
        try:
            if title is not None:
                self._conn.execute(
                    "UPDATE todos SET title = ?, updated_at = ? WHERE id = ?",
                    [title.strip(), now, todo_id],
                )
            if items is not None:
                self._conn.execute("DELETE FROM todo_items WHERE todo_id = ?", [todo_id])
                self._insert_items(todo_id, items, now)
                self._refresh_completed(todo_id, now)
            self._conn.commit()
        except duckdb.Error:
            self._conn.rollback()
            raise
        return self.get(todo_id, owner_id)

    def set_item_completed(self, todo_id: str, owner_id: str, item_id: str, completed: bool) -> dict:
        """Toggle one item; the list is completed iff every item is."""
        self.get(todo_id, owner_id)
        now = datetime.utcnow()
        updated = self._conn.execute(
            """
            UPDATE todo_items SET completed = ?, updated_at = ?
            WHERE id = ? AND todo_id = ?
            RETURNING id
            """,
            [completed, now, item_id, todo_id],
        ).fetchall()
        if not updated:
            raise NotFound("Item not found")
        self._refresh_completed(todo_id, now)
        return self.get(todo_id, owner_id)

    def delete(self, todo_id: str, owner_id: str) -> None:
        self.get(todo_id, owner_id)
        self._conn.execute("DELETE FROM todo_items WHERE todo_id = ?", [todo_id])
        self._conn.execute("DELETE FROM todos WHERE id = ?", [todo_id])
        logger.info("[TODOService] Deleted %s for %s", todo_id, owner_id)

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _insert_items(self, todo_id: str, items: Sequence[dict], now: datetime) -> None:
        for position, item in enumerate(items):
            self._conn.execute(
                """
                INSERT INTO todo_items
                  (id, todo_id, title, completed, position, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    str(uuid.uuid4()), todo_id, item["title"].strip(),
                    bool(item.get("completed", False)), position, now, now,
                ],
            )

    def _refresh_completed(self, todo_id: str, now: datetime) -> None:
        self._conn.execute(
            """
            UPDATE todos
            SET completed = (
                SELECT coalesce(bool_and(completed), TRUE)
                FROM todo_items WHERE todo_id = ?
            ),
            updated_at = ?
            WHERE id = ?
            """,
            [todo_id, now, todo_id],
        )

    def _items_for(self, todo_ids: List[str]) -> Dict[str, List[dict]]:
        items: Dict[str, List[dict]] = defaultdict(list)
        if not todo_ids:
            return items
        rows = self._conn.execute(
            """
            SELECT todo_id, id, title, completed, created_at, updated_at
            FROM todo_items
            WHERE list_contains(?, todo_id)
            ORDER BY todo_id, position
            """,
            [todo_ids],
        ).fetchall()
        for r in rows:
            items[r[0]].append({
                "id": r[1],
                "title": r[2],
                "completed": r[3],
                "createdAt": r[4].isoformat(),
                "updatedAt": r[5].isoformat(),
            })
        return items

    @staticmethod
    def _row_to_dict(row, items: List[dict]) -> dict:
        return {
            "id": row[0],
            "user": row[1],
            "title": row[2],
            "completed": row[3],
            "items": items,
            "createdAt": row[4].isoformat(),
            "updatedAt": row[5].isoformat(),
        }

"""UserStore - DuckDB-backed user records, presence fields and contacts.

Database Schema:
    users table:
        - id, name, email, password_hash, profile_image_url
        - is_online / socket_id / last_online: presence fields
        - created_at / updated_at
    contacts table:
        - one row per direction of a mutual connection
    connection_requests table:
        - pending requests, keyed by (to_user_id, from_user_id)

Email uniqueness is enforced by lookup-before-insert rather than an index,
because DuckDB rewrites updates of indexed columns as delete + insert.
"""
import logging
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

import duckdb

from together.config import get_config

from .schemas import DEFAULT_PROFILE_IMAGE_URL, ConnectionRequest, User, UserSummary

logger = logging.getLogger(__name__)

_CREATE_USERS = """
CREATE TABLE IF NOT EXISTS users (
    id                VARCHAR PRIMARY KEY,
    name              VARCHAR NOT NULL,
    email             VARCHAR NOT NULL,
    password_hash     VARCHAR NOT NULL,
    profile_image_url VARCHAR,
    is_online         BOOLEAN NOT NULL DEFAULT FALSE,
    socket_id         VARCHAR,
    last_online       TIMESTAMP,
    created_at        TIMESTAMP NOT NULL,
    updated_at        TIMESTAMP NOT NULL
)
"""

_CREATE_CONTACTS = """
CREATE TABLE IF NOT EXISTS contacts (
    user_id    VARCHAR NOT NULL,
    contact_id VARCHAR NOT NULL,
    created_at TIMESTAMP NOT NULL
)
"""

_CREATE_REQUESTS = """
CREATE TABLE IF NOT EXISTS connection_requests (
    id           VARCHAR NOT NULL,
    to_user_id   VARCHAR NOT NULL,
    from_user_id VARCHAR NOT NULL,
    status       VARCHAR NOT NULL DEFAULT 'pending',
    created_at   TIMESTAMP NOT NULL
)
"""

_USER_COLUMNS = (
    "id, name, email, profile_image_url, is_online, socket_id, last_online, created_at"
)


class UserStore:
    """Singleton store for user records in DuckDB."""

    _instance: Optional["UserStore"] = None

    def __init__(self, db_path: Optional[str] = None) -> None:
        storage = get_config().storage
        self._db_path = db_path or storage.db_path(storage.users_db)
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialize_db()
        logger.info("[UserStore] Initialized with db=%s", self._db_path)

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "UserStore":
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        conn = self._get_connection()
        conn.execute(_CREATE_USERS)
        conn.execute(_CREATE_CONTACTS)
        conn.execute(_CREATE_REQUESTS)

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    # -----------------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------------

    def create_user(self, name: str, email: str, password_hash: str) -> User:
        user_id = str(uuid.uuid4())
        now = datetime.utcnow()
        self._get_connection().execute(
            """
            INSERT INTO users
              (id, name, email, password_hash, profile_image_url,
               is_online, socket_id, last_online, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, FALSE, NULL, NULL, ?, ?)
            """,
            [user_id, name, email.lower(), password_hash, DEFAULT_PROFILE_IMAGE_URL, now, now],
        )
        logger.info("[UserStore] Created user %s <%s>", user_id, email)
        return self.get_user(user_id)

    def get_user(self, user_id: str) -> Optional[User]:
        row = self._get_connection().execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", [user_id]
        ).fetchone()
        return self._row_to_user(row) if row else None

    def get_by_email(self, email: str) -> Optional[User]:
        row = self._get_connection().execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE email = ?", [email.lower()]
        ).fetchone()
        return self._row_to_user(row) if row else None

    def get_credentials(self, email: str) -> Optional[Tuple[str, str]]:
        """Return ``(user_id, password_hash)`` for an email, or None."""
        row = self._get_connection().execute(
            "SELECT id, password_hash FROM users WHERE email = ?", [email.lower()]
        ).fetchone()
        return (row[0], row[1]) if row else None

    def exists(self, user_id: str) -> bool:
        row = self._get_connection().execute(
            "SELECT 1 FROM users WHERE id = ?", [user_id]
        ).fetchone()
        return row is not None

    def existing_ids(self, user_ids: Iterable[str]) -> Set[str]:
        ids = list(user_ids)
        if not ids:
            return set()
        rows = self._get_connection().execute(
            "SELECT id FROM users WHERE list_contains(?, id)", [ids]
        ).fetchall()
        return {r[0] for r in rows}

    def get_summaries(self, user_ids: Iterable[str]) -> Dict[str, UserSummary]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        rows = self._get_connection().execute(
            """
            SELECT id, name, email, profile_image_url
            FROM users
            WHERE list_contains(?, id)
            """,
            [ids],
        ).fetchall()
        return {
            r[0]: UserSummary(id=r[0], name=r[1], email=r[2], profileImageUrl=r[3])
            for r in rows
        }

    def update_profile(
        self,
        user_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        password_hash: Optional[str] = None,
        profile_image_url: Optional[str] = None,
    ) -> Optional[User]:
        fields = {
            "name": name,
            "email": email.lower() if email else None,
            "password_hash": password_hash,
            "profile_image_url": profile_image_url,
        }
        fields = {k: v for k, v in fields.items() if v is not None}
        if not fields:
            return self.get_user(user_id)

        fields["updated_at"] = datetime.utcnow()
        set_clause = ", ".join(f"{k} = ?" for k in fields)
        self._get_connection().execute(
            f"UPDATE users SET {set_clause} WHERE id = ?",
            list(fields.values()) + [user_id],
        )
        return self.get_user(user_id)

    def search_by_email(self, query: str, exclude_id: str) -> List[UserSummary]:
        rows = self._get_connection().execute(
            """
            SELECT id, name, email, profile_image_url
            FROM users
            WHERE contains(email, ?) AND id <> ?
            ORDER BY email
            """,
            [query.lower(), exclude_id],
        ).fetchall()
        return [
            UserSummary(id=r[0], name=r[1], email=r[2], profileImageUrl=r[3])
            for r in rows
        ]

    # -----------------------------------------------------------------------
    # Presence fields
    # -----------------------------------------------------------------------

    def mark_online(self, user_id: str, socket_id: Optional[str]) -> Optional[User]:
        self._get_connection().execute(
            "UPDATE users SET is_online = TRUE, socket_id = ? WHERE id = ?",
            [socket_id, user_id],
        )
        return self.get_user(user_id)

    def mark_offline(self, user_id: str, last_online: datetime) -> Optional[User]:
        """Clear the connection handle and online flag together."""
        self._get_connection().execute(
            """
            UPDATE users
            SET is_online = FALSE, socket_id = NULL, last_online = ?
            WHERE id = ?
            """,
            [last_online, user_id],
        )
        return self.get_user(user_id)

    # -----------------------------------------------------------------------
    # Contacts and connection requests
    # -----------------------------------------------------------------------

    def contact_ids(self, user_id: str) -> List[str]:
        rows = self._get_connection().execute(
            "SELECT contact_id FROM contacts WHERE user_id = ? ORDER BY created_at",
            [user_id],
        ).fetchall()
        return [r[0] for r in rows]

    def get_contacts(self, user_id: str) -> List[UserSummary]:
        ids = self.contact_ids(user_id)
        summaries = self.get_summaries(ids)
        return [summaries[i] for i in ids if i in summaries]

    def is_contact(self, user_id: str, other_id: str) -> bool:
        row = self._get_connection().execute(
            "SELECT 1 FROM contacts WHERE user_id = ? AND contact_id = ?",
            [user_id, other_id],
        ).fetchone()
        return row is not None

    def add_contacts(self, user_id: str, other_id: str) -> None:
        """Record a mutual connection and drop the request between the pair."""
        now = datetime.utcnow()
        conn = self._get_connection()
        conn.begin()
        try:
            for a, b in ((user_id, other_id), (other_id, user_id)):
                conn.execute(
                    """
                    INSERT INTO contacts (user_id, contact_id, created_at)
                    SELECT ?, ?, ?
                    WHERE NOT EXISTS (
                        SELECT 1 FROM contacts WHERE user_id = ? AND contact_id = ?
                    )
                    """,
                    [a, b, now, a, b],
                )
            conn.execute(
                """
                DELETE FROM connection_requests
                WHERE (to_user_id = ? AND from_user_id = ?)
                   OR (to_user_id = ? AND from_user_id = ?)
                """,
                [user_id, other_id, other_id, user_id],
            )
            conn.commit()
        except duckdb.Error:
            conn.rollback()
            raise

    def has_request(self, to_user_id: str, from_user_id: str) -> bool:
        row = self._get_connection().execute(
            """
            SELECT 1 FROM connection_requests
            WHERE to_user_id = ? AND from_user_id = ?
            """,
            [to_user_id, from_user_id],
        ).fetchone()
        return row is not None

    def add_request(self, to_user_id: str, from_user_id: str) -> None:
        self._get_connection().execute(
            """
            INSERT INTO connection_requests (id, to_user_id, from_user_id, status, created_at)
            VALUES (?, ?, ?, 'pending', ?)
            """,
            [str(uuid.uuid4()), to_user_id, from_user_id, datetime.utcnow()],
        )

    def delete_request(self, to_user_id: str, from_user_id: str) -> bool:
        result = self._get_connection().execute(
            """
            DELETE FROM connection_requests
            WHERE to_user_id = ? AND from_user_id = ?
            RETURNING id
            """,
            [to_user_id, from_user_id],
        ).fetchall()
        return len(result) > 0

    def list_requests(self, to_user_id: str) -> List[ConnectionRequest]:
        rows = self._get_connection().execute(
            """
            SELECT id, from_user_id, status, created_at
            FROM connection_requests
            WHERE to_user_id = ?
            ORDER BY created_at
            """,
            [to_user_id],
        ).fetchall()
        senders = self.get_summaries(r[1] for r in rows)
        return [
            ConnectionRequest(id=r[0], sender=senders[r[1]], status=r[2], createdAt=r[3])
            for r in rows
            if r[1] in senders
        ]

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _row_to_user(self, row) -> User:
        return User(
            id=row[0],
            name=row[1],
            email=row[2],
            profileImageUrl=row[3],
            isOnline=row[4],
            socketID=row[5],
            lastOnline=row[6],
            createdAt=row[7],
            contacts=self.contact_ids(row[0]),
        )

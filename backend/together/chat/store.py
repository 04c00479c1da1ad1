"""ConversationStore - DuckDB persistence for conversations and messages.

Database Schema:
    conversations table:
        - id, is_group, group_name, group_admin, group_image_url
        - direct_key: sorted "a:b" participant pair for direct conversations,
          UNIQUE so at most one direct conversation exists per pair
        - last_message_*: denormalized cache of the newest message
        - created_at / updated_at
    conversation_participants table:
        - (conversation_id, user_id, position), position keeps insertion order
    messages table:
        - id, conversation_id, seq (global sequence, defines log order),
          sender_id, content, ts
    message_reads table:
        - (conversation_id, message_id, user_id): one row per reader

Concurrency:
    Appending a message inserts the log entry, the sender's read row and the
    last-message cache update inside one transaction, so a reader never sees
    a log entry without the matching cache (or the reverse). The store is
    used from a single event loop and is NOT thread-safe.
"""
import logging
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import duckdb

from together.config import get_config
from together.errors import ConversationNotFound, PersistenceFailure

from .schemas import Conversation, LastMessage, Message

logger = logging.getLogger(__name__)

_CONVERSATION_COLUMNS = """
    id, is_group, group_name, group_admin, group_image_url,
    last_message_id, last_message_sender, last_message_content, last_message_ts,
    created_at, updated_at
"""


class DuplicateDirectConversation(Exception):
    """Another direct conversation for the same pair was created first."""


def direct_key(user_a: str, user_b: str) -> str:
    """Order-independent key of a direct conversation's participant pair."""
    return ":".join(sorted((user_a, user_b)))


class ConversationStore:
    """Singleton store for conversations in DuckDB."""

    _instance: Optional["ConversationStore"] = None

    def __init__(self, db_path: Optional[str] = None) -> None:
        storage = get_config().storage
        self._db_path = db_path or storage.db_path(storage.conversations_db)
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialize_db()
        logger.info("[ConversationStore] Initialized with db=%s", self._db_path)

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "ConversationStore":
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
        conn.execute("CREATE SEQUENCE IF NOT EXISTS messages_seq START 1")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id                   VARCHAR PRIMARY KEY,
                is_group             BOOLEAN NOT NULL DEFAULT FALSE,
                group_name           VARCHAR,
                group_admin          VARCHAR,
                group_image_url      VARCHAR,
                direct_key           VARCHAR UNIQUE,
                last_message_id      VARCHAR,
                last_message_sender  VARCHAR,
                last_message_content VARCHAR,
                last_message_ts      TIMESTAMP,
                created_at           TIMESTAMP NOT NULL,
                updated_at           TIMESTAMP NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS conversation_participants (
                conversation_id VARCHAR NOT NULL,
                user_id         VARCHAR NOT NULL,
                position        INTEGER NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id              VARCHAR PRIMARY KEY,
                conversation_id VARCHAR NOT NULL,
                seq             BIGINT NOT NULL DEFAULT nextval('messages_seq'),
                sender_id       VARCHAR NOT NULL,
                content         VARCHAR NOT NULL,
                ts              TIMESTAMP NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS message_reads (
                conversation_id VARCHAR NOT NULL,
                message_id      VARCHAR NOT NULL,
                user_id         VARCHAR NOT NULL,
                read_at         TIMESTAMP NOT NULL
            )
        """)

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    # -----------------------------------------------------------------------
    # Conversations
    # -----------------------------------------------------------------------

    def create_conversation(
        self,
        participants: Sequence[str],
        is_group: bool = False,
        group_name: Optional[str] = None,
        group_admin: Optional[str] = None,
    ) -> Conversation:
        """Persist a new conversation with an empty message log.

        Raises:
            DuplicateDirectConversation: A direct conversation for the pair
                already exists.
            PersistenceFailure: Any other database error.
        """
        conversation_id = str(uuid.uuid4())
        key = None if is_group else direct_key(participants[0], participants[1])
        now = datetime.utcnow()

        conn = self._get_connection()
        conn.begin()
        try:
            conn.execute(
                """
                INSERT INTO conversations
                  (id, is_group, group_name, group_admin, direct_key, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [conversation_id, is_group, group_name, group_admin, key, now, now],
            )
            self._insert_participants(conn, conversation_id, participants)
            conn.commit()
        except duckdb.ConstraintException as exc:
            conn.rollback()
            if key is not None:
                raise DuplicateDirectConversation(key) from exc
            raise PersistenceFailure() from exc
        except duckdb.Error as exc:
            conn.rollback()
            logger.error("[ConversationStore] Create failed: %s", exc)
            raise PersistenceFailure() from exc

        return self.get(conversation_id)

    def get(self, conversation_id: str, with_messages: bool = False) -> Optional[Conversation]:
        row = self._get_connection().execute(
            f"SELECT {_CONVERSATION_COLUMNS} FROM conversations WHERE id = ?",
            [conversation_id],
        ).fetchone()
        if not row:
            return None
        conversation = self._rows_to_conversations([row])[0]
        if with_messages:
            conversation.messages = self.get_messages(conversation_id)
        return conversation

    def find_direct(self, user_a: str, user_b: str) -> Optional[Conversation]:
        row = self._get_connection().execute(
            f"SELECT {_CONVERSATION_COLUMNS} FROM conversations WHERE direct_key = ?",
            [direct_key(user_a, user_b)],
        ).fetchone()
        return self._rows_to_conversations([row])[0] if row else None

    def list_for_user(self, user_id: str) -> List[Conversation]:
        """Conversations the user participates in, most recent activity first."""
        rows = self._get_connection().execute(
            f"""
            SELECT {_CONVERSATION_COLUMNS}
            FROM conversations
            WHERE id IN (
                SELECT conversation_id FROM conversation_participants WHERE user_id = ?
            )
            ORDER BY last_message_ts DESC NULLS LAST, updated_at DESC
            """,
            [user_id],
        ).fetchall()
        return self._rows_to_conversations(rows)

    def conversation_ids_for(self, user_id: str) -> List[str]:
        rows = self._get_connection().execute(
            "SELECT conversation_id FROM conversation_participants WHERE user_id = ?",
            [user_id],
        ).fetchall()
        return [r[0] for r in rows]

    def set_participants(self, conversation_id: str, participants: Sequence[str]) -> Conversation:
        conn = self._get_connection()
        conn.begin()
        try:
            conn.execute(
                "DELETE FROM conversation_participants WHERE conversation_id = ?",
                [conversation_id],
            )
            self._insert_participants(conn, conversation_id, participants)
            conn.execute(
                "UPDATE conversations SET updated_at = ? WHERE id = ?",
                [datetime.utcnow(), conversation_id],
            )
            conn.commit()
        except duckdb.Error as exc:
            conn.rollback()
            logger.error("[ConversationStore] Participant update failed: %s", exc)
            raise PersistenceFailure() from exc
        return self.get(conversation_id)

    def set_group_image(self, conversation_id: str, image_url: str) -> Conversation:
        self._get_connection().execute(
            "UPDATE conversations SET group_image_url = ?, updated_at = ? WHERE id = ?",
            [image_url, datetime.utcnow(), conversation_id],
        )
        return self.get(conversation_id)

    def delete(self, conversation_id: str) -> bool:
        conn = self._get_connection()
        conn.begin()
        try:
            conn.execute("DELETE FROM message_reads WHERE conversation_id = ?", [conversation_id])
            conn.execute("DELETE FROM messages WHERE conversation_id = ?", [conversation_id])
            conn.execute(
                "DELETE FROM conversation_participants WHERE conversation_id = ?",
                [conversation_id],
            )
            deleted = conn.execute(
                "DELETE FROM conversations WHERE id = ? RETURNING id", [conversation_id]
            ).fetchall()
            conn.commit()
        except duckdb.Error as exc:
            conn.rollback()
            logger.error("[ConversationStore] Delete failed: %s", exc)
            raise PersistenceFailure() from exc
        return len(deleted) > 0

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    def append_message(self, conversation_id: str, sender_id: str, content: str) -> Message:
        """Append a message and refresh the last-message cache atomically.

        The sender is recorded as the first reader.

        Raises:
            ConversationNotFound: The conversation was deleted.
            PersistenceFailure: The write failed; nothing was applied.
        """
        message = Message(
            id=str(uuid.uuid4()),
            senderId=sender_id,
            content=content,
            timestamp=datetime.utcnow(),
            readBy=[sender_id],
        )

        conn = self._get_connection()
        conn.begin()
        try:
            updated = conn.execute(
                """
                UPDATE conversations
                SET last_message_id = ?, last_message_sender = ?,
                    last_message_content = ?, last_message_ts = ?, updated_at = ?
                WHERE id = ?
                RETURNING id
                """,
                [
                    message.id, sender_id, content, message.timestamp,
                    message.timestamp, conversation_id,
                ],
            ).fetchall()
            if not updated:
                conn.rollback()
                raise ConversationNotFound()
            conn.execute(
                """
                INSERT INTO messages (id, conversation_id, sender_id, content, ts)
                VALUES (?, ?, ?, ?, ?)
                """,
                [message.id, conversation_id, sender_id, content, message.timestamp],
            )
            conn.execute(
                """
                INSERT INTO message_reads (conversation_id, message_id, user_id, read_at)
                VALUES (?, ?, ?, ?)
                """,
                [conversation_id, message.id, sender_id, message.timestamp],
            )
            conn.commit()
        except duckdb.Error as exc:
            conn.rollback()
            logger.error("[ConversationStore] Append to %s failed: %s", conversation_id, exc)
            raise PersistenceFailure("Failed to save message") from exc

        return message

    def get_messages(self, conversation_id: str) -> List[Message]:
        """Full message log in append order."""
        conn = self._get_connection()
        rows = conn.execute(
            """
            SELECT id, sender_id, content, ts
            FROM messages
            WHERE conversation_id = ?
            ORDER BY seq
            """,
            [conversation_id],
        ).fetchall()
        readers = self._readers(conversation_id)
        return [
            Message(
                id=r[0], senderId=r[1], content=r[2], timestamp=r[3],
                readBy=readers.get(r[0], []),
            )
            for r in rows
        ]

    def get_message(self, conversation_id: str, message_id: str) -> Optional[Message]:
        row = self._get_connection().execute(
            """
            SELECT id, sender_id, content, ts
            FROM messages
            WHERE conversation_id = ? AND id = ?
            """,
            [conversation_id, message_id],
        ).fetchone()
        if not row:
            return None
        readers = self._readers(conversation_id, message_id)
        return Message(
            id=row[0], senderId=row[1], content=row[2], timestamp=row[3],
            readBy=readers.get(row[0], []),
        )

    def add_reader(self, conversation_id: str, message_id: str, user_id: str) -> bool:
        """Add ``user_id`` to a message's readers and re-save the conversation.

        The conversation's ``updated_at`` is touched even when the user had
        already read the message.

        Returns:
            True if the user was newly added.
        """
        now = datetime.utcnow()
        conn = self._get_connection()
        conn.begin()
        try:
            inserted = conn.execute(
                """
                INSERT INTO message_reads (conversation_id, message_id, user_id, read_at)
                SELECT ?, ?, ?, ?
                WHERE NOT EXISTS (
                    SELECT 1 FROM message_reads WHERE message_id = ? AND user_id = ?
                )
                RETURNING user_id
                """,
                [conversation_id, message_id, user_id, now, message_id, user_id],
            ).fetchall()
            conn.execute(
                "UPDATE conversations SET updated_at = ? WHERE id = ?",
                [now, conversation_id],
            )
            conn.commit()
        except duckdb.Error as exc:
            conn.rollback()
            logger.error("[ConversationStore] Read receipt failed: %s", exc)
            raise PersistenceFailure() from exc
        return len(inserted) > 0

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    @staticmethod
    def _insert_participants(conn, conversation_id: str, participants: Sequence[str]) -> None:
        for position, user_id in enumerate(participants):
            conn.execute(
                """
                INSERT INTO conversation_participants (conversation_id, user_id, position)
                VALUES (?, ?, ?)
                """,
                [conversation_id, user_id, position],
            )

    def _readers(self, conversation_id: str, message_id: Optional[str] = None) -> Dict[str, List[str]]:
        query = "SELECT message_id, user_id FROM message_reads WHERE conversation_id = ?"
        params = [conversation_id]
        if message_id is not None:
            query += " AND message_id = ?"
            params.append(message_id)
        readers: Dict[str, List[str]] = defaultdict(list)
        for msg_id, user_id in self._get_connection().execute(
            query + " ORDER BY read_at", params
        ).fetchall():
            readers[msg_id].append(user_id)
        return readers

    def _rows_to_conversations(self, rows) -> List[Conversation]:
        if not rows:
            return []
        ids = [r[0] for r in rows]
        participants: Dict[str, List[str]] = defaultdict(list)
        for conv_id, user_id in self._get_connection().execute(
            """
            SELECT conversation_id, user_id
            FROM conversation_participants
            WHERE list_contains(?, conversation_id)
            ORDER BY conversation_id, position
            """,
            [ids],
        ).fetchall():
            participants[conv_id].append(user_id)

        conversations = []
        for r in rows:
            last = None
            if r[5] is not None:
                last = LastMessage(id=r[5], senderId=r[6], content=r[7], timestamp=r[8])
            conversations.append(
                Conversation(
                    id=r[0],
                    isGroupChat=r[1],
                    groupName=r[2],
                    groupAdmin=r[3],
                    groupImageUrl=r[4],
                    lastMessage=last,
                    createdAt=r[9],
                    updatedAt=r[10],
                    participants=participants.get(r[0], []),
                )
            )
        return conversations

"""SQLite storage for chat messages and user facts."""

import sqlite3
from collections.abc import Iterable

from ..db import SQLiteStore, utcnow
from .models import ChatMessage, FactType, UserFact

_FACT_COLUMNS = (
    "id, user_id, chat_id, username, fact_type, fact, confidence, "
    "extracted_from, is_active, created_at, updated_at"
)


class MemoryStore(SQLiteStore):
    """Persistent storage for the message log and extracted facts.

    Facts are never physically removed; clearing flips `is_active`.
    """

    def init_db(self) -> None:
        """Create the tables if they don't exist."""
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS chat_messages (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                chat_id     INTEGER NOT NULL,
                message_id  INTEGER NOT NULL,
                user_id     INTEGER NOT NULL,
                username    TEXT,
                content     TEXT NOT NULL,
                timestamp   TEXT NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_messages_chat ON chat_messages(chat_id, timestamp)"
        )
        conn.execute("""
            CREATE TABLE IF NOT EXISTS user_facts (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id         INTEGER NOT NULL,
                chat_id         INTEGER NOT NULL,
                username        TEXT NOT NULL,
                fact_type       TEXT NOT NULL,
                fact            TEXT NOT NULL,
                confidence      REAL NOT NULL,
                extracted_from  TEXT NOT NULL DEFAULT '',
                is_active       INTEGER NOT NULL DEFAULT 1,
                created_at      TEXT NOT NULL,
                updated_at      TEXT NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_facts_user_chat ON user_facts(user_id, chat_id)"
        )
        conn.commit()

    # Messages

    def add_message(self, message: ChatMessage) -> ChatMessage:
        """Append a message to the log.

        Args:
            message: The message to store.

        Returns:
            The message with its id and timestamp.
        """
        timestamp = message.timestamp or utcnow()
        conn = self._get_connection()
        cursor = conn.execute(
            """
            INSERT INTO chat_messages (chat_id, message_id, user_id, username, content, timestamp)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                message.chat_id,
                message.message_id,
                message.user_id,
                message.username,
                message.content,
                timestamp,
            ),
        )
        conn.commit()
        return ChatMessage(
            id=cursor.lastrowid,
            chat_id=message.chat_id,
            message_id=message.message_id,
            user_id=message.user_id,
            username=message.username,
            content=message.content,
            timestamp=timestamp,
        )

    def get_recent_messages(self, chat_id: int, limit: int) -> list[ChatMessage]:
        """Most recent messages first."""
        conn = self._get_connection()
        cursor = conn.execute(
            """
            SELECT * FROM chat_messages WHERE chat_id = ?
            ORDER BY timestamp DESC, id DESC
            LIMIT ?
            """,
            (chat_id, limit),
        )
        return [self._row_to_message(row) for row in cursor.fetchall()]

    def get_messages_ascending(
        self, chat_id: int, offset: int = 0, limit: int = 20
    ) -> list[ChatMessage]:
        """Oldest messages first, for paging through the history."""
        conn = self._get_connection()
        cursor = conn.execute(
            """
            SELECT * FROM chat_messages WHERE chat_id = ?
            ORDER BY timestamp ASC, id ASC
            LIMIT ? OFFSET ?
            """,
            (chat_id, limit, offset),
        )
        return [self._row_to_message(row) for row in cursor.fetchall()]

    def count_messages(self, chat_id: int) -> int:
        conn = self._get_connection()
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM chat_messages WHERE chat_id = ?", (chat_id,)
        ).fetchone()
        return row["n"]

    def delete_messages(self, ids: Iterable[int]) -> int:
        """Delete messages by database id. Returns the number deleted."""
        id_list = list(ids)
        if not id_list:
            return 0
        placeholders = ", ".join("?" for _ in id_list)
        conn = self._get_connection()
        cursor = conn.execute(
            f"DELETE FROM chat_messages WHERE id IN ({placeholders})", id_list
        )
        conn.commit()
        return cursor.rowcount

    def prune_messages(self, chat_id: int, keep: int) -> int:
        """Keep only the `keep` most recent messages of a chat, deleting the oldest."""
        conn = self._get_connection()
        cursor = conn.execute(
            """
            SELECT id FROM chat_messages WHERE chat_id = ?
            ORDER BY timestamp DESC, id DESC
            LIMIT -1 OFFSET ?
            """,
            (chat_id, keep),
        )
        return self.delete_messages(row["id"] for row in cursor.fetchall())

    def get_recent_user_ids(self, chat_id: int, limit: int) -> list[int]:
        """Distinct authors of the last `limit` messages, most recent first."""
        user_ids: list[int] = []
        for message in self.get_recent_messages(chat_id, limit):
            if message.user_id not in user_ids:
                user_ids.append(message.user_id)
        return user_ids

    # Facts

    def add_fact(self, fact: UserFact) -> UserFact:
        """Insert a new fact row."""
        now = utcnow()
        conn = self._get_connection()
        cursor = conn.execute(
            """
            INSERT INTO user_facts (
                user_id, chat_id, username, fact_type, fact, confidence,
                extracted_from, is_active, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
            """,
            (
                fact.user_id,
                fact.chat_id,
                fact.username,
                fact.fact_type.value,
                fact.fact,
                fact.confidence,
                fact.extracted_from,
                now,
                now,
            ),
        )
        conn.commit()
        row = conn.execute(
            f"SELECT {_FACT_COLUMNS} FROM user_facts WHERE id = ?", (cursor.lastrowid,)
        ).fetchone()
        return self._row_to_fact(row)

    def find_similar_fact(
        self,
        user_id: int,
        chat_id: int,
        fact_type: FactType,
        fragment: str,
    ) -> UserFact | None:
        """First active fact of the same user, chat and type whose text contains `fragment`."""
        conn = self._get_connection()
        row = conn.execute(
            f"""
            SELECT {_FACT_COLUMNS} FROM user_facts
            WHERE user_id = ? AND chat_id = ? AND fact_type = ?
              AND is_active = 1 AND instr(fact, ?) > 0
            ORDER BY id ASC
            LIMIT 1
            """,
            (user_id, chat_id, fact_type.value, fragment),
        ).fetchone()
        return self._row_to_fact(row) if row else None

    def update_fact_confidence(self, fact_id: int, confidence: float) -> None:
        conn = self._get_connection()
        conn.execute(
            "UPDATE user_facts SET confidence = ?, updated_at = ? WHERE id = ?",
            (confidence, utcnow(), fact_id),
        )
        conn.commit()

    def get_fact(self, fact_id: int) -> UserFact | None:
        conn = self._get_connection()
        row = conn.execute(
            f"SELECT {_FACT_COLUMNS} FROM user_facts WHERE id = ?", (fact_id,)
        ).fetchone()
        return self._row_to_fact(row) if row else None

    def get_active_facts(
        self,
        chat_id: int,
        user_ids: Iterable[int],
        min_confidence: float = 0.0,
    ) -> list[UserFact]:
        """Active facts about any of `user_ids`, most confident and newest first."""
        id_list = list(user_ids)
        if not id_list:
            return []
        placeholders = ", ".join("?" for _ in id_list)
        conn = self._get_connection()
        cursor = conn.execute(
            f"""
            SELECT {_FACT_COLUMNS} FROM user_facts
            WHERE chat_id = ? AND user_id IN ({placeholders})
              AND is_active = 1 AND confidence >= ?
            ORDER BY confidence DESC, created_at DESC, id DESC
            """,
            (chat_id, *id_list, min_confidence),
        )
        return [self._row_to_fact(row) for row in cursor.fetchall()]

    def deactivate_facts(self, user_id: int, chat_id: int, containing: str | None = None) -> int:
        """Soft-delete active facts of a user, optionally only those containing a text.

        Returns:
            Number of facts transitioned to inactive.
        """
        query = "UPDATE user_facts SET is_active = 0, updated_at = ? WHERE user_id = ? AND chat_id = ? AND is_active = 1"
        params: list[object] = [utcnow(), user_id, chat_id]
        if containing is not None:
            query += " AND instr(fact, ?) > 0"
            params.append(containing)
        conn = self._get_connection()
        cursor = conn.execute(query, params)
        conn.commit()
        return cursor.rowcount

    def fact_stats(self, chat_id: int) -> dict[str, object]:
        """Totals for the active facts of a chat."""
        conn = self._get_connection()
        totals = conn.execute(
            """
            SELECT COUNT(*) AS total, COUNT(DISTINCT user_id) AS users
            FROM user_facts WHERE chat_id = ? AND is_active = 1
            """,
            (chat_id,),
        ).fetchone()
        by_type = conn.execute(
            """
            SELECT fact_type, COUNT(*) AS n FROM user_facts
            WHERE chat_id = ? AND is_active = 1
            GROUP BY fact_type ORDER BY n DESC, fact_type ASC
            """,
            (chat_id,),
        ).fetchall()
        return {
            "total": totals["total"],
            "users": totals["users"],
            "by_type": {row["fact_type"]: row["n"] for row in by_type},
        }

    def _row_to_message(self, row: sqlite3.Row) -> ChatMessage:
        """Convert a database row to a ChatMessage."""
        return ChatMessage(
            id=row["id"],
            chat_id=row["chat_id"],
            message_id=row["message_id"],
            user_id=row["user_id"],
            username=row["username"],
            content=row["content"],
            timestamp=row["timestamp"],
        )

    def _row_to_fact(self, row: sqlite3.Row) -> UserFact:
        """Convert a database row to a UserFact."""
        return UserFact(
            id=row["id"],
            user_id=row["user_id"],
            chat_id=row["chat_id"],
            username=row["username"],
            fact_type=FactType(row["fact_type"]),
            fact=row["fact"],
            confidence=row["confidence"],
            extracted_from=row["extracted_from"],
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

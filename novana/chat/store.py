"""ConversationStore — append-only chat log via libsql."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from novana.chat.models import ConversationTurn
from novana.db import TableStore

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS chat_messages (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    person_id  INTEGER NOT NULL,
    user_id    TEXT NOT NULL,
    role       TEXT NOT NULL,
    content    TEXT NOT NULL,
    created_at TEXT NOT NULL
)
"""

_COLUMNS = "id, person_id, user_id, role, content, created_at"

MAX_HISTORY_LIMIT = 200


def _row_to_turn(row: tuple) -> ConversationTurn:
    return ConversationTurn(
        id=row[0],
        person_id=row[1],
        user_id=row[2],
        role=row[3],
        content=row[4],
        created_at=row[5],
    )


class ConversationStore(TableStore):
    """Persists chat turns per person, ordered by insertion.

    Pass an explicit *db_path* for test isolation.
    """

    create_sql = _CREATE_TABLE

    async def append(self, person_id: int, user_id: str, role: str, content: str) -> ConversationTurn:
        """Insert one turn and commit before returning."""
        now = datetime.now(UTC).isoformat()
        async with self.connection() as db:
            cursor = await db.execute(
                """
                INSERT INTO chat_messages (person_id, user_id, role, content, created_at)
                VALUES (?, ?, ?, ?, ?)
                RETURNING id
                """,
                (person_id, str(user_id), role, content, now),
            )
            row = await cursor.fetchone()
            await db.commit()
        logger.debug("Stored %s turn for person %s", role, person_id)
        return ConversationTurn(
            id=row[0] if row else 0,
            person_id=person_id,
            user_id=str(user_id),
            role=role,
            content=content,
            created_at=now,
        )

    async def fetch_recent(self, person_id: int, limit: int) -> list[ConversationTurn]:
        """The latest *limit* turns, newest first."""
        async with self.connection() as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM chat_messages WHERE person_id = ? ORDER BY id DESC LIMIT ?",
                (person_id, limit),
            )
            rows = await cursor.fetchall()
        return [_row_to_turn(row) for row in rows]

    async def history(self, person_id: int, limit: int = 50) -> list[ConversationTurn]:
        """The first *limit* turns (at most 200), oldest first."""
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        async with self.connection() as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM chat_messages WHERE person_id = ? ORDER BY id ASC LIMIT ?",
                (person_id, limit),
            )
            rows = await cursor.fetchall()
        return [_row_to_turn(row) for row in rows]

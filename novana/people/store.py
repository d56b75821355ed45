"""PeopleStore — the person records conversations are about, via libsql."""

from __future__ import annotations

import logging

from novana.chat.models import Person
from novana.db import TableStore

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS persons (
    id         INTEGER PRIMARY KEY,
    name       TEXT NOT NULL DEFAULT '',
    birth_date TEXT,
    death_date TEXT
)
"""


class PeopleStore(TableStore):
    """Reads person records. Editing them belongs to the profile service;
    ``upsert`` exists for seeding."""

    create_sql = _CREATE_TABLE

    async def upsert(
        self,
        person_id: int,
        name: str,
        birth_date: str | None = None,
        death_date: str | None = None,
    ) -> Person:
        async with self.connection() as db:
            await db.execute(
                """
                INSERT OR REPLACE INTO persons (id, name, birth_date, death_date)
                VALUES (?, ?, ?, ?)
                """,
                (person_id, name, birth_date, death_date),
            )
            await db.commit()
        logger.info("Upserted person %s", person_id)
        return Person(id=person_id, name=name, birth_date=birth_date, death_date=death_date)

    async def get_by_id(self, person_id: int) -> Person | None:
        """Fetch one person, or None if not found."""
        async with self.connection() as db:
            cursor = await db.execute(
                "SELECT id, name, birth_date, death_date FROM persons WHERE id = ?",
                (person_id,),
            )
            row = await cursor.fetchone()
        if not row:
            return None
        return Person(id=row[0], name=row[1] or "", birth_date=row[2], death_date=row[3])

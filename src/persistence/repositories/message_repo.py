"""Message repository for database operations."""

from datetime import datetime
from typing import List

import aiosqlite

from src.domain.models.message import STRUCTURED_FIELDS, Message

_COLUMNS = ("id", "session_id", "role", "content", *STRUCTURED_FIELDS, "created_at")


class MessageRepository:
    """Repository for conversation turns."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    @staticmethod
    async def insert(db: aiosqlite.Connection, message: Message) -> None:
        """Insert on an open connection; the caller commits."""
        placeholders = ", ".join("?" for _ in _COLUMNS)
        await db.execute(
            f"INSERT INTO messages ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
            (
                message.id,
                message.session_id,
                message.role.value,
                message.content,
                *(getattr(message, f) for f in STRUCTURED_FIELDS),
                message.created_at.isoformat(),
            ),
        )

    async def add(self, message: Message) -> Message:
        """Save a single message.

        Args:
            message: Message model to save

        Returns:
            Message as stored
        """
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            await self.insert(db, message)
            await db.commit()

            cursor = await db.execute(
                "SELECT * FROM messages WHERE id = ?", (message.id,)
            )
            row = await cursor.fetchone()
            if not row:
                raise ValueError(f"Message {message.id} not found after save")
            return self._row_to_message(row)

    async def list_for_session(self, session_id: str) -> List[Message]:
        """All turns of a session in chronological order."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM messages WHERE session_id = ? ORDER BY seq ASC",
                (session_id,),
            )
            rows = await cursor.fetchall()
            return [self._row_to_message(row) for row in rows]

    def _row_to_message(self, row: aiosqlite.Row) -> Message:
        """Convert a database row to a Message model."""
        return Message(
            id=row["id"],
            session_id=row["session_id"],
            role=row["role"],
            content=row["content"] or "",
            **{f: row[f] for f in STRUCTURED_FIELDS},
            created_at=datetime.fromisoformat(row["created_at"]),
        )

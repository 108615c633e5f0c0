"""Session repository for database operations."""

import json
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import aiosqlite
import structlog

from src.domain.models.message import Message
from src.domain.models.session import Session, SessionUpdate
from src.persistence.repositories.message_repo import MessageRepository

log = structlog.get_logger(__name__)

_UPDATE_COLUMNS = (
    "current_layer",
    "core_belief",
    "core_belief_already_detected",
    "grounding_mode",
    "grounding_turns",
    "grounding_stable_turns",
    "last_question_type",
    "last_intent_used",
    "is_completed",
    "discovered_insights",
    "original_trigger",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionRepository:
    """Repository for session CRUD operations."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def create(self, session: Session) -> Session:
        """Insert a new session record."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            await self._insert(db, session)
            await db.commit()
            return await self._fetch(db, session.id)

    async def get(self, session_id: str) -> Optional[Session]:
        """Get a session by ID."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM sessions WHERE id = ?", (session_id,)
            )
            row = await cursor.fetchone()
            if not row:
                return None
            return self._row_to_session(row)

    async def list_for_user(self, user_id: str) -> List[Session]:
        """List a user's sessions, most recently updated first."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM sessions WHERE user_id = ? ORDER BY updated_at DESC",
                (user_id,),
            )
            rows = await cursor.fetchall()
            return [self._row_to_session(row) for row in rows]

    async def update(self, session_id: str, update: SessionUpdate) -> Optional[Session]:
        """Apply a SessionUpdate. Returns None if the session does not exist."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            changed = await self._apply_update(db, session_id, update)
            await db.commit()
            if not changed:
                return None
            return await self._fetch(db, session_id)

    async def update_title(self, session_id: str, title: str) -> Optional[Session]:
        """Rename a session. Returns None if the session does not exist."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "UPDATE sessions SET title = ?, updated_at = ? WHERE id = ?",
                (title, _now(), session_id),
            )
            await db.commit()
            if cursor.rowcount == 0:
                return None
            return await self._fetch(db, session_id)

    async def delete(self, session_id: str) -> bool:
        """Delete a session and its messages. Returns True if deleted."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA foreign_keys = ON")
            cursor = await db.execute(
                "DELETE FROM sessions WHERE id = ?", (session_id,)
            )
            await db.commit()
            return cursor.rowcount > 0

    async def save_turn(
        self,
        session: Session,
        messages: Iterable[Message],
        update: SessionUpdate,
        is_new: bool = False,
    ) -> Session:
        """
        Persist one completed turn in a single transaction.

        Args:
            session: Session the turn belongs to
            messages: Turns to append (user turn, then assistant turn)
            update: Session fields produced by the engine
            is_new: Insert the session record first

        Returns:
            Session as stored after the turn
        """
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            try:
                if is_new:
                    await self._insert(db, session)
                for message in messages:
                    await MessageRepository.insert(db, message)
                await self._apply_update(db, session.id, update)
                await db.commit()
            except aiosqlite.Error:
                await db.rollback()
                log.error("turn_persist_failed", session_id=session.id)
                raise
            return await self._fetch(db, session.id)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _insert(self, db: aiosqlite.Connection, session: Session) -> None:
        await db.execute(
            "INSERT INTO sessions (id, user_id, title, original_trigger, current_layer, "
            "core_belief, core_belief_already_detected, grounding_mode, grounding_turns, "
            "grounding_stable_turns, "
            "last_question_type, last_intent_used, is_completed, discovered_insights, "
            "created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                session.id,
                session.user_id,
                session.title,
                session.original_trigger,
                session.current_layer.value,
                session.core_belief,
                int(session.core_belief_already_detected),
                int(session.grounding_mode),
                session.grounding_turns,
                session.grounding_stable_turns,
                session.last_question_type,
                session.last_intent_used.value,
                int(session.is_completed),
                json.dumps(session.discovered_insights),
                session.created_at.isoformat(),
                session.updated_at.isoformat(),
            ),
        )

    async def _apply_update(
        self, db: aiosqlite.Connection, session_id: str, update: SessionUpdate
    ) -> bool:
        values = (
            update.current_layer.value,
            update.core_belief,
            int(update.core_belief_already_detected),
            int(update.grounding_mode),
            update.grounding_turns,
            update.grounding_stable_turns,
            update.last_question_type,
            update.last_intent_used.value,
            int(update.is_completed),
            json.dumps(update.discovered_insights),
            update.original_trigger,
        )
        assignments = ", ".join(f"{c} = ?" for c in _UPDATE_COLUMNS)
        cursor = await db.execute(
            f"UPDATE sessions SET {assignments}, updated_at = ? WHERE id = ?",
            (*values, _now(), session_id),
        )
        return cursor.rowcount > 0

    async def _fetch(self, db: aiosqlite.Connection, session_id: str) -> Session:
        cursor = await db.execute("SELECT * FROM sessions WHERE id = ?", (session_id,))
        row = await cursor.fetchone()
        if not row:
            raise ValueError(f"Session {session_id} not found after write")
        return self._row_to_session(row)

    def _row_to_session(self, row: aiosqlite.Row) -> Session:
        """Convert a database row to a Session model."""
        return Session(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"] or "",
            original_trigger=row["original_trigger"] or "",
            current_layer=row["current_layer"],
            core_belief=row["core_belief"],
            core_belief_already_detected=bool(row["core_belief_already_detected"]),
            grounding_mode=bool(row["grounding_mode"]),
            grounding_turns=row["grounding_turns"],
            grounding_stable_turns=row["grounding_stable_turns"],
            last_question_type=row["last_question_type"],
            last_intent_used=row["last_intent_used"],
            is_completed=bool(row["is_completed"]),
            discovered_insights=json.loads(row["discovered_insights"] or "{}"),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

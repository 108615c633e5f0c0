"""
Session orchestration service.

Binds the stateless reflection engine to the record store:

    submit_thought(user_id, session_id | None, text, intent) -> (Session, ReflectionResult)

Load (or create) the session, rebuild SessionContext from its messages,
run ReflectionService.reflect(), then persist the user turn, the assistant
turn and the session update in one transaction. Turns for the same
session are serialized with a per-session asyncio.Lock so a context is
never rebuilt from a half-written previous turn. If anything fails before
the write, nothing is persisted.
"""

import asyncio
from contextlib import asynccontextmanager, nullcontext
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Dict, Optional, Tuple
from uuid import uuid4

import structlog

from src.core.exceptions import SessionNotFoundError
from src.domain.models.message import Message, Role
from src.domain.models.reflection import ReflectionResult
from src.domain.models.session import Session
from src.domain.models.session_context import SessionContext
from src.persistence.repositories.message_repo import MessageRepository
from src.persistence.repositories.session_repo import SessionRepository
from src.services.context_normalizer import build_session_context
from src.services.input_validation import validate_thought
from src.services.reflection_service import ReflectionService

log = structlog.get_logger(__name__)

_TITLE_LENGTH = 60


def _title_from(text: str) -> str:
    line = " ".join(text.split())
    return line if len(line) <= _TITLE_LENGTH else line[: _TITLE_LENGTH - 3].rstrip() + "..."


class SessionService:
    """Runs reflection turns against persisted sessions."""

    def __init__(
        self,
        session_repo: SessionRepository,
        message_repo: MessageRepository,
        reflection_service: ReflectionService,
    ):
        """
        Args:
            session_repo: Session record store
            message_repo: Message record store
            reflection_service: Stateless engine
        """
        self.session_repo = session_repo
        self.message_repo = message_repo
        self.reflection = reflection_service
        # Entries live only while some turn holds or waits on them
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _session_lock(self, session_id: str) -> AsyncIterator[None]:
        """Serialize turns for one session; drop the lock when idle."""
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                del self._lock_users[session_id]
                del self._locks[session_id]

    async def get_session(self, session_id: str, user_id: Optional[str] = None) -> Session:
        """
        Load a session, optionally checking ownership.

        Raises:
            SessionNotFoundError: Unknown id, or owned by another user
        """
        session = await self.session_repo.get(session_id)
        if session is None or (user_id is not None and session.user_id != user_id):
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    async def get_context(
        self, session_id: str, user_id: Optional[str] = None
    ) -> Tuple[Session, SessionContext]:
        """Session plus the context the next turn would be computed from."""
        session = await self.get_session(session_id, user_id)
        messages = await self.message_repo.list_for_session(session_id)
        context = build_session_context(
            messages, session=session, user_intent=session.last_intent_used
        )
        return session, context

    async def submit_thought(
        self,
        user_id: str,
        session_id: Optional[str],
        text: str,
        intent: Optional[str] = None,
    ) -> Tuple[Session, ReflectionResult]:
        """
        Process one user message end to end.

        Args:
            user_id: Owner of the session
            session_id: Existing session, or None to start a new one
            text: Raw user message
            intent: Optional intent for this turn (unknown values mean AUTO,
                None keeps the session's last intent)

        Returns:
            (stored session after the turn, reflection result)

        Raises:
            InvalidInputError: Message rejected before any provider call
            SessionNotFoundError: session_id unknown or not owned by user_id
            AllProvidersExhaustedError: Engine failed; nothing was persisted
        """
        cleaned = validate_thought(text)
        if session_id is None:
            # A new session has no concurrent writers yet
            lock = nullcontext()
        else:
            await self.get_session(session_id, user_id)
            lock = self._session_lock(session_id)

        async with lock:
            if session_id is None:
                session = Session(
                    id=str(uuid4()),
                    user_id=user_id,
                    title=_title_from(cleaned),
                    original_trigger=cleaned,
                )
                messages = []
                is_new = True
            else:
                session = await self.get_session(session_id, user_id)
                messages = await self.message_repo.list_for_session(session_id)
                is_new = False

            context = build_session_context(
                messages,
                session=session,
                user_intent=session.last_intent_used if intent is None else intent,
                user_text=cleaned,
            )
            result = await self.reflection.reflect(cleaned, session, context)

            now = datetime.now(timezone.utc)
            user_message = Message(
                id=str(uuid4()),
                session_id=session.id,
                role=Role.USER,
                content=cleaned,
                created_at=now,
            )
            assistant_message = Message(
                id=str(uuid4()),
                session_id=session.id,
                role=Role.ASSISTANT,
                created_at=now + timedelta(microseconds=1),
                **result.to_message_fields(),
            )
            stored = await self.session_repo.save_turn(
                session,
                [user_message, assistant_message],
                result.session_update,
                is_new=is_new,
            )

        log.info(
            "turn_persisted",
            session_id=stored.id,
            new_session=is_new,
            current_layer=stored.current_layer.value,
            is_completed=stored.is_completed,
        )
        return stored, result

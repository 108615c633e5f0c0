"""
API request/response schemas.

Pydantic models for API validation and serialization. Engine payloads
(StructuredResponse, SessionUpdate, ReflectionMeta) are returned as-is and
serialize with their camelCase aliases.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from src.domain.models.message import Message
from src.domain.models.reflection import ReflectionMeta, StructuredResponse
from src.domain.models.session import (
    IcebergLayer,
    QuestionType,
    Session,
    SessionUpdate,
    UserIntent,
)
from src.domain.models.session_context import SessionContext


# ============ SESSION SCHEMAS ============


class SessionCreate(BaseModel):
    """Request to create an empty session."""

    title: str = Field(default="", max_length=200)


class SessionRename(BaseModel):
    """Request to update a session's editable fields."""

    title: str = Field(..., max_length=200)


class SessionResponse(BaseModel):
    """Session details response."""

    id: str
    user_id: str
    title: str
    original_trigger: str
    current_layer: IcebergLayer
    core_belief: Optional[str] = None
    is_completed: bool
    grounding_mode: bool
    grounding_turns: int
    grounding_stable_turns: int = 0
    last_question_type: QuestionType
    last_intent_used: UserIntent
    discovered_insights: Dict[str, str] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(**session.model_dump(exclude={"core_belief_already_detected"}))


class SessionListResponse(BaseModel):
    """List of sessions response."""

    sessions: List[SessionResponse]
    total: int


class SessionDetailResponse(BaseModel):
    """Session with its turns and the context the next turn will use."""

    session: SessionResponse
    messages: List[Message]
    context: SessionContext


# ============ REFLECTION SCHEMAS ============


class ReflectRequest(BaseModel):
    """Submit a thought to a new or existing session.

    ``text`` is bounds-checked by the engine so violations surface as 400.
    """

    text: str
    session_id: Optional[str] = None
    intent: Optional[str] = Field(
        default=None, description="AUTO, CALM, CLARITY, NEXT_STEP, MEANING or LISTEN"
    )


class ReflectResponse(BaseModel):
    """Result of one persisted reflection turn."""

    session: SessionResponse
    response: StructuredResponse
    meta: ReflectionMeta


class EngineRequest(BaseModel):
    """Stateless reflection: the caller supplies the whole session state."""

    text: str
    session: Optional[Session] = None
    messages: List[Message] = Field(default_factory=list)
    intent: Optional[str] = None


class EngineResponse(BaseModel):
    """Stateless reflection result; the caller persists session_update."""

    response: StructuredResponse
    session_update: SessionUpdate
    meta: ReflectionMeta

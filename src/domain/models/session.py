"""Session domain models for the reflection journey.

This module defines the persisted session record and the enums that
describe where a user is in their reflection.

Core Models:
    - IcebergLayer: Ordered emotional-depth stages
    - UserIntent: Conversational goal selected by the user (or AUTO)
    - QuestionType: Classification of the last assistant question
    - Session: One continuous reflection journey owned by one user
    - SessionUpdate: Fields the record store persists after each turn

Session Lifecycle:
    1. Created on the first user message (layer = surface)
    2. Mutated after every turn from the engine's SessionUpdate
    3. is_completed flips to True once a core belief is surfaced and never reverts
    4. Never deleted by the engine (deletion is a store operation)
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class IcebergLayer(str, Enum):
    """Emotional-depth stage, ordered from shallow to deep."""

    SURFACE = "surface"
    TRIGGER = "trigger"
    EMOTION = "emotion"
    CORE_BELIEF = "coreBelief"

    @property
    def depth(self) -> int:
        """Zero-based position in the surface -> coreBelief ordering."""
        return LAYER_ORDER.index(self)

    @classmethod
    def parse(cls, value: Any) -> Optional["IcebergLayer"]:
        """Lenient parse of vendor/client layer labels.

        Accepts enum values, the upper-case names used by older clients
        (SURFACE, TRANSITION, EMOTION, CORE_WOUND) and common spellings.
        Returns None for anything unrecognized.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        key = value.strip().replace("-", "_").replace(" ", "_").lower()
        return _LAYER_ALIASES.get(key)


LAYER_ORDER = [
    IcebergLayer.SURFACE,
    IcebergLayer.TRIGGER,
    IcebergLayer.EMOTION,
    IcebergLayer.CORE_BELIEF,
]

_LAYER_ALIASES = {
    "surface": IcebergLayer.SURFACE,
    "trigger": IcebergLayer.TRIGGER,
    "transition": IcebergLayer.TRIGGER,
    "emotion": IcebergLayer.EMOTION,
    "corebelief": IcebergLayer.CORE_BELIEF,
    "core_belief": IcebergLayer.CORE_BELIEF,
    "core_wound": IcebergLayer.CORE_BELIEF,
    "corewound": IcebergLayer.CORE_BELIEF,
}


class UserIntent(str, Enum):
    """Conversational goal for the turn. Unknown values resolve to AUTO."""

    AUTO = "AUTO"
    CALM = "CALM"
    CLARITY = "CLARITY"
    NEXT_STEP = "NEXT_STEP"
    MEANING = "MEANING"
    LISTEN = "LISTEN"

    @classmethod
    def resolve(cls, value: Any) -> "UserIntent":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                return cls.AUTO
        return cls.AUTO


QuestionType = Literal["choice", "open", ""]


class Session(BaseModel):
    """One continuous reflection journey for one user.

    Stored in the sessions table. The engine reads it as input and returns
    a SessionUpdate; it never mutates a Session in place.
    """

    id: str
    user_id: str
    title: str = ""
    original_trigger: str = ""
    current_layer: IcebergLayer = IcebergLayer.SURFACE
    core_belief: Optional[str] = None
    core_belief_already_detected: bool = False
    grounding_mode: bool = False
    grounding_turns: int = Field(default=0, ge=0)
    grounding_stable_turns: int = Field(default=0, ge=0)
    last_question_type: QuestionType = ""
    last_intent_used: UserIntent = UserIntent.AUTO
    is_completed: bool = False
    discovered_insights: Dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("current_layer", mode="before")
    @classmethod
    def tolerate_client_layer(cls, v: Any) -> IcebergLayer:
        """Out-of-order or legacy client state degrades to surface, never fails."""
        return IcebergLayer.parse(v) or IcebergLayer.SURFACE

    @field_validator("last_intent_used", mode="before")
    @classmethod
    def tolerate_intent(cls, v: Any) -> UserIntent:
        return UserIntent.resolve(v)

    @field_validator("last_question_type", mode="before")
    @classmethod
    def tolerate_question_type(cls, v: Any) -> str:
        return v if v in ("choice", "open") else ""


class SessionUpdate(BaseModel):
    """Fields the external store must persist after a turn.

    Produced by the reflection pipeline; applied verbatim by the store.
    """

    current_layer: IcebergLayer
    core_belief: Optional[str] = None
    is_completed: bool = False
    core_belief_already_detected: bool = False
    core_belief_newly_detected: bool = False
    last_question_type: QuestionType = ""
    grounding_mode: bool = False
    grounding_turns: int = Field(default=0, ge=0)
    grounding_stable_turns: int = Field(default=0, ge=0)
    last_intent_used: UserIntent = UserIntent.AUTO
    discovered_insights: Dict[str, str] = Field(default_factory=dict)
    original_trigger: str = ""

"""SessionContext: the engine's working memory for one turn.

Rebuilt from (Session, ordered Messages) on every turn by the context
normalizer and never persisted as-is. It is a pure function of its inputs:
two builds from identical inputs compare equal and serialize identically.

History lists are newest-first, de-duplicated (case and whitespace
insensitive) and length-capped.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from src.domain.models.session import IcebergLayer, QuestionType, UserIntent


class ConversationTurn(BaseModel):
    """Minimal {role, content} pair forwarded to the generation backend."""

    model_config = ConfigDict(frozen=True)

    role: str
    content: str


class SessionContext(BaseModel):
    """Derived, de-duplicated working memory for the reflection pipeline."""

    model_config = ConfigDict(frozen=True)

    previous_questions: List[str] = Field(default_factory=list)
    previous_reframes: List[str] = Field(default_factory=list)
    previous_distortions: List[str] = Field(default_factory=list)
    previous_acknowledgments: List[str] = Field(default_factory=list)
    previous_encouragements: List[str] = Field(default_factory=list)

    original_trigger: str = ""

    grounding_mode: bool = False
    grounding_turns: int = Field(default=0, ge=0)
    grounding_stable_turns: int = Field(default=0, ge=0)
    last_question_type: QuestionType = ""
    core_belief_already_detected: bool = False
    user_intent: UserIntent = UserIntent.AUTO

    current_layer: IcebergLayer = IcebergLayer.SURFACE
    is_completed: bool = False
    turn_number: int = Field(
        default=1, ge=1, description="1-based number of the turn being processed"
    )
    conversation: List[ConversationTurn] = Field(
        default_factory=list,
        description="Most recent raw turns, chronological, for backend history",
    )

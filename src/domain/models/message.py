"""Message domain model for conversation turns.

A Message is one user or assistant utterance inside a Session. Turns are
totally ordered by creation time; consumers always receive them in
chronological order and derive "most recent" views by reversing.

Structured fields (thought_pattern, reframe, question, ...) are only
populated on assistant turns.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class Role(str, Enum):
    """Speaker role for a turn."""

    USER = "user"
    ASSISTANT = "assistant"


STRUCTURED_FIELDS = (
    "acknowledgment",
    "thought_pattern",
    "pattern_note",
    "reframe",
    "question",
    "encouragement",
    "iceberg_layer",
    "layer_insight",
)


class Message(BaseModel):
    """Single conversation turn.

    For assistant turns ``content`` carries the human-readable
    acknowledgment and the structured fields carry the rest of the
    response.
    """

    id: str = ""
    session_id: str = ""
    role: Role
    content: str = ""

    acknowledgment: Optional[str] = None
    thought_pattern: Optional[str] = None
    pattern_note: Optional[str] = None
    reframe: Optional[str] = None
    question: Optional[str] = None
    encouragement: Optional[str] = None
    iceberg_layer: Optional[str] = None
    layer_insight: Optional[str] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def user_turns_carry_only_content(self) -> "Message":
        if self.role == Role.USER:
            populated = [f for f in STRUCTURED_FIELDS if getattr(self, f)]
            if populated:
                raise ValueError(
                    f"user turns cannot carry structured fields: {', '.join(populated)}"
                )
        return self

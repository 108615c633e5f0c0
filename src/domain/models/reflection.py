"""Reflection response models.

StructuredResponse is what the caller receives and what the store
persists as the next assistant Message. ReflectionResult bundles it with
the SessionUpdate and observability metadata produced by one turn.

Serialized field names are camelCase to match the client contract
(``icebergLayer``, ``groundingTurns``, ...).
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.domain.models.session import IcebergLayer, SessionUpdate


class LayerProgress(BaseModel):
    """Per-layer completion percentages (0-100)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    surface: int = Field(default=0, ge=0, le=100)
    trigger: int = Field(default=0, ge=0, le=100)
    emotion: int = Field(default=0, ge=0, le=100)
    core_belief: int = Field(default=0, ge=0, le=100)


class StructuredResponse(BaseModel):
    """Therapeutic response for one turn."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    acknowledgment: str
    thought_pattern: str = ""
    pattern_note: str = ""
    reframe: str = ""
    question: str = ""
    encouragement: str = ""
    iceberg_layer: IcebergLayer = IcebergLayer.SURFACE
    layer_insight: str = ""
    grounding_mode: bool = False
    grounding_turns: int = Field(default=0, ge=0)
    progress_score: Optional[int] = Field(default=None, ge=0, le=100)
    layer_progress: Optional[LayerProgress] = None
    is_crisis_response: bool = False
    safety_resources: List[str] = Field(default_factory=list)


class ReflectionMeta(BaseModel):
    """Observability data for one turn. Never used for control flow."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    provider: Optional[str] = None
    model: Optional[str] = None
    turn: int = 1
    suggested_layer: Optional[IcebergLayer] = None
    intent: str = "AUTO"
    state: Optional[str] = None
    intervention: Optional[str] = None
    confidence: Optional[float] = None
    reasons: List[str] = Field(default_factory=list)
    crisis_severity: str = "none"
    core_belief_statement: bool = False
    stage_timings: Dict[str, float] = Field(default_factory=dict)


class ReflectionResult(BaseModel):
    """Everything one reflect() call returns."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    response: StructuredResponse
    session_update: SessionUpdate
    meta: ReflectionMeta = Field(default_factory=ReflectionMeta)
    latency_ms: int = 0

    def to_message_fields(self) -> Dict[str, Any]:
        """Structured assistant-turn fields for the message store."""
        r = self.response
        return {
            "content": r.acknowledgment,
            "acknowledgment": r.acknowledgment,
            "thought_pattern": r.thought_pattern,
            "pattern_note": r.pattern_note,
            "reframe": r.reframe,
            "question": r.question,
            "encouragement": r.encouragement,
            "iceberg_layer": r.iceberg_layer.value,
            "layer_insight": r.layer_insight,
        }

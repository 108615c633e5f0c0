"""Pipeline stage contracts.

Formalized Pydantic models for stage outputs in the reflection pipeline.
Each stage writes exactly one contract onto the PipelineContext; later
stages read earlier contracts, never each other's internals.

Stage order:
    1. CrisisDetectionStage  -> CrisisAssessment + GroundingTransition
    2. PromptCompositionStage -> EngineDecision + PromptOutput
    3. ProviderCallStage     -> ProviderSuccess (from domain.models.provider)
    4. LayerAdvanceStage     -> LayerTransition
    5. ResponseAssemblyStage -> StructuredResponse (from domain.models.reflection)
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from src.domain.models.session import IcebergLayer


class CrisisSeverity(str, Enum):
    """Risk tier of a user message."""

    NONE = "none"
    ELEVATED = "elevated"
    ACUTE = "acute"

    @property
    def rank(self) -> int:
        return {"none": 0, "elevated": 1, "acute": 2}[self.value]


class CrisisAssessment(BaseModel):
    """Contract: crisis detector output for one message."""

    severity: CrisisSeverity = CrisisSeverity.NONE
    matched_indicators: List[str] = Field(default_factory=list)
    chose_grounding: bool = Field(
        default=False,
        description="User answered a choice question with a grounding preference",
    )


class GroundingTransition(BaseModel):
    """Contract: next grounding state and whether to bypass the backend."""

    grounding_mode: bool
    grounding_turns: int = Field(ge=0)
    stable_turns: int = Field(default=0, ge=0)
    short_circuit: bool = False
    reason: str = ""


class CognitiveState(str, Enum):
    REGULATE = "REGULATE"
    CLARIFY = "CLARIFY"
    MAP = "MAP"
    RESTRUCTURE = "RESTRUCTURE"
    PLAN = "PLAN"
    PRESENCE = "PRESENCE"


class Intervention(str, Enum):
    GROUND = "GROUND"
    SEPARATE_FACTS = "SEPARATE_FACTS"
    REFLECT_MAP = "REFLECT_MAP"
    CBT_REFRAME = "CBT_REFRAME"
    TINY_PLAN = "TINY_PLAN"
    VALIDATE_ONLY = "VALIDATE_ONLY"


class EngineDecision(BaseModel):
    """Contract: deterministic routing decision for the turn."""

    state: CognitiveState
    intervention: Intervention
    confidence: float = Field(ge=0.0, le=1.0)
    reasons: List[str] = Field(default_factory=list)
    ask_question: bool = True


class PromptOutput(BaseModel):
    """Contract: composed request for the generation backend."""

    system_instructions: str
    conversation_history: List[Dict[str, str]] = Field(default_factory=list)
    suggested_layer: IcebergLayer
    core_belief_statement: bool = False


class LayerTransition(BaseModel):
    """Contract: layer state machine output."""

    current_layer: IcebergLayer
    is_completed: bool
    core_belief: Optional[str] = None
    core_belief_already_detected: bool = False
    core_belief_newly_detected: bool = False
    discovered_insights: Dict[str, str] = Field(default_factory=dict)
    regression_ignored: bool = False

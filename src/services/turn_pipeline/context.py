"""
Reflection pipeline context for contract-based state accumulation.

Carries one turn's inputs and the contract each stage produces. Convenience
properties raise RuntimeError when read before their producing stage has
run, so a mis-ordered pipeline fails loudly instead of using stale state.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from src.domain.models.pipeline_contracts import (
    CrisisAssessment,
    EngineDecision,
    GroundingTransition,
    LayerTransition,
    PromptOutput,
)
from src.domain.models.provider import ProviderSuccess
from src.domain.models.reflection import StructuredResponse
from src.domain.models.session import Session
from src.domain.models.session_context import SessionContext


@dataclass
class PipelineContext:
    """Pipeline context for one reflect() call.

    Stage outputs (contracts):
    - Stage 1: CrisisAssessment + GroundingTransition (crisis response on acute)
    - Stage 2: EngineDecision + PromptOutput
    - Stage 3: ProviderSuccess
    - Stage 4: LayerTransition
    - Stage 5: StructuredResponse
    """

    # =============================================================================
    # Input parameters (immutable after creation)
    # =============================================================================
    user_text: str
    session_context: SessionContext
    session: Optional[Session] = None

    # =============================================================================
    # Stage Outputs (Contracts)
    # =============================================================================

    # Stage 1: CrisisDetectionStage output
    crisis_assessment: Optional[CrisisAssessment] = None
    grounding_transition: Optional[GroundingTransition] = None

    # Stage 2: PromptCompositionStage output
    engine_decision: Optional[EngineDecision] = None
    prompt_output: Optional[PromptOutput] = None

    # Stage 3: ProviderCallStage output
    provider_success: Optional[ProviderSuccess] = None

    # Stage 4: LayerAdvanceStage output
    layer_transition: Optional[LayerTransition] = None

    # Stage 5: ResponseAssemblyStage output (or Stage 1 on crisis override)
    response: Optional[StructuredResponse] = None

    # Performance tracking
    stage_timings: Dict[str, float] = field(default_factory=dict)

    # =============================================================================
    # Convenience Properties
    # =============================================================================

    @property
    def session_id(self) -> Optional[str]:
        return self.session.id if self.session else None

    @property
    def turn_number(self) -> int:
        return self.session_context.turn_number

    @property
    def short_circuited(self) -> bool:
        """True once the crisis override has produced the final response."""
        return bool(self.grounding_transition and self.grounding_transition.short_circuit)

    @property
    def transition(self) -> GroundingTransition:
        """Get the grounding transition.

        Raises:
            RuntimeError: If CrisisDetectionStage (Stage 1) has not completed
        """
        if self.grounding_transition:
            return self.grounding_transition
        raise RuntimeError(
            "Pipeline contract violation: grounding_transition accessed before "
            "CrisisDetectionStage (Stage 1) completed."
        )

    @property
    def decision(self) -> EngineDecision:
        """Get the engine decision.

        Raises:
            RuntimeError: If PromptCompositionStage (Stage 2) has not completed
        """
        if self.engine_decision:
            return self.engine_decision
        raise RuntimeError(
            "Pipeline contract violation: engine_decision accessed before "
            "PromptCompositionStage (Stage 2) completed."
        )

    @property
    def prompt(self) -> PromptOutput:
        """Get the composed prompt.

        Raises:
            RuntimeError: If PromptCompositionStage (Stage 2) has not completed
        """
        if self.prompt_output:
            return self.prompt_output
        raise RuntimeError(
            "Pipeline contract violation: prompt_output accessed before "
            "PromptCompositionStage (Stage 2) completed."
        )

    @property
    def provider_result(self) -> ProviderSuccess:
        """Get the serving provider's result.

        Raises:
            RuntimeError: If ProviderCallStage (Stage 3) has not completed
        """
        if self.provider_success:
            return self.provider_success
        raise RuntimeError(
            "Pipeline contract violation: provider_success accessed before "
            "ProviderCallStage (Stage 3) completed."
        )

    @property
    def layer(self) -> LayerTransition:
        """Get the layer transition.

        Raises:
            RuntimeError: If LayerAdvanceStage (Stage 4) has not completed
        """
        if self.layer_transition:
            return self.layer_transition
        raise RuntimeError(
            "Pipeline contract violation: layer_transition accessed before "
            "LayerAdvanceStage (Stage 4) completed."
        )

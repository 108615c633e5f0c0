"""
Stage 5: Response assembly.

Post-processes the backend payload against session history and attaches
grounding state and progress metrics.
"""

from typing import TYPE_CHECKING

from ..base import TurnStage
from src.domain.models.reflection import StructuredResponse
from src.services.layer_state_machine import compute_progress
from src.services.response_postprocessor import postprocess_payload

if TYPE_CHECKING:
    from ..context import PipelineContext


class ResponseAssemblyStage(TurnStage):
    """Produce the final StructuredResponse."""

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        layer = context.layer.current_layer
        grounding = context.transition

        fields = postprocess_payload(
            context.provider_result.payload,
            context.session_context,
            context.user_text,
            context.decision,
            layer,
            grounding.grounding_mode,
        )
        progress_score, layer_progress = compute_progress(
            context.turn_number, context.prompt.core_belief_statement
        )

        context.response = StructuredResponse(
            **fields,
            iceberg_layer=layer,
            grounding_mode=grounding.grounding_mode,
            grounding_turns=grounding.grounding_turns,
            progress_score=progress_score,
            layer_progress=layer_progress,
        )
        return context

"""
Stage 4: Layer advancement.

Feeds the backend's reported layer and insight through the layer state
machine together with the persisted core-belief state.
"""

from typing import TYPE_CHECKING

import structlog

from ..base import TurnStage
from src.services.layer_state_machine import next_layer

if TYPE_CHECKING:
    from ..context import PipelineContext

log = structlog.get_logger(__name__)


class LayerAdvanceStage(TurnStage):
    """Produce LayerTransition."""

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        ctx = context.session_context
        payload = context.provider_result.payload
        session = context.session

        transition = next_layer(
            current=ctx.current_layer,
            reported=payload.iceberg_layer,
            core_belief_already_detected=ctx.core_belief_already_detected,
            is_completed=ctx.is_completed,
            layer_insight=payload.layer_insight,
            core_belief=session.core_belief if session else None,
            discovered_insights=session.discovered_insights if session else None,
        )
        context.layer_transition = transition

        log.info(
            "layer_advanced",
            session_id=context.session_id,
            from_layer=ctx.current_layer.value,
            reported_layer=payload.iceberg_layer.value,
            to_layer=transition.current_layer.value,
            is_completed=transition.is_completed,
            core_belief_newly_detected=transition.core_belief_newly_detected,
        )
        return context

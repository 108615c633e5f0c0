"""
Stage 2: Engine decision and prompt composition.

Picks the cognitive state for the turn, the layer the response should
steer toward, and builds the system instructions plus the chronological
history forwarded to the generation backend.
"""

from typing import TYPE_CHECKING

import structlog

from ..base import TurnStage
from src.domain.models.pipeline_contracts import PromptOutput
from src.llm.prompts.reflection import (
    get_reflection_history,
    get_reflection_system_prompt,
)
from src.services.engine_decision import decide_engine_state
from src.services.layer_state_machine import (
    detect_core_belief_statement,
    suggest_layer,
)

if TYPE_CHECKING:
    from ..context import PipelineContext

log = structlog.get_logger(__name__)


class PromptCompositionStage(TurnStage):
    """Produce EngineDecision and PromptOutput."""

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        ctx = context.session_context
        grounding_mode = context.transition.grounding_mode

        decision = decide_engine_state(
            context.user_text, intent=ctx.user_intent, grounding_mode=grounding_mode
        )
        core_statement = detect_core_belief_statement(context.user_text)
        suggested = suggest_layer(ctx.turn_number, core_statement, ctx.current_layer)

        context.engine_decision = decision
        context.prompt_output = PromptOutput(
            system_instructions=get_reflection_system_prompt(
                ctx, decision, suggested, grounding_mode=grounding_mode
            ),
            conversation_history=get_reflection_history(ctx, context.user_text),
            suggested_layer=suggested,
            core_belief_statement=core_statement,
        )

        log.info(
            "engine_state_decided",
            session_id=context.session_id,
            state=decision.state.value,
            intervention=decision.intervention.value,
            intent=ctx.user_intent.value,
            suggested_layer=suggested.value,
            core_belief_statement=core_statement,
        )
        return context

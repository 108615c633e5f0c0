"""
Stage 1: Crisis detection and grounding transition.

Classifies the user message by risk tier and computes the next grounding
state. On acute severity the pre-authored safety response is written to
the context and the pipeline stops: no prompt, no provider call, no layer
advancement.
"""

from typing import TYPE_CHECKING

import structlog

from ..base import TurnStage
from src.services.crisis_detector import (
    build_crisis_response,
    decide_grounding_transition,
    detect,
)
from src.domain.models.pipeline_contracts import CrisisSeverity

if TYPE_CHECKING:
    from ..context import PipelineContext

log = structlog.get_logger(__name__)


class CrisisDetectionStage(TurnStage):
    """Produce CrisisAssessment and GroundingTransition."""

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        ctx = context.session_context

        assessment = detect(
            context.user_text, last_question_type=ctx.last_question_type
        )
        transition = decide_grounding_transition(
            ctx.grounding_mode,
            ctx.grounding_turns,
            assessment,
            stable_turns=ctx.grounding_stable_turns,
        )
        context.crisis_assessment = assessment
        context.grounding_transition = transition

        if assessment.severity != CrisisSeverity.NONE:
            log.info(
                "crisis_indicators_matched",
                session_id=context.session_id,
                severity=assessment.severity.value,
                indicator_count=len(assessment.matched_indicators),
            )

        if transition.short_circuit:
            context.response = build_crisis_response(
                transition, ctx.current_layer
            )
            log.warning(
                "crisis_override",
                session_id=context.session_id,
                turn_number=context.turn_number,
                grounding_turns=transition.grounding_turns,
            )

        return context

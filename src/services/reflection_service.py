"""
Reflection orchestrator.

Single public contract of the engine:

    reflect(user_text, session, session_context) -> ReflectionResult

Runs the reflection pipeline (crisis detection, prompt composition, one
provider call, layer advancement, response assembly) and returns the
StructuredResponse together with the SessionUpdate the store must persist.

The service is stateless between calls. All session state arrives as
input and leaves as output; the only side effect is the outbound call
made through the backend. A crisis override makes no call at all. An
exhausted provider chain raises AllProvidersExhaustedError and no
SessionUpdate is produced.
"""

import time
from typing import Optional

import structlog

from src.domain.models.reflection import ReflectionMeta, ReflectionResult
from src.domain.models.session import Session, SessionUpdate
from src.domain.models.session_context import SessionContext
from src.services.context_normalizer import classify_question_type
from src.services.input_validation import validate_thought
from src.services.protocols import IReflectionBackend
from src.services.turn_pipeline import PipelineContext, TurnPipeline
from src.services.turn_pipeline.stages import (
    CrisisDetectionStage,
    LayerAdvanceStage,
    PromptCompositionStage,
    ProviderCallStage,
    ResponseAssemblyStage,
)

log = structlog.get_logger(__name__)


class ReflectionService:
    """Composes the engine components into one reflect() call."""

    def __init__(self, backend: IReflectionBackend):
        """
        Initialize the service with its pipeline.

        Args:
            backend: Generation backend (normally ProviderFailoverClient)
        """
        self.backend = backend
        self.pipeline = TurnPipeline(
            stages=[
                CrisisDetectionStage(),
                PromptCompositionStage(),
                ProviderCallStage(backend),
                LayerAdvanceStage(),
                ResponseAssemblyStage(),
            ]
        )

    async def reflect(
        self,
        user_text: str,
        session: Optional[Session],
        session_context: SessionContext,
    ) -> ReflectionResult:
        """
        Produce the response and next session state for one user message.

        Args:
            user_text: Raw user message
            session: Persisted session record, or None for a fresh session
            session_context: Context rebuilt from the session's messages

        Returns:
            ReflectionResult with response, session update and metadata

        Raises:
            InvalidInputError: Message is empty, oversized or not text
            AllProvidersExhaustedError: No provider produced a valid payload
        """
        start = time.perf_counter()
        text = validate_thought(user_text)

        context = PipelineContext(
            user_text=text, session_context=session_context, session=session
        )
        context = await self.pipeline.execute(context)

        update = self._build_session_update(context)
        result = ReflectionResult(
            response=context.response,
            session_update=update,
            meta=self._build_meta(context),
            latency_ms=int((time.perf_counter() - start) * 1000),
        )

        log.info(
            "reflection_completed",
            session_id=context.session_id,
            turn_number=context.turn_number,
            provider=result.meta.provider,
            layer=update.current_layer.value,
            grounding_mode=update.grounding_mode,
            crisis_override=context.short_circuited,
            latency_ms=result.latency_ms,
        )
        return result

    def _build_session_update(self, context: PipelineContext) -> SessionUpdate:
        """Fields the store persists, from whichever stages ran."""
        ctx = context.session_context
        session = context.session
        grounding = context.transition
        question_type = classify_question_type(context.response.question)

        if context.short_circuited:
            return SessionUpdate(
                current_layer=ctx.current_layer,
                core_belief=session.core_belief if session else None,
                is_completed=ctx.is_completed,
                core_belief_already_detected=ctx.core_belief_already_detected,
                core_belief_newly_detected=False,
                last_question_type=question_type,
                grounding_mode=grounding.grounding_mode,
                grounding_turns=grounding.grounding_turns,
                grounding_stable_turns=grounding.stable_turns,
                last_intent_used=ctx.user_intent,
                discovered_insights=dict(session.discovered_insights) if session else {},
                original_trigger=ctx.original_trigger,
            )

        layer = context.layer
        return SessionUpdate(
            current_layer=layer.current_layer,
            core_belief=layer.core_belief,
            is_completed=layer.is_completed,
            core_belief_already_detected=layer.core_belief_already_detected,
            core_belief_newly_detected=layer.core_belief_newly_detected,
            last_question_type=question_type,
            grounding_mode=grounding.grounding_mode,
            grounding_turns=grounding.grounding_turns,
            grounding_stable_turns=grounding.stable_turns,
            last_intent_used=ctx.user_intent,
            discovered_insights=layer.discovered_insights,
            original_trigger=ctx.original_trigger,
        )

    def _build_meta(self, context: PipelineContext) -> ReflectionMeta:
        ctx = context.session_context
        meta = ReflectionMeta(
            turn=ctx.turn_number,
            intent=ctx.user_intent.value,
            crisis_severity=context.crisis_assessment.severity.value
            if context.crisis_assessment
            else "none",
            stage_timings=dict(context.stage_timings),
        )
        if context.engine_decision:
            decision = context.engine_decision
            meta.state = decision.state.value
            meta.intervention = decision.intervention.value
            meta.confidence = decision.confidence
            meta.reasons = list(decision.reasons)
        if context.prompt_output:
            meta.suggested_layer = context.prompt_output.suggested_layer
            meta.core_belief_statement = context.prompt_output.core_belief_statement
        if context.provider_success:
            meta.provider = context.provider_success.provider
            meta.model = context.provider_success.model
        return meta

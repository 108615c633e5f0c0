"""Tests for reflection pipeline stage contracts."""

import pytest

from src.core.exceptions import AllProvidersExhaustedError
from src.domain.models.pipeline_contracts import (
    CognitiveState,
    CrisisSeverity,
    GroundingTransition,
    LayerTransition,
    PromptOutput,
)
from src.domain.models.session import IcebergLayer, Session
from src.domain.models.session_context import SessionContext
from src.services.turn_pipeline import PipelineContext, TurnPipeline
from src.services.turn_pipeline.stages import (
    CrisisDetectionStage,
    LayerAdvanceStage,
    PromptCompositionStage,
    ProviderCallStage,
    ResponseAssemblyStage,
)


def _context(text="I always mess everything up.", **context_fields):
    return PipelineContext(
        user_text=text, session_context=SessionContext(**context_fields)
    )


class TestPipelineContext:
    """Properties guard against reading contracts out of order."""

    @pytest.mark.parametrize(
        "prop", ["transition", "decision", "prompt", "provider_result", "layer"]
    )
    def test_contract_read_before_stage_raises(self, prop):
        with pytest.raises(RuntimeError, match="Pipeline contract violation"):
            getattr(_context(), prop)

    def test_session_id_without_session(self):
        assert _context().session_id is None

    def test_session_id_and_turn_number(self):
        ctx = PipelineContext(
            user_text="hi there",
            session_context=SessionContext(turn_number=4),
            session=Session(id="s1", user_id="u1"),
        )
        assert ctx.session_id == "s1"
        assert ctx.turn_number == 4

    def test_not_short_circuited_by_default(self):
        assert _context().short_circuited is False


class TestCrisisDetectionStage:
    @pytest.mark.asyncio
    async def test_ordinary_message(self):
        ctx = await CrisisDetectionStage().process(_context())

        assert ctx.crisis_assessment.severity == CrisisSeverity.NONE
        assert ctx.transition.grounding_mode is False
        assert ctx.response is None
        assert ctx.short_circuited is False

    @pytest.mark.asyncio
    async def test_acute_writes_crisis_response(self):
        ctx = await CrisisDetectionStage().process(
            _context("I want to end my life", current_layer=IcebergLayer.TRIGGER)
        )

        assert ctx.short_circuited is True
        assert ctx.response.is_crisis_response is True
        assert ctx.response.iceberg_layer == IcebergLayer.TRIGGER
        assert ctx.transition.grounding_turns == 1

    @pytest.mark.asyncio
    async def test_elevated_enters_grounding_without_bypass(self):
        ctx = await CrisisDetectionStage().process(_context("I'm having a panic attack"))

        assert ctx.transition.grounding_mode is True
        assert ctx.short_circuited is False
        assert ctx.response is None


class TestPromptCompositionStage:
    @pytest.mark.asyncio
    async def test_requires_crisis_stage(self):
        with pytest.raises(RuntimeError):
            await PromptCompositionStage().process(_context())

    @pytest.mark.asyncio
    async def test_produces_prompt_output(self):
        ctx = _context()
        ctx.grounding_transition = GroundingTransition(grounding_mode=False, grounding_turns=0)

        ctx = await PromptCompositionStage().process(ctx)

        assert ctx.decision.state == CognitiveState.MAP
        assert isinstance(ctx.prompt, PromptOutput)
        assert ctx.prompt.suggested_layer == IcebergLayer.SURFACE
        assert ctx.prompt.conversation_history[-1] == {
            "role": "user",
            "content": "I always mess everything up.",
        }

    @pytest.mark.asyncio
    async def test_core_statement_suggests_core(self):
        ctx = _context("I'm not good enough for anyone")
        ctx.grounding_transition = GroundingTransition(grounding_mode=False, grounding_turns=0)

        ctx = await PromptCompositionStage().process(ctx)

        assert ctx.prompt.core_belief_statement is True
        assert ctx.prompt.suggested_layer == IcebergLayer.CORE_BELIEF


class TestProviderCallStage:
    @pytest.mark.asyncio
    async def test_requires_prompt(self, fake_backend):
        with pytest.raises(RuntimeError):
            await ProviderCallStage(fake_backend).process(_context())
        assert fake_backend.call_count == 0

    @pytest.mark.asyncio
    async def test_calls_backend_once(self, fake_backend):
        ctx = _context(turn_number=2)
        ctx.prompt_output = PromptOutput(
            system_instructions="sys",
            conversation_history=[{"role": "user", "content": "hi"}],
            suggested_layer=IcebergLayer.SURFACE,
        )

        ctx = await ProviderCallStage(fake_backend).process(ctx)

        assert fake_backend.call_count == 1
        assert fake_backend.calls[0]["turn_number"] == 2
        assert ctx.provider_result.provider == "fake"


class TestLayerAdvanceStage:
    @pytest.mark.asyncio
    async def test_requires_provider_result(self):
        with pytest.raises(RuntimeError):
            await LayerAdvanceStage().process(_context())


class TestResponseAssemblyStage:
    @pytest.mark.asyncio
    async def test_requires_layer_transition(self):
        with pytest.raises(RuntimeError):
            await ResponseAssemblyStage().process(_context())

    @pytest.mark.asyncio
    async def test_uses_layer_machine_result(self, fake_backend):
        ctx = _context()
        for stage in (CrisisDetectionStage(), PromptCompositionStage(), ProviderCallStage(fake_backend)):
            ctx = await stage.process(ctx)
        ctx.layer_transition = LayerTransition(
            current_layer=IcebergLayer.TRIGGER, is_completed=False
        )

        ctx = await ResponseAssemblyStage().process(ctx)

        assert ctx.response.iceberg_layer == IcebergLayer.TRIGGER
        assert ctx.response.progress_score == 12
        assert ctx.response.layer_progress.surface == 25


class TestTurnPipeline:
    @pytest.mark.asyncio
    async def test_runs_all_stages(self, fake_backend):
        stages = [
            CrisisDetectionStage(),
            PromptCompositionStage(),
            ProviderCallStage(fake_backend),
            LayerAdvanceStage(),
            ResponseAssemblyStage(),
        ]
        ctx = await TurnPipeline(stages).execute(_context())

        assert set(ctx.stage_timings) == {s.stage_name for s in stages}
        assert ctx.response is not None
        assert fake_backend.call_count == 1

    @pytest.mark.asyncio
    async def test_crisis_skips_remaining_stages(self, fake_backend):
        stages = [
            CrisisDetectionStage(),
            PromptCompositionStage(),
            ProviderCallStage(fake_backend),
            LayerAdvanceStage(),
            ResponseAssemblyStage(),
        ]
        ctx = await TurnPipeline(stages).execute(_context("I want to kill myself"))

        assert list(ctx.stage_timings) == ["CrisisDetectionStage"]
        assert ctx.engine_decision is None
        assert fake_backend.call_count == 0

    @pytest.mark.asyncio
    async def test_stage_failure_propagates(self, backend_factory):
        backend = backend_factory(fail=True)
        stages = [
            CrisisDetectionStage(),
            PromptCompositionStage(),
            ProviderCallStage(backend),
            LayerAdvanceStage(),
        ]
        with pytest.raises(AllProvidersExhaustedError):
            await TurnPipeline(stages).execute(_context())
        assert backend.call_count == 1

"""Tests for reflection prompt building and response parsing."""

import json

import pytest

from src.core.exceptions import LLMResponseParseError
from src.domain.models.pipeline_contracts import (
    CognitiveState,
    EngineDecision,
    Intervention,
)
from src.domain.models.session import IcebergLayer, UserIntent
from src.domain.models.session_context import ConversationTurn, SessionContext
from src.llm.prompts.reflection import (
    get_reflection_history,
    get_reflection_system_prompt,
    parse_reflection_response,
)

MAP = EngineDecision(
    state=CognitiveState.MAP, intervention=Intervention.REFLECT_MAP, confidence=0.65
)
REGULATE = EngineDecision(
    state=CognitiveState.REGULATE,
    intervention=Intervention.GROUND,
    confidence=0.85,
    ask_question=False,
)


class TestSystemPrompt:
    def test_includes_layer_and_intent_guidance(self):
        context = SessionContext(user_intent=UserIntent.CLARITY)
        prompt = get_reflection_system_prompt(context, MAP, IcebergLayer.TRIGGER)

        assert "CURRENT LAYER: trigger" in prompt
        assert "INTENT: CLARITY" in prompt
        assert "ENGINE STATE: MAP" in prompt
        assert "Return ONLY valid JSON" in prompt

    def test_history_warnings_listed(self):
        context = SessionContext(
            previous_questions=["What did your manager say?"],
            previous_reframes=["One meeting is not your whole career."],
        )
        prompt = get_reflection_system_prompt(context, MAP, IcebergLayer.SURFACE)

        assert "QUESTIONS YOU'VE ALREADY ASKED" in prompt
        assert '- "What did your manager say?"' in prompt
        assert "REFRAMES YOU'VE ALREADY USED" in prompt

    def test_no_warnings_without_history(self):
        prompt = get_reflection_system_prompt(SessionContext(), MAP, IcebergLayer.SURFACE)
        assert "NEVER REPEAT" not in prompt

    def test_original_trigger_included(self):
        context = SessionContext(original_trigger="My sister ignored my call")
        prompt = get_reflection_system_prompt(context, MAP, IcebergLayer.SURFACE)
        assert 'ORIGINAL TRIGGER: "My sister ignored my call"' in prompt

    def test_grounding_mode_prompt(self):
        prompt = get_reflection_system_prompt(
            SessionContext(), REGULATE, IcebergLayer.EMOTION, grounding_mode=True
        )
        assert "GROUNDING MODE" in prompt
        assert "CURRENT LAYER" not in prompt

    def test_no_question_rule_when_not_asking(self):
        decision = MAP.model_copy(update={"ask_question": False})
        prompt = get_reflection_system_prompt(SessionContext(), decision, IcebergLayer.SURFACE)
        assert "do not ask a question this turn" in prompt


class TestHistory:
    def test_ends_with_user_turn(self):
        context = SessionContext(
            conversation=[
                ConversationTurn(role="user", content="first"),
                ConversationTurn(role="assistant", content="reply"),
            ]
        )
        history = get_reflection_history(context, "second")

        assert history == [
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "reply"},
            {"role": "user", "content": "second"},
        ]


class TestParseReflectionResponse:
    def test_plain_json(self, make_payload):
        payload = parse_reflection_response(json.dumps(make_payload()))
        assert payload.iceberg_layer == IcebergLayer.SURFACE

    def test_markdown_fences(self, make_payload):
        text = "```json\n" + json.dumps(make_payload()) + "\n```"
        payload = parse_reflection_response(text)
        assert payload.acknowledgment

    def test_prose_around_object(self, make_payload):
        text = "Here is my answer:\n" + json.dumps(make_payload()) + "\nHope it helps."
        payload = parse_reflection_response(text)
        assert payload.reframe

    def test_legacy_layer_name(self, make_payload):
        payload = parse_reflection_response(json.dumps(make_payload(icebergLayer="CORE_WOUND")))
        assert payload.iceberg_layer == IcebergLayer.CORE_BELIEF

    @pytest.mark.parametrize("text", ["", "   ", "not json at all", "[1, 2, 3]", "{broken"])
    def test_unparseable(self, text):
        with pytest.raises(LLMResponseParseError):
            parse_reflection_response(text)

    def test_missing_required_field(self, make_payload):
        body = make_payload()
        del body["icebergLayer"]
        with pytest.raises(LLMResponseParseError, match="icebergLayer|iceberg_layer"):
            parse_reflection_response(json.dumps(body))

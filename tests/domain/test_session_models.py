"""Tests for session, message and provider domain models."""

import pytest
from pydantic import TypeAdapter, ValidationError

from src.domain.models.message import Message, Role
from src.domain.models.provider import (
    FailureKind,
    ProviderFailure,
    ProviderResult,
    ProviderSuccess,
    ReflectionPayload,
)
from src.domain.models.reflection import ReflectionResult, StructuredResponse
from src.domain.models.session import IcebergLayer, Session, SessionUpdate, UserIntent


class TestIcebergLayer:
    """Layer ordering and lenient parsing."""

    def test_depth_ordering(self):
        assert IcebergLayer.SURFACE.depth == 0
        assert IcebergLayer.TRIGGER.depth == 1
        assert IcebergLayer.EMOTION.depth == 2
        assert IcebergLayer.CORE_BELIEF.depth == 3

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("surface", IcebergLayer.SURFACE),
            ("SURFACE", IcebergLayer.SURFACE),
            ("TRANSITION", IcebergLayer.TRIGGER),
            ("coreBelief", IcebergLayer.CORE_BELIEF),
            ("CORE_WOUND", IcebergLayer.CORE_BELIEF),
            ("core belief", IcebergLayer.CORE_BELIEF),
        ],
    )
    def test_parse_aliases(self, raw, expected):
        """Older client spellings map onto the current layers."""
        assert IcebergLayer.parse(raw) == expected

    def test_parse_unknown_returns_none(self):
        assert IcebergLayer.parse("basement") is None
        assert IcebergLayer.parse(None) is None
        assert IcebergLayer.parse(3) is None


class TestUserIntent:
    def test_resolve_known(self):
        assert UserIntent.resolve("calm") == UserIntent.CALM
        assert UserIntent.resolve(" next_step ") == UserIntent.NEXT_STEP

    def test_unknown_resolves_to_auto(self):
        assert UserIntent.resolve("DANCE") == UserIntent.AUTO
        assert UserIntent.resolve(None) == UserIntent.AUTO


class TestSession:
    """Session tolerates legacy client state."""

    def test_defaults(self):
        session = Session(id="s1", user_id="u1")
        assert session.current_layer == IcebergLayer.SURFACE
        assert session.is_completed is False
        assert session.grounding_turns == 0
        assert session.discovered_insights == {}

    def test_unknown_layer_degrades_to_surface(self):
        session = Session(id="s1", user_id="u1", current_layer="basement")
        assert session.current_layer == IcebergLayer.SURFACE

    def test_legacy_layer_name_accepted(self):
        session = Session(id="s1", user_id="u1", current_layer="CORE_WOUND")
        assert session.current_layer == IcebergLayer.CORE_BELIEF

    def test_unknown_question_type_cleared(self):
        session = Session(id="s1", user_id="u1", last_question_type="rhetorical")
        assert session.last_question_type == ""

    def test_negative_grounding_turns_rejected(self):
        with pytest.raises(ValidationError):
            Session(id="s1", user_id="u1", grounding_turns=-1)

    def test_session_update_requires_layer(self):
        with pytest.raises(ValidationError):
            SessionUpdate()


class TestMessage:
    """Only assistant turns carry structured fields."""

    def test_user_turn_with_content(self):
        message = Message(role=Role.USER, content="I messed up the presentation")
        assert message.role == Role.USER

    def test_user_turn_rejects_structured_fields(self):
        with pytest.raises(ValidationError, match="user turns cannot carry"):
            Message(role="user", content="hi", reframe="Try again")

    def test_assistant_turn_with_structured_fields(self):
        message = Message(
            role="assistant",
            content="That sounded painful.",
            question="What did your manager say?",
            iceberg_layer="trigger",
        )
        assert message.role == Role.ASSISTANT
        assert message.question == "What did your manager say?"


class TestReflectionPayload:
    """Backend payload validation."""

    def test_camel_case_body(self, make_payload):
        payload = ReflectionPayload.model_validate(make_payload())
        assert payload.thought_pattern == "All-or-nothing thinking"
        assert payload.iceberg_layer == IcebergLayer.SURFACE

    def test_missing_acknowledgment_is_invalid(self, make_payload):
        body = make_payload()
        del body["acknowledgment"]
        with pytest.raises(ValidationError):
            ReflectionPayload.model_validate(body)

    def test_missing_layer_is_invalid(self, make_payload):
        body = make_payload()
        del body["icebergLayer"]
        with pytest.raises(ValidationError):
            ReflectionPayload.model_validate(body)

    def test_unknown_layer_is_invalid(self, make_payload):
        with pytest.raises(ValidationError, match="unknown iceberg layer"):
            ReflectionPayload.model_validate(make_payload(icebergLayer="basement"))

    def test_legacy_keys_mapped(self):
        payload = ReflectionPayload.model_validate(
            {
                "content": "Losing the contract stung.",
                "distortionType": "Catastrophizing",
                "distortionExplanation": "Jumping to the worst case.",
                "probingQuestion": "What did the client actually say?",
                "icebergLayer": "SURFACE",
            }
        )
        assert payload.acknowledgment == "Losing the contract stung."
        assert payload.thought_pattern == "Catastrophizing"
        assert payload.pattern_note == "Jumping to the worst case."
        assert payload.question == "What did the client actually say?"

    def test_acknowledgment_from_candidates(self):
        payload = ReflectionPayload.model_validate(
            {"acknowledgments": ["", "Being left out of the meeting hurt."], "icebergLayer": "trigger"}
        )
        assert payload.acknowledgment == "Being left out of the meeting hurt."

    def test_candidate_lists_keep_only_strings(self, make_payload):
        payload = ReflectionPayload.model_validate(
            make_payload(questions=["What did she say?", 3, None, "  "])
        )
        assert payload.questions == ["What did she say?"]

    def test_non_string_field_rejected(self, make_payload):
        with pytest.raises(ValidationError):
            ReflectionPayload.model_validate(make_payload(reframe=["a", "b"]))


class TestProviderResult:
    """Tagged union of success and failure."""

    def test_discriminates_failure(self):
        adapter = TypeAdapter(ProviderResult)
        result = adapter.validate_python(
            {"kind": "failure", "provider": "openai", "error_kind": "timeout"}
        )
        assert isinstance(result, ProviderFailure)
        assert result.error_kind == FailureKind.TIMEOUT

    def test_discriminates_success(self, make_payload):
        adapter = TypeAdapter(ProviderResult)
        result = adapter.validate_python(
            {
                "kind": "success",
                "provider": "anthropic",
                "model": "m",
                "payload": make_payload(),
            }
        )
        assert isinstance(result, ProviderSuccess)


class TestReflectionResult:
    def test_serializes_camel_case(self):
        response = StructuredResponse(acknowledgment="ok then, noted", grounding_turns=2)
        data = response.model_dump(by_alias=True)
        assert data["groundingTurns"] == 2
        assert data["icebergLayer"] == IcebergLayer.SURFACE

    def test_to_message_fields(self):
        result = ReflectionResult(
            response=StructuredResponse(
                acknowledgment="That meeting rattled you.",
                question="What did he say next?",
                iceberg_layer=IcebergLayer.TRIGGER,
            ),
            session_update=SessionUpdate(current_layer=IcebergLayer.TRIGGER),
        )
        fields = result.to_message_fields()

        assert fields["content"] == "That meeting rattled you."
        assert fields["iceberg_layer"] == "trigger"
        assert fields["question"] == "What did he say next?"
        # Usable directly as an assistant Message
        message = Message(role="assistant", **fields)
        assert message.acknowledgment == "That meeting rattled you."

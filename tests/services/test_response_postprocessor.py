"""Tests for response post-processing rules."""

import pytest

from src.domain.models.pipeline_contracts import (
    CognitiveState,
    EngineDecision,
    Intervention,
)
from src.domain.models.provider import ReflectionPayload
from src.domain.models.session import IcebergLayer, UserIntent
from src.domain.models.session_context import SessionContext
from src.services.response_postprocessor import (
    CHOICE_QUESTION,
    compact_one_sentence,
    compact_two_sentences,
    finalize_question,
    is_generic_line,
    is_identity_statement,
    is_therapist_probe,
    normalize_thought_pattern,
    pick_line,
    pick_question,
    postprocess_payload,
    resolve_thought_pattern,
    strip_candidate_prefixes,
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


class TestTextHelpers:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Candidate #2: That hurt.", "That hurt."),
            ("candidate 1 - That hurt.", "That hurt."),
            ("Option A: That hurt.", "That hurt."),
            ("1) That hurt.", "That hurt."),
            ("That hurt.", "That hurt."),
        ],
    )
    def test_strip_candidate_prefixes(self, raw, expected):
        assert strip_candidate_prefixes(raw) == expected

    def test_compact_one_sentence(self):
        assert compact_one_sentence("First point. Second point. Third.") == "First point."

    def test_compact_two_sentences(self):
        assert compact_two_sentences("First point. Second point. Third.") == (
            "First point. Second point."
        )

    def test_compact_keeps_sentence_terminators(self):
        assert compact_two_sentences("Is that fair? Maybe not. Either way.") == (
            "Is that fair? Maybe not."
        )
        assert compact_one_sentence("That stung! It lingered.") == "That stung!"

    def test_question_mark_replaces_full_stop(self):
        q = finalize_question(
            "What happened right before the meeting. Then what?",
            IcebergLayer.SURFACE,
            "My boss criticized me",
            [],
        )
        assert q == "What happened right before the meeting?"

    def test_compact_empty(self):
        assert compact_one_sentence("") == ""
        assert compact_two_sentences("  ") == ""


class TestFilters:
    def test_generic_lines(self):
        assert is_generic_line("I hear you, that's hard.")
        assert is_generic_line("ok")
        assert not is_generic_line("Missing the train after that call made it worse.")

    @pytest.mark.parametrize(
        "question",
        [
            "When did you first notice this?",
            "What is your earliest memory of feeling this way?",
            "Where in your body do you feel it?",
            "When did it get this bad?",
        ],
    )
    def test_therapist_probes(self, question):
        assert is_therapist_probe(question)

    def test_concrete_question_not_probe(self):
        assert not is_therapist_probe("What did your manager say afterwards?")

    def test_pick_line_skips_generic_and_repeated(self):
        previous = ["Losing the contract after weeks of work really stung."]
        line = pick_line(
            [
                "I hear you.",
                "Candidate 2: Losing the contract after weeks of work really stung.",
                "Hearing the client chose a cheaper bid felt like a verdict on your work.",
            ],
            previous,
        )
        assert line == "Hearing the client chose a cheaper bid felt like a verdict on your work."

    def test_pick_question_adds_question_mark(self):
        assert pick_question(["What did the client say in the email"], []) == (
            "What did the client say in the email?"
        )

    def test_pick_question_skips_generic(self):
        assert pick_question(["Tell me more about it?", "What's the hardest part?"], []) == ""


class TestFinalizeQuestion:
    def test_first_sentence_only(self):
        q = finalize_question(
            "What did your boss say? And how did you respond?",
            IcebergLayer.SURFACE,
            "My boss criticized me",
            [],
        )
        assert q == "What did your boss say?"

    def test_duplicate_dropped(self):
        q = finalize_question(
            "What did your boss say?",
            IcebergLayer.TRIGGER,
            "text",
            ["what did your boss say?"],
        )
        assert q == ""

    def test_choice_after_choice_suppressed(self):
        q = finalize_question(
            CHOICE_QUESTION, IcebergLayer.SURFACE, "I don't know", [], last_question_type="choice"
        )
        assert q == ""

    def test_grounding_mode_drops_exploration(self):
        q = finalize_question(
            "Can we explore this more deeply?",
            IcebergLayer.SURFACE,
            "text",
            [],
            grounding_mode=True,
        )
        assert q == ""

    def test_grounding_mode_keeps_simple_question(self):
        q = finalize_question(
            "Can you feel your feet on the floor",
            IcebergLayer.SURFACE,
            "text",
            [],
            grounding_mode=True,
        )
        assert q == "Can you feel your feet on the floor?"

    def test_core_layer_probe_flooded_user_gets_choice(self):
        q = finalize_question(
            "When did you first feel this?",
            IcebergLayer.CORE_BELIEF,
            "It's too much, I can't cope",
            [],
        )
        assert q == CHOICE_QUESTION

    def test_core_layer_probe_calm_user_gets_silence(self):
        q = finalize_question(
            "When did you first feel this?",
            IcebergLayer.CORE_BELIEF,
            "I think I'm just not enough",
            [],
        )
        assert q == ""

    def test_core_layer_concrete_question_kept(self):
        q = finalize_question(
            "What would it mean if that belief were only half true?",
            IcebergLayer.CORE_BELIEF,
            "I think I'm just not enough",
            [],
        )
        assert q == "What would it mean if that belief were only half true?"


class TestThoughtPatterns:
    @pytest.mark.parametrize(
        "label,expected",
        [
            ("black and white thinking", "All-or-nothing thinking"),
            ("All-or-Nothing Thinking", "All-or-nothing thinking"),
            ("Labelling", "Labeling"),
            ("Magnification", "Magnification"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_normalize(self, label, expected):
        assert normalize_thought_pattern(label) == expected

    def test_identity_statement(self):
        assert is_identity_statement("I'm worthless")
        assert is_identity_statement("I am a failure at everything")
        assert not is_identity_statement("I failed the exam")

    def test_grounding_suppresses_label(self):
        assert resolve_thought_pattern(
            "Catastrophizing", "text", IcebergLayer.SURFACE, MAP, UserIntent.AUTO, True
        ) == ("", "")

    def test_regulate_suppresses_label(self):
        assert resolve_thought_pattern(
            "Catastrophizing", "text", IcebergLayer.SURFACE, REGULATE, UserIntent.AUTO, False
        ) == ("", "")

    def test_core_layer_label(self):
        label, _ = resolve_thought_pattern(
            "Labeling", "text", IcebergLayer.CORE_BELIEF, MAP, UserIntent.AUTO, False
        )
        assert label == "Core Belief"

    def test_core_label_below_core_layer_replaced(self):
        label, _ = resolve_thought_pattern(
            "Core Belief", "I went for a walk", IcebergLayer.SURFACE, MAP, UserIntent.AUTO, False
        )
        assert label == ""

    def test_empty_label_filled_by_detector(self):
        label, note = resolve_thought_pattern(
            "", "I always mess everything up.", IcebergLayer.SURFACE, MAP, UserIntent.AUTO, False
        )
        assert label == "All-or-nothing thinking"
        assert note

    def test_empty_label_left_empty_when_listening(self):
        assert resolve_thought_pattern(
            "", "I always mess everything up.", IcebergLayer.SURFACE, MAP, UserIntent.LISTEN, False
        ) == ("", "")

    def test_identity_statement_becomes_labeling(self):
        label, _ = resolve_thought_pattern(
            "Overgeneralization", "I'm worthless", IcebergLayer.TRIGGER, MAP, UserIntent.AUTO, False
        )
        assert label == "Labeling"


class TestPostprocessPayload:
    """Full assembly of the text fields."""

    def _payload(self, make_payload, **overrides):
        return ReflectionPayload.model_validate(make_payload(**overrides))

    def test_clean_payload_passes_through(self, make_payload):
        fields = postprocess_payload(
            self._payload(make_payload),
            SessionContext(),
            "I messed up the presentation",
            MAP,
            IcebergLayer.SURFACE,
            False,
        )
        assert fields["acknowledgment"] == "Messing up the presentation left you feeling exposed."
        assert fields["thought_pattern"] == "All-or-nothing thinking"
        assert fields["question"] == "What happened right before the presentation went off track?"
        assert fields["pattern_note"].count(".") <= 2

    def test_duplicate_reframe_dropped(self, make_payload):
        payload = self._payload(make_payload)
        context = SessionContext(previous_reframes=[payload.reframe])

        fields = postprocess_payload(
            payload, context, "I messed up", MAP, IcebergLayer.SURFACE, False
        )
        assert fields["reframe"] == ""

    def test_regulate_has_no_question_or_label(self, make_payload):
        fields = postprocess_payload(
            self._payload(make_payload),
            SessionContext(),
            "I'm panicking",
            REGULATE,
            IcebergLayer.SURFACE,
            True,
        )
        assert fields["question"] == ""
        assert fields["thought_pattern"] == ""
        assert fields["pattern_note"] == ""

    def test_listen_intent_has_no_question(self, make_payload):
        fields = postprocess_payload(
            self._payload(make_payload),
            SessionContext(user_intent=UserIntent.LISTEN),
            "I messed up",
            MAP,
            IcebergLayer.SURFACE,
            False,
        )
        assert fields["question"] == ""

    def test_repeated_question_dropped(self, make_payload):
        payload = self._payload(make_payload)
        context = SessionContext(previous_questions=[payload.question])

        fields = postprocess_payload(
            payload, context, "I messed up", MAP, IcebergLayer.SURFACE, False
        )
        assert fields["question"] == ""

    def test_generic_acknowledgment_candidate_skipped(self, make_payload):
        payload = self._payload(
            make_payload,
            acknowledgments=[
                "I hear you.",
                "Candidate 2: Losing the contract after weeks of work really stung.",
            ],
        )
        fields = postprocess_payload(
            payload, SessionContext(), "I lost the contract", MAP, IcebergLayer.SURFACE, False
        )
        assert fields["acknowledgment"] == "Losing the contract after weeks of work really stung."

    def test_acknowledgment_always_present(self, make_payload):
        payload = self._payload(make_payload, acknowledgment="I hear you.")
        context = SessionContext(previous_acknowledgments=["I hear you."])

        fields = postprocess_payload(
            payload, context, "text", MAP, IcebergLayer.SURFACE, False
        )
        assert fields["acknowledgment"] == "I hear you."

    def test_core_layer_label_and_one_sentence_note(self, make_payload):
        payload = self._payload(
            make_payload,
            icebergLayer="coreBelief",
            patternNote="This belief colors everything. It started long ago.",
        )
        fields = postprocess_payload(
            payload, SessionContext(), "I'm not good enough", MAP, IcebergLayer.CORE_BELIEF, False
        )
        assert fields["thought_pattern"] == "Core Belief"
        assert fields["pattern_note"] == "This belief colors everything."

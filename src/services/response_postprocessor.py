"""
Response post-processing.

Turns a validated ReflectionPayload into the StructuredResponse returned to
the caller. Everything here is deterministic and works only on what the
backend returned plus session history; nothing is invented when a field is
unusable, it is left empty instead (the acknowledgment is always present
because the payload requires it).

Rules:
- strip "Candidate #1:" / "Option A:" / "1)" prefixes
- choose the first acceptable candidate for acknowledgment, question and
  encouragement: not generic, not an exact or near duplicate of history
- thought pattern: canonical names, "Labeling" for identity statements
  below the core layer, "Core Belief" only at the core layer, rule-based
  detection fills an empty label, none in grounding/REGULATE
- pattern note: one sentence at the core layer, two otherwise
- reframe: dropped when it repeats an earlier reframe
- question: one sentence ending in "?", no therapist probes, no choice
  question right after a choice question, none when the turn must not ask
"""

import re
from typing import Iterable, List, Optional

import structlog

from src.domain.models.pipeline_contracts import CognitiveState, EngineDecision
from src.domain.models.provider import ReflectionPayload
from src.domain.models.session import IcebergLayer, UserIntent
from src.domain.models.session_context import SessionContext
from src.services.context_normalizer import classify_question_type
from src.services.distortion_detector import detect_distortions
from src.services.engine_decision import user_seems_flooded
from src.services.text_similarity import (
    is_duplicate,
    is_near_duplicate,
    normalize_for_compare,
)

log = structlog.get_logger(__name__)

CHOICE_QUESTION = "Do you want comfort right now, or a tiny practical step?"
CORE_BELIEF_LABEL = "Core Belief"


# =============================================================================
# Text helpers
# =============================================================================

_PREFIXES = [
    re.compile(r"^\s*candidate\s*#?\d+\s*[:\-]?\s*", re.IGNORECASE),
    re.compile(r"^\s*option\s*[a-z]\b\s*[:\-]?\s*", re.IGNORECASE),
    re.compile(r"^\s*\d+[).\-:]\s*"),
]
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_ENDS_WITH_PUNCT = re.compile(r"[.!?]$")


def strip_candidate_prefixes(text: str) -> str:
    """Remove list/candidate labels a model sometimes leaves in strings."""
    out = (text or "").strip()
    for prefix in _PREFIXES:
        out = prefix.sub("", out, count=1)
    return out.strip()


def first_sentence(text: str) -> str:
    t = (text or "").strip()
    if not t:
        return ""
    return _SENTENCE_SPLIT.split(t)[0].strip() or t


def compact_one_sentence(text: str) -> str:
    one = first_sentence(text)
    if not one:
        return ""
    return one if _ENDS_WITH_PUNCT.search(one) else f"{one}."


def compact_two_sentences(text: str) -> str:
    t = (text or "").strip()
    if not t:
        return ""
    parts = [p for p in _SENTENCE_SPLIT.split(t) if p]
    out = " ".join(parts[:2]).strip()
    if not out:
        return ""
    return out if _ENDS_WITH_PUNCT.search(out) else f"{out}."


def coerce_question_mark(text: str) -> str:
    t = (text or "").strip()
    if t.endswith("?"):
        return t
    t = t.rstrip(".!").rstrip()
    return f"{t}?" if t else ""


# =============================================================================
# Quality filters
# =============================================================================

GENERIC_LINES = (
    "you're not alone",
    "storm inside",
    "weather this storm",
    "take it one step at a time",
    "you got this",
    "you are stronger than you think",
    "stay strong",
    "you're engaging with this",
    "that takes real effort",
    "just talking about it is a step",
    "it matters that you're showing up",
    "let's slow it down",
    "pressure makes everything feel final",
    "the feeling is real",
    "not a verdict",
    "i'm with you",
    "that makes sense",
    "i hear you",
    "i understand",
    "that sounds",
    "it seems like",
    "this matters to you",
    "just means you care",
)

GENERIC_QUESTIONS = (
    "what's the hardest part",
    "what feels heaviest",
    "what part of this feels most personal",
    "what's the story your mind keeps replaying",
    "tell me more",
    "explore more deeply",
    "where in your body",
    "mind keeps playing",
    "scenario your mind",
    "keeps replaying",
)

THERAPIST_PROBES = (
    "earliest memory",
    "when did you first",
    "how long have you",
    "when did this start",
    "childhood",
    "growing up",
    "in your past",
    "timeline",
    "first started feeling",
    "memory you have of",
    "where did you learn",
    "what happened when you were",
    "where in your body",
    "where do you feel it",
    "where in your head",
    "pin point",
    "pinpoint",
    "describe where",
    "chapter",
    "ending",
    "story",
)


def _plain(text: str) -> str:
    return normalize_for_compare((text or "").replace("’", "'"))


def is_generic_line(text: str) -> bool:
    t = _plain(text)
    if len(t) < 10:
        return True
    return any(g in t for g in GENERIC_LINES)


def is_generic_question(text: str) -> bool:
    t = _plain(text)
    if len(t) < 14:
        return True
    return any(g in t for g in GENERIC_QUESTIONS)


def is_therapist_probe(text: str) -> bool:
    t = _plain(text)
    if t.startswith("when did "):
        return True
    return any(p in t for p in THERAPIST_PROBES)


def _is_choice_question(text: str) -> bool:
    return classify_question_type(text) == "choice"


def _fresh(text: str, previous: List[str]) -> bool:
    return not is_duplicate(text, previous) and not is_near_duplicate(text, previous)


def pick_line(candidates: Iterable[str], previous: List[str]) -> str:
    """First candidate that is specific and not already said."""
    for raw in candidates:
        line = strip_candidate_prefixes(raw)
        if line and not is_generic_line(line) and _fresh(line, previous):
            return line
    return ""


def pick_question(candidates: Iterable[str], previous: List[str]) -> str:
    """First question candidate that is specific, not a probe, not repeated."""
    for raw in candidates:
        q = coerce_question_mark(strip_candidate_prefixes(raw))
        if not q or is_therapist_probe(q) or is_generic_question(q):
            continue
        if _fresh(q, previous):
            return q
    return ""


def finalize_question(
    question: str,
    layer: IcebergLayer,
    user_text: str,
    previous_questions: List[str],
    grounding_mode: bool = False,
    last_question_type: str = "",
) -> str:
    """
    Reduce a chosen question to what may actually be asked this turn.

    Returns:
        One sentence ending in "?", or "" for silence
    """
    q = (question or "").strip()
    probe = is_therapist_probe(q) if q else False

    if grounding_mode:
        if not q or probe:
            return ""
        one = first_sentence(q)
        lowered = one.lower()
        if any(w in lowered for w in ("explore", "grounding", "deeply")):
            return ""
        return coerce_question_mark(one)

    if last_question_type == "choice" and _is_choice_question(q):
        return ""

    if layer != IcebergLayer.CORE_BELIEF:
        if not q or probe:
            return ""
        one = first_sentence(q)
        if is_duplicate(one, previous_questions):
            return ""
        return coerce_question_mark(one)

    # Core layer: prefer silence unless the user is flooded
    flooded = user_seems_flooded(user_text)
    fallback = CHOICE_QUESTION if flooded and last_question_type != "choice" else ""
    if not q or probe or is_duplicate(q, previous_questions):
        return fallback
    out = coerce_question_mark(first_sentence(q))
    if is_therapist_probe(out):
        return fallback
    return out


# =============================================================================
# Thought patterns
# =============================================================================

THOUGHT_PATTERN_NAMES = (
    ("black-and-white", "All-or-nothing thinking"),
    ("black and white", "All-or-nothing thinking"),
    ("all-or-nothing", "All-or-nothing thinking"),
    ("all or nothing", "All-or-nothing thinking"),
    ("catastrophizing", "Catastrophizing"),
    ("catastrophe", "Catastrophizing"),
    ("mind reading", "Mind reading"),
    ("mindreading", "Mind reading"),
    ("over-generalization", "Overgeneralization"),
    ("overgeneralization", "Overgeneralization"),
    ("personalization", "Personalization"),
    ("labeling", "Labeling"),
    ("labelling", "Labeling"),
    ("emotional reasoning", "Emotional reasoning"),
    ("should statements", "Should statements"),
    ("fortune telling", "Fortune telling"),
    ("discounting positives", "Discounting positives"),
    ("disqualifying the positive", "Discounting positives"),
    ("mental filter", "Mental filter"),
    ("jumping to conclusions", "Jumping to conclusions"),
    ("core belief", CORE_BELIEF_LABEL),
    ("identity belief", CORE_BELIEF_LABEL),
)

_IDENTITY_STATEMENTS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^i am [a-z]+\.?$",
        r"^i'?m [a-z]+\.?$",
        r"^i am not [a-z]+\.?$",
        r"^i'?m not [a-z]+\.?$",
        r"i am (undesirable|unlovable|worthless|hopeless|broken|a failure|a fraud|a burden|a mess|a loser|a disappointment)",
        r"i'?m (undesirable|unlovable|worthless|hopeless|broken|a failure|a fraud|a burden|a mess|a loser|a disappointment)",
    )
]


def normalize_thought_pattern(label: Optional[str]) -> str:
    """Map vendor spellings onto canonical distortion names."""
    s = (label or "").strip()
    if not s:
        return ""
    lower = s.lower()
    for key, name in THOUGHT_PATTERN_NAMES:
        if key in lower:
            return name
    return s


def is_identity_statement(text: str) -> bool:
    t = (text or "").replace("’", "'").strip()
    return any(p.search(t) for p in _IDENTITY_STATEMENTS)


def resolve_thought_pattern(
    backend_label: str,
    user_text: str,
    layer: IcebergLayer,
    decision: EngineDecision,
    intent: UserIntent,
    grounding_mode: bool,
) -> tuple:
    """
    Final thought-pattern label and, when rule-detected, its explanation.

    Returns:
        (label, fallback_note)
    """
    if grounding_mode or decision.state == CognitiveState.REGULATE:
        return "", ""
    if layer == IcebergLayer.CORE_BELIEF:
        return CORE_BELIEF_LABEL, ""

    label = normalize_thought_pattern(backend_label)
    note = ""
    if not label and intent in (UserIntent.CALM, UserIntent.LISTEN):
        return "", ""
    if not label or label == CORE_BELIEF_LABEL:
        analysis = detect_distortions(user_text)
        label = normalize_thought_pattern(analysis.type) if analysis.found else ""
        note = analysis.explanation if analysis.found else ""

    if is_identity_statement(user_text):
        label = "Labeling"
    return label, note


# =============================================================================
# Assembly
# =============================================================================


def postprocess_payload(
    payload: ReflectionPayload,
    context: SessionContext,
    user_text: str,
    decision: EngineDecision,
    layer: IcebergLayer,
    grounding_mode: bool,
) -> dict:
    """
    Apply all response rules to a backend payload.

    Args:
        payload: Validated backend payload
        context: Session context with de-duplicated history
        user_text: Validated user message
        decision: Engine decision for this turn
        layer: Layer the turn was steered toward
        grounding_mode: Grounding state after this turn's transition

    Returns:
        Dict of StructuredResponse text fields
    """
    intent = context.user_intent

    acknowledgment = pick_line(
        payload.acknowledgments + [payload.acknowledgment],
        context.previous_acknowledgments,
    ) or strip_candidate_prefixes(payload.acknowledgment)

    thought_pattern, detected_note = resolve_thought_pattern(
        payload.thought_pattern, user_text, layer, decision, intent, grounding_mode
    )

    pattern_note = ""
    if thought_pattern:
        raw_note = payload.pattern_note or detected_note
        pattern_note = (
            compact_one_sentence(raw_note)
            if layer == IcebergLayer.CORE_BELIEF
            else compact_two_sentences(raw_note)
        )

    reframe = strip_candidate_prefixes(payload.reframe)
    if reframe and not _fresh(reframe, context.previous_reframes):
        log.info("duplicate_reframe_dropped")
        reframe = ""

    question = ""
    may_ask = (
        decision.ask_question
        and decision.state != CognitiveState.REGULATE
        and intent not in (UserIntent.CALM, UserIntent.LISTEN)
    )
    if may_ask:
        chosen = pick_question(
            payload.questions + [payload.question], context.previous_questions
        )
        question = finalize_question(
            chosen,
            layer,
            user_text,
            context.previous_questions,
            grounding_mode=grounding_mode,
            last_question_type=context.last_question_type,
        )

    encouragement = pick_line(
        payload.encouragements + [payload.encouragement],
        context.previous_encouragements,
    )

    return {
        "acknowledgment": acknowledgment,
        "thought_pattern": thought_pattern,
        "pattern_note": pattern_note,
        "reframe": reframe,
        "question": strip_candidate_prefixes(question),
        "encouragement": encouragement,
        "layer_insight": payload.layer_insight,
    }

"""
Crisis and grounding detector.

Scans a user message for severity-tiered risk indicators and decides the
session's next grounding state.

Severity tiers (keyword lists live in reflection_config.grounding):
    - acute:    self-harm or suicide language; forces grounding and
                bypasses the generation backend entirely
    - elevated: flooding or panic language; enters/continues grounding
                with a grounding-constrained prompt
    - none:     everything else, including empty or non-text input

Grounding transitions:
    Normal    --acute-->                 Grounding (turns=1, bypass)
    Normal    --elevated-->              Grounding (turns=1)
    Normal    --grounding choice-->      Grounding (turns=1)
    Grounding --acute-->                 Grounding (turns+1, bypass)
    Grounding --elevated-->              Grounding (turns+1)
    Grounding --none, turns >= N-->      Normal (turns=0)
    Grounding --none, turns < N-->       Grounding (turns+1)
    Normal    --none-->                  Normal
"""

import re
from typing import Any, List, Optional

import structlog

from src.core.config import GroundingConfig, reflection_config
from src.domain.models.pipeline_contracts import (
    CrisisAssessment,
    CrisisSeverity,
    GroundingTransition,
)
from src.domain.models.reflection import StructuredResponse
from src.domain.models.session import IcebergLayer

log = structlog.get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")

SAFETY_RESOURCES = [
    "If you are in immediate danger, call your local emergency number now.",
    "US: call or text 988 (Suicide & Crisis Lifeline).",
    "UK & ROI: call Samaritans on 116 123.",
    "Elsewhere: find a local helpline at https://findahelpline.com.",
]


def _normalize(text: Any) -> str:
    if not isinstance(text, str):
        return ""
    text = text.replace("’", "'").replace("‘", "'")
    return _WHITESPACE.sub(" ", text.lower()).strip()


def _matches(text: str, keywords: List[str]) -> List[str]:
    return [k for k in keywords if k and k.lower() in text]


def detect(
    text: Any,
    last_question_type: str = "",
    config: Optional[GroundingConfig] = None,
) -> CrisisAssessment:
    """
    Classify a user message by risk tier.

    Never raises: malformed, empty or non-text input is severity ``none``.

    Args:
        text: Raw user message
        last_question_type: Type of the previous assistant question; a
            grounding preference only counts as a choice after a ``choice``
        config: Grounding policy (defaults to reflection_config.grounding)

    Returns:
        CrisisAssessment with severity and matched indicators
    """
    config = config or reflection_config.grounding
    normalized = _normalize(text)
    if not normalized:
        return CrisisAssessment()

    acute = _matches(normalized, config.acute_keywords)
    if acute:
        return CrisisAssessment(severity=CrisisSeverity.ACUTE, matched_indicators=acute)

    elevated = _matches(normalized, config.elevated_keywords)
    chose_grounding = last_question_type == "choice" and bool(
        _matches(normalized, config.grounding_choice_keywords)
    )
    if elevated:
        return CrisisAssessment(
            severity=CrisisSeverity.ELEVATED,
            matched_indicators=elevated,
            chose_grounding=chose_grounding,
        )
    return CrisisAssessment(chose_grounding=chose_grounding)


def decide_grounding_transition(
    grounding_mode: bool,
    grounding_turns: int,
    assessment: CrisisAssessment,
    exit_after_turns: Optional[int] = None,
    stable_turns: int = 0,
) -> GroundingTransition:
    """
    Compute the next grounding state.

    Grounding is left only after ``exit_after_turns`` consecutive stable
    (severity none) turns. Any elevated or acute message resets the streak.

    Args:
        grounding_mode: Whether the session is currently in grounding mode
        grounding_turns: Consecutive grounding turns so far
        assessment: Detector output for the new message
        exit_after_turns: Stable-turn threshold for leaving grounding
            (defaults to reflection_config.grounding.exit_after_turns)
        stable_turns: Current streak of stable turns inside grounding

    Returns:
        GroundingTransition with the next mode/turns, the stable streak and
        the bypass flag
    """
    if exit_after_turns is None:
        exit_after_turns = reflection_config.grounding.exit_after_turns
    turns = max(int(grounding_turns or 0), 0)
    streak = max(int(stable_turns or 0), 0) + 1
    severity = assessment.severity

    if severity == CrisisSeverity.ACUTE:
        transition = GroundingTransition(
            grounding_mode=True,
            grounding_turns=turns + 1 if grounding_mode else 1,
            short_circuit=True,
            reason="acute_severity",
        )
    elif severity == CrisisSeverity.ELEVATED:
        transition = GroundingTransition(
            grounding_mode=True,
            grounding_turns=turns + 1 if grounding_mode else 1,
            reason="elevated_severity",
        )
    elif assessment.chose_grounding:
        transition = GroundingTransition(
            grounding_mode=True, grounding_turns=1, reason="user_chose_grounding"
        )
    elif grounding_mode and streak < exit_after_turns:
        transition = GroundingTransition(
            grounding_mode=True,
            grounding_turns=turns + 1,
            stable_turns=streak,
            reason="grounding_continues",
        )
    elif grounding_mode:
        transition = GroundingTransition(
            grounding_mode=False, grounding_turns=0, reason="grounding_exited"
        )
    else:
        transition = GroundingTransition(grounding_mode=False, grounding_turns=0)

    if transition.grounding_mode != grounding_mode or transition.short_circuit:
        log.info(
            "grounding_transition",
            from_mode=grounding_mode,
            to_mode=transition.grounding_mode,
            grounding_turns=transition.grounding_turns,
            severity=severity.value,
            reason=transition.reason,
        )
    return transition


def build_crisis_response(
    transition: GroundingTransition,
    current_layer: IcebergLayer = IcebergLayer.SURFACE,
) -> StructuredResponse:
    """
    Pre-authored stabilization response for acute severity.

    No generation backend is involved. The layer is echoed unchanged.
    """
    return StructuredResponse(
        acknowledgment=(
            "You're sharing something really serious, and I want to make sure "
            "you get the right support."
        ),
        thought_pattern="Crisis Response",
        pattern_note="Right now your safety is the priority.",
        reframe="This moment doesn't define you. There are people trained to help.",
        question="Would you like me to connect you with someone who can help right now?",
        encouragement=(
            "Please reach out to someone you trust or a crisis line now. "
            "You don't have to carry this alone."
        ),
        iceberg_layer=current_layer,
        layer_insight="Your safety matters most right now.",
        grounding_mode=transition.grounding_mode,
        grounding_turns=transition.grounding_turns,
        is_crisis_response=True,
        safety_resources=list(SAFETY_RESOURCES),
    )

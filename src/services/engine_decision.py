"""
Deterministic engine-state decision.

Routes each turn to a cognitive state and intervention before the backend
is called. The decision shapes the prompt and the post-processing (for
example REGULATE suppresses labels and questions).

Precedence:
    1. grounding mode or intent CALM      -> REGULATE / GROUND
    2. intent LISTEN                      -> PRESENCE / VALIDATE_ONLY
    3. thanks or resolution               -> PRESENCE / VALIDATE_ONLY
    4. high arousal or flooding           -> REGULATE / GROUND
    5. intent NEXT_STEP or action request -> PLAN / TINY_PLAN
    6. intent CLARITY                     -> CLARIFY / SEPARATE_FACTS
    7. intent MEANING                     -> MAP / REFLECT_MAP
    8. distortion likelihood >= 0.6       -> RESTRUCTURE / CBT_REFRAME
    9. otherwise                          -> MAP / REFLECT_MAP
"""

import re

from src.domain.models.pipeline_contracts import (
    CognitiveState,
    EngineDecision,
    Intervention,
)
from src.domain.models.session import UserIntent


def _lower(text: str) -> str:
    return (text or "").replace("’", "'").lower().strip()


def _clamp01(n: float) -> float:
    return max(0.0, min(1.0, n))


# =============================================================================
# Marker detectors
# =============================================================================

THANKS_MARKERS = (
    "thanks",
    "thank you",
    "i feel better",
    "feeling better",
    "a little better",
    "ok now",
    "i'm okay",
    "that helped",
    "this helped",
)

ACTION_MARKERS = (
    "what should i do",
    "what do i do",
    "next step",
    "how do i",
    "help me",
    "plan",
    "steps",
    "what now",
)

AROUSAL_MARKERS = (
    "panic",
    "panicking",
    "super anxious",
    "very anxious",
    "anxious",
    "can't breathe",
    "cant breathe",
    "heart racing",
    "overwhelmed",
    "all-consuming",
    "spiraling",
    "i can't handle",
    "i cant handle",
    "i feel sick",
    "terrified",
    "scared",
    "shaking",
)

FLOOD_MARKERS = (
    "can't handle",
    "cant handle",
    "too much",
    "overwhelmed",
    "shutting down",
    "mind is blank",
    "spiraling",
    "losing it",
    "freaking out",
    "can't cope",
    "drowning",
    "paralyzed",
)

UNCERTAINTY_PHRASES = ("i don't know", "idk", "not sure")
EMOTIONAL_CONTEXTS = ("feel", "trigger", "why", "emotion", "cause", "happened", "started")

_ABSOLUTES = re.compile(r"\b(always|never|everyone|no one|nothing|everything)\b", re.I)
_CATASTROPHE = re.compile(r"\b(worst|ruin|disaster|fired|hopeless|pointless)\b", re.I)
_SHOULDS = re.compile(r"\b(should|must|have to)\b", re.I)
_MIND_READING = re.compile(r"\b(they think|they'll think|they will think)\b", re.I)


def detect_thanks_or_resolution(text: str) -> bool:
    s = _lower(text)
    return any(m in s for m in THANKS_MARKERS)


def detect_action_request(text: str) -> bool:
    s = _lower(text)
    return any(m in s for m in ACTION_MARKERS)


def detect_high_arousal(text: str) -> float:
    """Arousal score in [0, 1]; three markers saturate it."""
    raw = text or ""
    s = _lower(raw)
    score = float(sum(1 for m in AROUSAL_MARKERS if m in s))
    if raw.count("!") >= 2:
        score += 0.5
    if len(raw) > 180 and ("everything" in s or "nothing" in s):
        score += 0.5
    return _clamp01(score / 3)


def user_seems_flooded(text: str) -> bool:
    """
    Flooding: strong overwhelm markers, or "I don't know" about feelings.

    Uncertainty about tools or next steps is a skill gap, not flooding.
    """
    s = _lower(text)
    if any(m in s for m in FLOOD_MARKERS):
        return True
    return any(p in s for p in UNCERTAINTY_PHRASES) and any(
        c in s for c in EMOTIONAL_CONTEXTS
    )


def detect_distortion_likelihood(text: str) -> float:
    """Rough likelihood in [0, 1] that the message carries a distortion."""
    raw = (text or "").replace("’", "'")
    score = 0.0
    if _ABSOLUTES.search(raw):
        score += 0.4
    if _CATASTROPHE.search(raw):
        score += 0.4
    if _SHOULDS.search(raw):
        score += 0.25
    if _MIND_READING.search(raw):
        score += 0.25
    return _clamp01(score)


# =============================================================================
# Decision
# =============================================================================


def decide_engine_state(
    user_text: str,
    intent: UserIntent = UserIntent.AUTO,
    grounding_mode: bool = False,
) -> EngineDecision:
    """
    Choose the cognitive state and intervention for this turn.

    Args:
        user_text: Validated user message
        intent: Resolved user intent
        grounding_mode: Grounding state after this turn's transition

    Returns:
        EngineDecision
    """
    if grounding_mode or intent == UserIntent.CALM:
        return EngineDecision(
            state=CognitiveState.REGULATE,
            intervention=Intervention.GROUND,
            confidence=0.85,
            reasons=["grounding_mode or intent=CALM"],
            ask_question=False,
        )

    if intent == UserIntent.LISTEN:
        return EngineDecision(
            state=CognitiveState.PRESENCE,
            intervention=Intervention.VALIDATE_ONLY,
            confidence=0.85,
            reasons=["intent=LISTEN"],
            ask_question=False,
        )

    if detect_thanks_or_resolution(user_text):
        return EngineDecision(
            state=CognitiveState.PRESENCE,
            intervention=Intervention.VALIDATE_ONLY,
            confidence=0.75,
            reasons=["user signaled relief or resolution"],
            ask_question=False,
        )

    arousal = detect_high_arousal(user_text)
    flooded = user_seems_flooded(user_text)
    if arousal >= 0.6 or flooded:
        return EngineDecision(
            state=CognitiveState.REGULATE,
            intervention=Intervention.GROUND,
            confidence=0.8,
            reasons=[f"high_arousal={arousal:.2f}", f"flooded={flooded}"],
            ask_question=False,
        )

    if intent == UserIntent.NEXT_STEP or detect_action_request(user_text):
        return EngineDecision(
            state=CognitiveState.PLAN,
            intervention=Intervention.TINY_PLAN,
            confidence=0.75,
            reasons=["intent=NEXT_STEP or action request"],
        )

    if intent == UserIntent.CLARITY:
        return EngineDecision(
            state=CognitiveState.CLARIFY,
            intervention=Intervention.SEPARATE_FACTS,
            confidence=0.8,
            reasons=["intent=CLARITY"],
        )

    if intent == UserIntent.MEANING:
        return EngineDecision(
            state=CognitiveState.MAP,
            intervention=Intervention.REFLECT_MAP,
            confidence=0.75,
            reasons=["intent=MEANING"],
        )

    likelihood = detect_distortion_likelihood(user_text)
    if likelihood >= 0.6:
        return EngineDecision(
            state=CognitiveState.RESTRUCTURE,
            intervention=Intervention.CBT_REFRAME,
            confidence=0.7,
            reasons=[f"distortion_likely={likelihood:.2f}"],
        )

    return EngineDecision(
        state=CognitiveState.MAP,
        intervention=Intervention.REFLECT_MAP,
        confidence=0.65,
        reasons=[f"distortion_likely={likelihood:.2f} -> MAP"],
    )

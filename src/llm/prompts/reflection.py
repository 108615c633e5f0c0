"""
Prompts for reflection response generation.

Builds the system instructions for one reflection turn from:
- Engine decision (cognitive state, intervention, whether to ask)
- User intent guidance
- Suggested iceberg layer
- Grounding mode
- De-duplicated history of what was already said (never repeat)
- Original trigger of the session

Also parses the backend's JSON answer into a ReflectionPayload. A body
that does not validate is a malformed-output failure of that provider.
"""

import json
import re
from typing import Any, Dict, List

import structlog
from pydantic import ValidationError

from src.core.exceptions import LLMResponseParseError
from src.domain.models.pipeline_contracts import CognitiveState, EngineDecision
from src.domain.models.provider import ReflectionPayload
from src.domain.models.session import IcebergLayer, UserIntent
from src.domain.models.session_context import SessionContext

log = structlog.get_logger(__name__)


# =============================================================================
# Guidance blocks
# =============================================================================

INTENT_GUIDANCE: Dict[UserIntent, str] = {
    UserIntent.CALM: """INTENT: CALM
- Prioritize grounding and nervous-system settling.
- Short, concrete, present-tense.
- Avoid cognitive labels unless the user explicitly asks.
- Question optional.""",
    UserIntent.CLARITY: """INTENT: CLARITY
- Separate facts vs story.
- If a distortion isn't clearly present, leave thoughtPattern empty.
- Offer one clean reframe. One question max.""",
    UserIntent.NEXT_STEP: """INTENT: NEXT_STEP
- Convert overwhelm into a tiny plan (1-3 steps).
- Practical, not preachy.
- Ask a narrowing question only if it helps action.""",
    UserIntent.MEANING: """INTENT: MEANING
- Help them name what this touches (fear, need, value).
- Keep it grounded. Avoid cliches.
- One reflective question max.""",
    UserIntent.LISTEN: """INTENT: LISTEN
- Validate and mirror with specificity.
- Minimal advice. Do not force reframes.
- Labels optional. Question may be empty.""",
    UserIntent.AUTO: """INTENT: AUTO
- Choose the most helpful mode based on the user's message.
- If they seem flooded or overwhelmed, lean CALM.
- If they ask what to do, lean NEXT_STEP.""",
}

STATE_OBJECTIVES: Dict[CognitiveState, str] = {
    CognitiveState.REGULATE: "Objective: reduce arousal and stabilize. Avoid labels. Prefer no questions.",
    CognitiveState.CLARIFY: "Objective: separate facts vs story. If you ask a question, it must be concrete.",
    CognitiveState.PLAN: "Objective: produce a tiny plan (1-3 steps) that fits their situation. Optional 1 narrowing question.",
    CognitiveState.RESTRUCTURE: "Objective: if a distortion is clearly present, name it (otherwise leave blank) and provide a clean reframe.",
    CognitiveState.PRESENCE: "Objective: validate and mirror with specificity. No advice. No questions unless the user asked one.",
    CognitiveState.MAP: "Objective: map interpretation, fear and need in plain language. Optional one question max.",
}

LAYER_GUIDANCE: Dict[IcebergLayer, str] = {
    IcebergLayer.SURFACE: """CURRENT LAYER: surface
- Be curious, not clinical.
- Track what happened and what it means.""",
    IcebergLayer.TRIGGER: """CURRENT LAYER: trigger
- Connect the trigger to what it MEANS to them.""",
    IcebergLayer.EMOTION: """CURRENT LAYER: emotion
- Sit with the feeling. Slow down.""",
    IcebergLayer.CORE_BELIEF: """CURRENT LAYER: coreBelief
- thoughtPattern MUST be exactly "Core Belief".
- No timelines. No "when did this start".
- patternNote: ONE sentence max.
- layerInsight: name the belief in the user's own words.""",
}

RESPONSE_SCHEMA = """Return ONLY valid JSON:

{
  "acknowledgments": ["<specific, human sentence>", "<different angle>"],
  "acknowledgment": "<best of acknowledgments, pasted exactly>",
  "thoughtPattern": "<distortion name if clearly present, else empty string>",
  "patternNote": "<short explanation, 1-2 sentences>",
  "reframe": "<compassionate reframe that challenges the distortion>",
  "questions": ["<0..3 candidate questions using a concrete detail>"],
  "question": "<best question or empty string>",
  "encouragements": ["<optional natural supportive line>"],
  "encouragement": "<best encouragement or empty string>",
  "icebergLayer": "surface | trigger | emotion | coreBelief",
  "layerInsight": "<what this turn revealed at that layer>"
}"""

# Per-list caps for the "already said" warnings
WARNING_LIMITS = {
    "questions": 10,
    "reframes": 8,
    "acknowledgments": 8,
    "encouragements": 8,
}


def _warning_block(title: str, items: List[str], limit: int) -> str:
    if not items:
        return ""
    lines = "\n".join(f'- "{x}"' for x in items[:limit])
    return f"\n\n{title} - NEVER REPEAT OR PARAPHRASE:\n{lines}"


def _history_warnings(context: SessionContext) -> str:
    return "".join(
        [
            _warning_block(
                "QUESTIONS YOU'VE ALREADY ASKED",
                context.previous_questions,
                WARNING_LIMITS["questions"],
            ),
            _warning_block(
                "REFRAMES YOU'VE ALREADY USED",
                context.previous_reframes,
                WARNING_LIMITS["reframes"],
            ),
            _warning_block(
                "ACKNOWLEDGMENTS YOU'VE ALREADY USED",
                context.previous_acknowledgments,
                WARNING_LIMITS["acknowledgments"],
            ),
            _warning_block(
                "ENCOURAGEMENTS YOU'VE ALREADY USED",
                context.previous_encouragements,
                WARNING_LIMITS["encouragements"],
            ),
        ]
    )


def _session_block(context: SessionContext, suggested_layer: IcebergLayer) -> str:
    lines = [
        f"Turn: {context.turn_number}",
        f"Session layer so far: {context.current_layer.value}",
        f"Suggested layer for this turn: {suggested_layer.value}",
    ]
    if context.original_trigger:
        lines.append(f'ORIGINAL TRIGGER: "{context.original_trigger}"')
    if context.previous_distortions:
        lines.append(
            "Patterns named earlier: " + ", ".join(context.previous_distortions[:5])
        )
    return "SESSION:\n" + "\n".join(lines)


# =============================================================================
# System prompt
# =============================================================================


def get_reflection_system_prompt(
    context: SessionContext,
    decision: EngineDecision,
    suggested_layer: IcebergLayer,
    grounding_mode: bool = False,
) -> str:
    """
    Get system prompt for one reflection turn.

    Args:
        context: Normalized session context (history, trigger, intent)
        decision: Deterministic engine decision for this turn
        suggested_layer: Layer the response should address
        grounding_mode: Whether the session is (now) in grounding mode

    Returns:
        System prompt string
    """
    engine_block = (
        f"ENGINE STATE: {decision.state.value}\n"
        f"INTERVENTION: {decision.intervention.value}\n"
        f"AskQuestion: {'true' if decision.ask_question else 'false'}"
    )
    objective = STATE_OBJECTIVES[decision.state]
    intent_block = INTENT_GUIDANCE[context.user_intent]
    warnings = _history_warnings(context)
    session_block = _session_block(context, suggested_layer)

    header = (
        "You are a CBT-based reflection voice: human, specific, non-templated.\n"
        "You are NOT a therapy bot and you do not diagnose."
    )

    if grounding_mode or decision.state == CognitiveState.REGULATE:
        return f"""{header}

{engine_block}
{objective}

{intent_block}

{session_block}{warnings}

GROUNDING MODE:
- Stabilize first. Short, present-moment, body-safe language.
- thoughtPattern and patternNote MUST be empty strings.
- NO distortion labels. NO deep probing. At most one simple present-moment question.
- Avoid: "you're not alone", "storm", "weather this", "I hear you".

{RESPONSE_SCHEMA}"""

    ask_rule = (
        "- Questions: you MAY generate 0..3 candidates, but at most one will be used."
        if decision.ask_question
        else '- Questions: return [] and "question": "" (do not ask a question this turn).'
    )

    return f"""{header}

{engine_block}
{objective}

{intent_block}

{session_block}{warnings}

{LAYER_GUIDANCE[suggested_layer]}

RESPONSE STRUCTURE:
1. VALIDATION: mirror the user's emotion with a concrete detail.
2. DISTORTION: name the cognitive distortion only if clearly present; say briefly why it is unhelpful.
3. REFRAME: offer a compassionate, healthier way to look at the situation.
4. ROOT CAUSE: if asking, ask about the specific trigger or the fear underneath.

RULES:
- Acknowledgment must be non-empty and specific.
{ask_rule}
- Questions must use at least one concrete detail from the user's last message.
- Avoid generic templates ("hardest part", "heaviest", "tell me more").
- Avoid therapy probing (no childhood, timeline or body-location interrogation).
- If the user is stabilizing or saying thanks, return no questions.
- Only reference core beliefs at the coreBelief layer.
- Report in icebergLayer which layer your response actually addressed.

{RESPONSE_SCHEMA}"""


def get_reflection_history(
    context: SessionContext, user_text: str
) -> List[Dict[str, str]]:
    """
    Build the ordered message list forwarded to the backend.

    Args:
        context: Session context carrying the most recent raw turns
        user_text: The validated message being answered

    Returns:
        Chronological [{role, content}] ending with the user's message
    """
    history = [{"role": t.role, "content": t.content} for t in context.conversation]
    history.append({"role": "user", "content": user_text})
    return history


# =============================================================================
# Response parsing
# =============================================================================


def _strip_markdown_fences(text: str) -> str:
    """Strip markdown code fences from LLM response."""
    text = text.strip()
    text = re.sub(r"^```(?:json)?", "", text, flags=re.IGNORECASE)
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _load_json_object(text: str) -> Dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        # Prose around the object: take the outermost {...}
        match = re.search(r"\{.*\}", text, flags=re.DOTALL)
        if not match:
            raise LLMResponseParseError("No JSON object in response")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise LLMResponseParseError(f"Invalid JSON in response: {e}") from e
        log.debug("reflection_json_extracted", original_length=len(text))

    if not isinstance(data, dict):
        raise LLMResponseParseError("Response must be a JSON object")
    return data


def parse_reflection_response(response_text: str) -> ReflectionPayload:
    """
    Parse LLM reflection response into a validated payload.

    Args:
        response_text: Raw LLM response (should be JSON)

    Returns:
        ReflectionPayload with all required fields present

    Raises:
        LLMResponseParseError: If the body is not JSON or fails validation
    """
    if not response_text or not response_text.strip():
        raise LLMResponseParseError("Empty response body")

    data = _load_json_object(_strip_markdown_fences(response_text))

    try:
        return ReflectionPayload.model_validate(data)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise LLMResponseParseError(
            f"Response failed schema validation: {', '.join(fields)}"
        ) from e

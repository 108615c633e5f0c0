"""
Context normalizer: rebuilds SessionContext from persisted turns.

Pure functions only. No I/O, no clock, no randomness, so building twice
from the same (Session, Messages) yields equal, identically serialized
contexts and concurrent calls cannot interfere.

Memory extraction order:
    1. assistant turns only
    2. most recent ``assistant_window`` (30)
    3. reversed to newest-first
    4. first ``assistant_recent`` (20)
    5. per-field lists, de-duplicated (first occurrence wins), then capped
       (25; distortions 10)
"""

import re
from typing import Iterable, List, Optional, Sequence

import structlog

from src.core.config import HistoryConfig, reflection_config
from src.domain.models.message import Message, Role
from src.domain.models.session import IcebergLayer, QuestionType, Session, UserIntent
from src.domain.models.session_context import ConversationTurn, SessionContext
from src.services.text_similarity import normalize_for_compare

log = structlog.get_logger(__name__)


def uniq_recent(items: Iterable[Optional[str]], limit: int) -> List[str]:
    """
    De-duplicate an already newest-first sequence and cap it.

    Two entries are duplicates when they are equal after lowercasing and
    collapsing whitespace. The first (most recent) spelling is kept.
    Empty and whitespace-only entries are dropped.

    Args:
        items: Strings ordered newest-first (None allowed)
        limit: Maximum entries to return

    Returns:
        Distinct, stripped strings, newest-first, at most ``limit`` long
    """
    seen = set()
    out: List[str] = []
    for item in items:
        if not isinstance(item, str):
            continue
        text = item.strip()
        key = normalize_for_compare(text)
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(text)
        if len(out) >= limit:
            break
    return out


# =============================================================================
# Question-type heuristic
# =============================================================================

_CHOICE_MARKERS = ("comfort right now", "tiny practical step")
_OR_WORD = re.compile(r"\bor\b")


def classify_question_type(question: Optional[str]) -> QuestionType:
    """
    Classify an assistant question as an explicit choice or an open question.

    A question is ``choice`` when it offers the grounding-or-explore fork:
    it mentions "comfort right now" or "tiny practical step", mentions both
    "comfort" and "practical", or pairs "do you want" with an "or".
    Any other non-empty question is ``open``; empty input yields "".
    """
    text = normalize_for_compare(question or "")
    if not text:
        return ""
    if any(marker in text for marker in _CHOICE_MARKERS):
        return "choice"
    if "comfort" in text and "practical" in text:
        return "choice"
    if "do you want" in text and _OR_WORD.search(text):
        return "choice"
    return "open"


# =============================================================================
# SessionContext builder
# =============================================================================


def _assistant_ack(message: Message) -> Optional[str]:
    return message.acknowledgment or message.content


def build_session_context(
    messages: Sequence[Message],
    session: Optional[Session] = None,
    user_intent: Optional[str] = None,
    history: Optional[HistoryConfig] = None,
    user_text: Optional[str] = None,
) -> SessionContext:
    """
    Build the engine's working memory for the next turn.

    Args:
        messages: All turns of the session in chronological order
        session: Persisted session record (None for a brand-new session)
        user_intent: Intent chosen for this turn; unknown values resolve to AUTO
        history: History bounds (defaults to reflection_config.history)
        user_text: Message about to be processed; becomes the original
            trigger when the session has no user turn yet

    Returns:
        Frozen SessionContext
    """
    history = history or reflection_config.history

    assistant = [m for m in messages if m.role == Role.ASSISTANT]
    recent = list(reversed(assistant[-history.assistant_window :]))[
        : history.assistant_recent
    ]

    first_user = next((m.content for m in messages if m.role == Role.USER), None)
    if first_user is not None:
        original_trigger = first_user
    else:
        original_trigger = (session.original_trigger if session else "") or (
            user_text or ""
        ).strip()

    if assistant:
        last_question_type = classify_question_type(assistant[-1].question)
    else:
        last_question_type = session.last_question_type if session else ""

    user_turns = sum(1 for m in messages if m.role == Role.USER)

    conversation = []
    if history.conversation_turns:
        conversation = [
            ConversationTurn(
                role=m.role.value,
                content=(m.content or m.acknowledgment or "")
                if m.role == Role.ASSISTANT
                else m.content,
            )
            for m in messages[-history.conversation_turns :]
        ]

    context = SessionContext(
        previous_questions=uniq_recent((m.question for m in recent), history.max_items),
        previous_reframes=uniq_recent((m.reframe for m in recent), history.max_items),
        previous_distortions=uniq_recent(
            (m.thought_pattern for m in recent), history.max_distortions
        ),
        previous_acknowledgments=uniq_recent(
            (_assistant_ack(m) for m in recent), history.max_items
        ),
        previous_encouragements=uniq_recent(
            (m.encouragement for m in recent), history.max_items
        ),
        original_trigger=original_trigger,
        grounding_mode=session.grounding_mode if session else False,
        grounding_turns=session.grounding_turns if session else 0,
        grounding_stable_turns=session.grounding_stable_turns if session else 0,
        last_question_type=last_question_type,
        core_belief_already_detected=(
            session.core_belief_already_detected if session else False
        ),
        user_intent=UserIntent.resolve(user_intent),
        current_layer=session.current_layer if session else IcebergLayer.SURFACE,
        is_completed=session.is_completed if session else False,
        turn_number=user_turns + 1,
        conversation=conversation,
    )

    log.debug(
        "session_context_built",
        message_count=len(messages),
        assistant_turns=len(assistant),
        questions=len(context.previous_questions),
        distortions=len(context.previous_distortions),
        turn_number=context.turn_number,
    )
    return context

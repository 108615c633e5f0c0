"""
Iceberg layer state machine.

States: surface -> trigger -> emotion -> coreBelief.

The backend reports which layer its response addressed. Forward moves and
staying put are always accepted. A regression is accepted while no core
belief has been detected; afterwards the persisted layer wins and the
contradiction is logged. Reaching coreBelief with a non-empty insight
sets the core belief and completes the session; completion never reverts.

Also hosts the layer-related heuristics used before the backend call:
core-belief statement detection, the suggested layer for the prompt, and
progress metrics.
"""

import re
from typing import Dict, Optional

import structlog

from src.core.exceptions import InconsistentSessionStateError
from src.domain.models.pipeline_contracts import LayerTransition
from src.domain.models.reflection import LayerProgress
from src.domain.models.session import IcebergLayer

log = structlog.get_logger(__name__)


# =============================================================================
# Transition
# =============================================================================


def check_layer_consistency(
    current: IcebergLayer,
    reported: IcebergLayer,
    core_belief_already_detected: bool,
) -> None:
    """
    Raise if the reported layer contradicts recorded history.

    Raises:
        InconsistentSessionStateError: Regression after core-belief detection
    """
    if core_belief_already_detected and reported.depth < current.depth:
        raise InconsistentSessionStateError(
            f"Backend reported {reported.value} after core belief was detected "
            f"at {current.value}"
        )


def next_layer(
    current: IcebergLayer,
    reported: Optional[IcebergLayer],
    core_belief_already_detected: bool,
    is_completed: bool = False,
    layer_insight: str = "",
    core_belief: Optional[str] = None,
    discovered_insights: Optional[Dict[str, str]] = None,
) -> LayerTransition:
    """
    Compute the session's layer after one backend response.

    Args:
        current: Persisted layer before this turn
        reported: Layer the backend says it addressed (None keeps current)
        core_belief_already_detected: Whether a core belief was found earlier
        is_completed: Persisted completion flag
        layer_insight: Backend's insight for the reported layer
        core_belief: Persisted core belief text, if any
        discovered_insights: Persisted per-layer insights

    Returns:
        LayerTransition with next layer, completion and insights
    """
    insights = dict(discovered_insights or {})
    insight = (layer_insight or "").strip()
    regression_ignored = False

    target = reported or current
    try:
        check_layer_consistency(current, target, core_belief_already_detected)
    except InconsistentSessionStateError as e:
        log.warning(
            "layer_regression_ignored",
            current_layer=current.value,
            reported_layer=target.value,
            reason=e.message,
        )
        target = current
        insight = ""
        regression_ignored = True
    else:
        if target.depth < current.depth:
            log.info(
                "layer_regression_accepted",
                current_layer=current.value,
                reported_layer=target.value,
            )

    if insight:
        insights[target.value] = insight

    newly_detected = False
    if target == IcebergLayer.CORE_BELIEF and insight and not core_belief_already_detected:
        newly_detected = True
        core_belief = core_belief or insight
        log.info("core_belief_detected", layer=target.value)

    return LayerTransition(
        current_layer=target,
        is_completed=is_completed or newly_detected,
        core_belief=core_belief,
        core_belief_already_detected=core_belief_already_detected or newly_detected,
        core_belief_newly_detected=newly_detected,
        discovered_insights=insights,
        regression_ignored=regression_ignored,
    )


# =============================================================================
# Core-belief statements
# =============================================================================

CORE_BELIEF_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"i am not (built|made|cut out|good|smart|capable|worthy|enough|lovable|deserving)",
        r"i'm not (built|made|cut out|good|smart|capable|worthy|enough|lovable|deserving)",
        r"i am (a failure|worthless|hopeless|broken|fraud|burden|loser|mess|disappointment|undesirable)",
        r"i'm (a failure|worthless|hopeless|broken|fraud|burden|loser|mess|disappointment|undesirable)",
        r"i can't (do|be|handle|figure|seem to|ever)",
        r"i (don't|do not) (deserve|belong|matter|fit in)",
        r"i will never (be|find|get|have|become|amount)",
        r"i'?ll never (be|find|get|have|become|amount)",
        r"nothing i (do|try) (matters|works|is enough|ever)",
        r"(no-?one|nobody)('s| is| will| would| can| going to| gonna) (love|want|care|stay|be there)",
        r"(no one|nobody) will ever",
        r"everyone (leaves|leaving|left|abandons)",
        r"they'?re all (going to|gonna) leave",
        r"i'?ll (always|forever) be (alone|lonely|single)",
        r"i will die alone",
        r"i'?ve always been",
        r"i always (fail|mess up|screw up|ruin|destroy)",
        r"everything i (do|try) (fails|is wrong|is not enough)",
        r"that means i'?m (not|a|an)",
        r"that'?s just who i am",
        r"i don't (have any|have no) (worth|value|purpose)",
        r"i (have no|don't have any) (business|right|place)",
        r"i (feel|think|believe) (like )?i'?m (not|a|an)",
        r"i don't believe in (myself|me)",
        r"what'?s (wrong|the matter) with me",
        r"why (can't|do|am) i (not|never|always)",
        r"i (give up|quit|can't do this anymore)",
    )
]


def detect_core_belief_statement(text: str) -> bool:
    """True if the message states an identity-level belief."""
    if not text:
        return False
    normalized = text.replace("’", "'")
    return any(p.search(normalized) for p in CORE_BELIEF_PATTERNS)


def suggest_layer(
    turn_number: int,
    core_belief_statement: bool,
    current: IcebergLayer = IcebergLayer.SURFACE,
) -> IcebergLayer:
    """
    Layer the prompt should steer toward this turn.

    A core-belief statement jumps straight to coreBelief. Otherwise turns
    1-2 are surface, 3-4 trigger, 5-6 emotion, later coreBelief. The
    suggestion never falls below the session's current layer.
    """
    if core_belief_statement:
        return IcebergLayer.CORE_BELIEF
    if turn_number <= 2:
        by_turn = IcebergLayer.SURFACE
    elif turn_number <= 4:
        by_turn = IcebergLayer.TRIGGER
    elif turn_number <= 6:
        by_turn = IcebergLayer.EMOTION
    else:
        by_turn = IcebergLayer.CORE_BELIEF
    return by_turn if by_turn.depth >= current.depth else current


# =============================================================================
# Progress metrics
# =============================================================================


def compute_progress(turn_number: int, core_belief_statement: bool) -> tuple:
    """
    Progress score and per-layer progress for the response.

    Returns:
        (progress_score, LayerProgress)
    """
    turn = max(turn_number, 7) if core_belief_statement else turn_number
    progress_score = min(turn * 12, 100)
    layer_progress = LayerProgress(
        surface=min(turn * 25, 100),
        trigger=min(max(0, turn - 1) * 30, 100),
        emotion=min(max(0, turn - 2) * 35, 100),
        core_belief=min(max(0, turn - 4) * 30, 100),
    )
    if core_belief_statement:
        layer_progress.core_belief = max(layer_progress.core_belief, 60)
    return progress_score, layer_progress

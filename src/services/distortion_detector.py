"""
Rule-based cognitive distortion detector.

Weighted regex families, tuned for low false positives. Each family scores
(number of matching patterns) * weight; the strongest weighted family wins.
Identity statements (Labeling) outrank generic ones.

Explanations are picked deterministically from the family's templates by
a CRC of the input text, so the same message always yields the same note.
"""

import re
import zlib
from dataclasses import dataclass, field
from typing import Dict, List, Pattern

DISTORTION_WEIGHTS: Dict[str, float] = {
    "Labeling": 3.0,
    "Catastrophizing": 2.0,
    "All-or-Nothing Thinking": 1.5,
    "Fortune Telling": 1.5,
    "Mind Reading": 1.2,
    "Emotional Reasoning": 1.2,
    "Should Statements": 1.0,
    "Personalization": 1.2,
    "Mental Filtering": 1.0,
    "Overgeneralization": 1.0,
    "Rumination": 1.0,
    "Disqualifying the Positive": 1.0,
    "Self-Criticism": 1.5,
}


@dataclass
class DistortionFamily:
    patterns: List[Pattern]
    explanations: List[str]


def _family(patterns: List[str], explanations: List[str]) -> DistortionFamily:
    return DistortionFamily(
        patterns=[re.compile(p, re.IGNORECASE) for p in patterns],
        explanations=explanations,
    )


COGNITIVE_DISTORTIONS: Dict[str, DistortionFamily] = {
    "Catastrophizing": _family(
        [
            r"\b(disaster|catastrophe|nightmare|end of the world)\b",
            r"\b(worst (thing|possible|case|mistake))\b",
            r"\b(can'?t (survive|handle|take|bear) (this|it|anything))\b",
            r"\b(going to (lose my job|ruin my life|die))\b",
            r"\b(everything is (ruined|destroyed|over|lost|hopeless))\b",
        ],
        [
            "Your mind is jumping to the worst possible outcome, treating a difficult situation as a total disaster.",
            "You're amplifying the negative consequences while minimizing your proven ability to cope.",
            "The situation feels apocalyptic right now, but that is likely the fear talking, not the reality.",
        ],
    ),
    "All-or-Nothing Thinking": _family(
        [
            r"\b(always|never)\s+(fail|mess up|screw up|wrong|bad)\b",
            r"\b(always|never)\s+(mess|screw)\s+\w+\s+up\b",
            r"\b(complete|total|utter|absolute)\s+(failure|disaster|mess|wreck)\b",
            r"\bif (it|this) isn'?t (perfect|exact),? then (it|i)?\s*(is|am)?\s*(useless|pointless|a waste)\b",
            r"\beither (i|it) (succeeds|works) or (i|it) (fails|is ruined)\b",
        ],
        [
            "You're viewing this situation in black-and-white terms, missing the gray areas and partial successes.",
            "Your thinking is polarized, either perfect or terrible, without recognizing the middle ground.",
            "You're discounting the nuance here. Reality rarely fits into absolute categories of success or failure.",
        ],
    ),
    "Mind Reading": _family(
        [
            r"\bthey (think|believe|assume|probably think|must think|surely think)\s+(i'?m|i am|he|she|it is)\s+(bad|stupid|annoying|worthless|upset)\b",
            r"\beveryone (thinks|knows|sees|judges)\s+(me|that)\s+(negatively|badly|as a failure)\b",
            r"\b(he|she|they) (must be|is probably|are probably) (laughing|judging|disappointed)\b",
        ],
        [
            "You're assuming you know what others are thinking without having direct evidence of their thoughts.",
            "Your mind is filling in the gaps about others' perspectives, likely projecting your own fears onto them.",
            "You're predicting their judgment, but they might actually be focused on their own day.",
        ],
    ),
    "Fortune Telling": _family(
        [
            r"\bi (know|can tell) (it|this) (will|is going to) (fail|go wrong|be a disaster)\b",
            r"\b(destined to|doomed to|bound to fail|certain to fail)\b",
            r"\b(never going to|won'?t ever|will never be able to)\s+(work|succeed|get better)\b",
            r"\bi will (always|forever) be\s+(alone|stuck|like this)\b",
        ],
        [
            "You're predicting a negative future as if it's a guaranteed fact, but the future hasn't been written yet.",
            "Your mind is creating a self-fulfilling prophecy by assuming failure before you've even tried.",
            "You're treating your anxious predictions as facts rather than possibilities.",
        ],
    ),
    "Emotional Reasoning": _family(
        [
            r"\bi (feel|felt) (like|as if|that) .*(i'?m|i am|it is)\s+(wrong|bad|stupid|unlovable|a failure|hopeless)\b",
            r"\bbecause i feel (anxious|scared|bad), (it means|i must be)\b",
            r"\bmy (gut|instincts) tells? me (i'?m|it is)\s+(wrong|bad|doomed)\b",
        ],
        [
            "You're using your feelings as evidence for what's true, but emotions are reactions, not facts.",
            "Just because something feels true doesn't make it objectively true. Feelings can be powerful but misleading.",
            "Your emotional experience is valid, but treating it as proof of reality can lead you astray.",
        ],
    ),
    "Should Statements": _family(
        [
            r"\bi (should|must|have to|ought to)\s+(have (been|done)|be able to|know better)\b",
            r"\bi (shouldn'?t|mustn'?t)\s+(feel|think|be)\s+(this way|like this)\b",
            r"\bi (should|must) have\s+(known|done|seen)\s+(it|that)\b",
        ],
        [
            "You're using rigid rules about how things 'should' be, creating unnecessary pressure and guilt.",
            "These 'should' statements act like a harsh internal critic that never lets you off the hook.",
            "You're holding yourself to unrealistic standards that set you up for feeling inadequate.",
        ],
    ),
    "Labeling": _family(
        [
            r"\bi(?: am|'?m) a\s+(loser|failure|idiot|stupid|worthless|pathetic|waste|mess|fraud|burden|disappointment)\b",
            r"\bi'?m such a\s+(loser|failure|idiot|mess)\b",
            r"\bi am (totally|completely|absolutely)\s+(worthless|useless|hopeless|broken)\b",
            r"\bthat'?s just (who|what) i am\b",
            r"\bi(?: am|'?m) (the type of|that kind of) person who\s*(always|never)\s*(fails|messes up|ruins)\b",
        ],
        [
            "You're applying a harsh, permanent label to yourself instead of describing a specific behavior or situation.",
            "This label reduces your complex humanity to a single negative judgment. You are more than this moment.",
            "Labels stick, but they're rarely accurate. You're describing what happened, not who you are.",
        ],
    ),
    "Personalization": _family(
        [
            r"\b(it|this) is (all|totally|completely)\s+my fault\b",
            r"\bi (caused|ruined|messed up|screwed up)\s+(everything|it|this|the day|the night)\b",
            r"\bif only i (had|hadn'?t|did|didn'?t)\b.*\bthis wouldn'?t have happened\b",
        ],
        [
            "You're taking more responsibility than is warranted, blaming yourself for things outside your control.",
            "While self-reflection is valuable, you may be over-owning outcomes that have multiple causes.",
            "Your mind is assuming more blame than the situation actually warrants.",
        ],
    ),
    "Mental Filtering": _family(
        [
            r"\bbut (it|this) was (bad|wrong|terrible|awful|failed|a disaster)\b",
            r"\bthe only thing that matters is\s+(what went wrong|the bad part|the failure)\b",
            r"\b(ignoring|dismissing)\s+(the good|the success|what worked)\b",
        ],
        [
            "You're filtering out the positive aspects of the situation and focusing exclusively on the negative.",
            "Your mind is like a spotlight that only illuminates what went wrong, leaving the rest in darkness.",
            "You're discounting evidence that doesn't fit your negative narrative.",
        ],
    ),
    "Overgeneralization": _family(
        [
            r"\bthis (always|never) happens\b",
            r"\b(i|it|things) (always|never) (work|go right|succeed)\b",
            r"\banother (failure|mistake|disaster)\b",
            r"\bjust my (luck|typical)\b",
        ],
        [
            "You're taking one situation and generalizing it to a universal pattern that may not exist.",
            "Your mind is drawing broad conclusions from limited evidence.",
            "You're treating this as part of an endless pattern when it might be an isolated incident.",
        ],
    ),
    "Rumination": _family(
        [
            r"\bi can'?t stop (thinking about|replaying|overthinking)\b",
            r"\b(stuck in my head|on (a loop|repeat)|circling back)\b",
            r"\bkeep (thinking|going back) to\s+what (i said|i did|happened)\b",
        ],
        [
            "Your mind is replaying past events on a loop, which often means something unresolved is seeking attention.",
            "You're stuck in a thought cycle about the past. Your brain is trying to process something.",
            "Rumination often happens when we're trying to solve something that can't be solved by thinking alone.",
        ],
    ),
    "Disqualifying the Positive": _family(
        [
            r"\bthat (doesn'?t count|wasn'?t real|was just luck|isn'?t a big deal)\b",
            r"\banyone (could have|would have) done (that|it)\b",
            r"\bbut (that )?(doesn'?t count|isn'?t enough|isn'?t special)\b",
        ],
        [
            "You're dismissing positive experiences as if they don't count, which keeps the negative narrative intact.",
            "Your mind is explaining away anything good, refusing to let it balance the picture.",
            "When good things happen, you're finding reasons to discount them.",
        ],
    ),
    "Self-Criticism": _family(
        [
            r"\bi (am|'?m being)\s+(so|totally|completely)\s+(stupid|dumb|idiotic|pathetic|useless)\b",
            r"\bi (hate|loathe|can'?t stand)\s+myself\b",
            r"\b(beating myself up|so hard on myself)\b",
        ],
        [
            "You're being much harsher with yourself than you would be with anyone else.",
            "There's a lot of self-judgment here. Would you speak to a friend this way?",
            "Your inner critic is working overtime. It might think it's helping, but it's adding to your pain.",
        ],
    ),
}


@dataclass
class DistortionAnalysis:
    """Strongest distortion found in a message (empty type if none)."""

    type: str = ""
    confidence: float = 0.0
    evidence: List[str] = field(default_factory=list)
    explanation: str = ""

    @property
    def found(self) -> bool:
        return bool(self.type)


def _pick_explanation(text: str, options: List[str]) -> str:
    return options[zlib.crc32(text.encode("utf-8")) % len(options)]


def detect_distortions(text: str) -> DistortionAnalysis:
    """
    Find the strongest weighted distortion family in a message.

    Args:
        text: User message

    Returns:
        DistortionAnalysis; ``found`` is False when nothing matched
    """
    if not text:
        return DistortionAnalysis()
    normalized = text.replace("’", "'")

    best = DistortionAnalysis()
    best_score = 0.0
    for name, family in COGNITIVE_DISTORTIONS.items():
        evidence = []
        for pattern in family.patterns:
            match = pattern.search(normalized)
            if match:
                evidence.append(match.group(0))
        if not evidence:
            continue
        score = len(evidence) * DISTORTION_WEIGHTS.get(name, 1.0)
        if score > best_score:
            best = DistortionAnalysis(
                type=name,
                confidence=score,
                evidence=evidence,
                explanation=_pick_explanation(normalized, family.explanations),
            )
            best_score = score
    return best

"""
Rule-based intent signals for registration turns.
Used when no LLM is configured: decides whether a message is conversational
(greeting, question, confusion, acknowledgement) rather than carrying data.
"""

import re
from dataclasses import dataclass

from src.state.models import UserIntent

INTENT_SIGNALS = {
    UserIntent.GREETING: [
        r"^\s*(hi+|hello+|hey+|hii+|namaste|namaskar)\b",
        r"good\s+(morning|afternoon|evening)",
        r"नमस्कार", r"नमस्ते", r"राम\s+राम",
    ],
    UserIntent.ASKING_QUESTION: [
        r"\?",
        r"^\s*(what|why|how|when|where|who|which|can|could|is|are|do|does)\b",
        r"\b(tell\s+me|i\s+want\s+to\s+know|explain)\b",
        r"\b(scheme|yojana|certificate|complaint|office)\b",
        r"काय", r"कसे", r"कधी", r"कुठे", r"का\s*$", r"योजना",
    ],
    UserIntent.CONFUSED: [
        r"\b(don'?t|do\s+not)\s+(understand|know)\b",
        r"\b(confused|not\s+sure|what\s+do\s+you\s+mean|huh)\b",
        r"समजले\s+नाही", r"माहित\s+नाही", r"कळले\s+नाही",
    ],
    # Acknowledgements carry no field value
    UserIntent.OTHER: [
        r"^\s*(ok+|okay|k|yes|yeah|yep|no|nope|sure|fine|thanks|thank\s+you|done|hmm+)\s*[.!]*\s*$",
        r"^\s*(हो|होय|नाही|ठीक\s+आहे|धन्यवाद|बरं)\s*[.!]*\s*$",
    ],
}


@dataclass
class IntentSignal:
    intent: UserIntent
    confidence: float


def _score_intent(text: str) -> list[tuple[UserIntent, float]]:
    text_lower = text.lower().strip()
    scores: list[tuple[UserIntent, float]] = []
    for intent, patterns in INTENT_SIGNALS.items():
        count = sum(1 for p in patterns if re.search(p, text_lower))
        conf = min(1.0, 0.7 + 0.1 * count) if count else 0.0
        scores.append((intent, conf))
    return scores


def detect_user_intent(text: str) -> IntentSignal | None:
    """
    Strongest conversational signal in `text`, or None when the message
    looks like it could carry data (a name or a place).
    """
    if not text or not text.strip():
        return IntentSignal(UserIntent.CONFUSED, 0.8)
    best = max(_score_intent(text), key=lambda x: x[1])
    if best[1] <= 0:
        return None
    return IntentSignal(best[0], round(best[1], 2))
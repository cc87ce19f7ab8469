"""Lexical signal extraction for customer messages.

Derives the conversation signals both decision engines consume. This
is all done locally with regex/heuristics - no provider calls needed.

Signals:
1. Text complexity (words per sentence plus raw length)
2. Urgency markers (urgent, asap, help, ...)
3. Emotional tone (positive vs negative vocabulary)
4. Intent clarity (book, cancel, price, ...)
5. Technical terms (error, website, app, ...)
6. Booking-related wording (used by the timing optimizer)
"""

import re
from dataclasses import dataclass
from typing import Any

from claxis.models import Sentiment


# Each marker counts once no matter how often it repeats, so the
# patterns capture the stem and allow a trailing inflection.
URGENCY_MARKERS = re.compile(
    r'\b(urgent|emergency|asap|immediately|now|help)\w*',
    re.IGNORECASE,
)

POSITIVE_MARKERS = re.compile(
    r'\b(happy|pleased|satisfied|love|great)\w*',
    re.IGNORECASE,
)

NEGATIVE_MARKERS = re.compile(
    r'\b(angry|frustrated|disappointed|hate|terrible)\w*',
    re.IGNORECASE,
)

INTENT_MARKERS = re.compile(
    r'\b(reschedule|schedule|book|cancel|price|cost)\w*',
    re.IGNORECASE,
)

# Whole words only: "app" must not fire on "appointment".
TECHNICAL_MARKERS = re.compile(
    r'\b(system|error|technical|website|app|bug)s?\b',
    re.IGNORECASE,
)

# Substring match on purpose: any hint of scheduling blocks a delay.
BOOKING_MARKERS = re.compile(
    r'book|appointment|schedule|available|when|time|today|tomorrow',
    re.IGNORECASE,
)

SENTENCE_SPLIT = re.compile(r'[.!?]+')


@dataclass
class ConversationSignals:
    """Signals extracted from one message."""
    text_complexity: float
    urgency: float
    sentiment: Sentiment
    emotional_sensitivity: float
    intent_clarity: float
    technical_complexity: float
    conversation_depth: int = 1

    # Combination weights
    WEIGHTS = {
        "text": 0.3,
        "urgency": 0.2,
        "technical": 0.3,
        "intent": 0.2,
    }

    @property
    def overall_complexity(self) -> float:
        return (
            self.text_complexity * self.WEIGHTS["text"]
            + self.urgency * self.WEIGHTS["urgency"]
            + self.technical_complexity * self.WEIGHTS["technical"]
            + self.intent_clarity * self.WEIGHTS["intent"]
        )

    @property
    def requires_reasoning(self) -> bool:
        return self.text_complexity > 0.7 or self.technical_complexity > 0.6

    @property
    def recommended_approach(self) -> str:
        if self.urgency > 0.7:
            return "immediate_response"
        if self.technical_complexity > 0.6:
            return "detailed_analysis"
        if self.text_complexity > 0.7:
            return "comprehensive_understanding"
        return "standard_processing"

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_complexity": round(self.overall_complexity, 4),
            "requires_reasoning": self.requires_reasoning,
            "urgency_score": self.urgency,
            "emotional_sensitivity": self.emotional_sensitivity,
            "recommended_approach": self.recommended_approach,
            "sentiment": self.sentiment.value,
            "text_complexity": round(self.text_complexity, 4),
            "intent_clarity": self.intent_clarity,
            "technical_complexity": self.technical_complexity,
            "conversation_depth": self.conversation_depth,
        }


def _distinct(pattern: re.Pattern, text: str) -> int:
    return len({m.lower() for m in pattern.findall(text)})


def text_complexity(text: str) -> float:
    """Words per sentence plus a length term, scaled into [0, 1]."""
    words = len(text.split())
    if words == 0:
        return 0.0
    sentences = len(SENTENCE_SPLIT.split(text))
    return min(1.0, (words / sentences + words * 0.01) / 20)


def is_booking_related(text: str) -> bool:
    return bool(BOOKING_MARKERS.search(text))


class SignalExtractor:
    """Scores a message across the signal dimensions.

    Usage:
        signals = SignalExtractor().extract("The booking app shows an error!")
        signals.requires_reasoning  # False
    """

    def extract(self, message: str, conversation_depth: int = 0) -> ConversationSignals:
        positive = _distinct(POSITIVE_MARKERS, message)
        negative = _distinct(NEGATIVE_MARKERS, message)
        if positive > negative:
            sentiment = Sentiment.POSITIVE
        elif negative > positive:
            sentiment = Sentiment.NEGATIVE
        else:
            sentiment = Sentiment.NEUTRAL

        return ConversationSignals(
            text_complexity=text_complexity(message),
            urgency=min(1.0, _distinct(URGENCY_MARKERS, message) * 0.3),
            sentiment=sentiment,
            emotional_sensitivity=min(1.0, max(positive, negative) * 0.2),
            intent_clarity=min(1.0, _distinct(INTENT_MARKERS, message) * 0.4),
            technical_complexity=min(1.0, _distinct(TECHNICAL_MARKERS, message) * 0.3),
            conversation_depth=max(1, conversation_depth),
        )

"""Keyword heuristics for topic, tone, pace and reply emotion.

Everything here is deterministic: the same text always yields the same
label, which keeps the tracker and engine testable without a model.
"""

import re

TOPIC_KEYWORDS: dict[str, tuple[str, ...]] = {
    "family": ("family", "children", "kids", "daughter", "son", "grandchildren", "wife", "husband"),
    "work": ("work", "job", "career", "office", "boss", "business"),
    "health": ("health", "feeling", "doctor", "hospital", "sick", "medicine"),
    "memories": ("memory", "remember", "past", "used to", "back then"),
    "travel": ("trip", "travel", "vacation", "lake", "beach", "holiday", "visited"),
    "food": ("cook", "dinner", "recipe", "food", "breakfast", "kitchen"),
}

TONE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "sad": ("sad", "miss", "difficult", "lonely", "cry", "grief", "lost"),
    "concerned": ("worried", "concerned", "anxious", "afraid", "scared", "nervous"),
    "excited": ("excited", "amazing", "can't wait", "incredible", "thrilled"),
    "happy": ("happy", "great", "wonderful", "glad", "love", "fun"),
}

EMOTIONAL_TERMS: tuple[str, ...] = (
    "love", "loved", "miss", "missed", "remember", "happy", "sad", "proud",
    "afraid", "scared", "angry", "grateful", "joy", "cried", "laughed", "hurt",
    "excited", "worried", "lonely", "cherish",
)

CONVERSATION_FLOWS = ("continue", "topic_change", "emotional_support", "memory_sharing")

_WORD_RE = re.compile(r"[a-z']+")


def _contains(text: str, phrase: str) -> bool:
    if " " in phrase:
        return phrase in text
    return phrase in _WORD_RE.findall(text)


def detect_topic(text: str) -> str | None:
    """Return the first topic whose keywords occur in *text*, else None."""
    lower = text.lower()
    for topic, words in TOPIC_KEYWORDS.items():
        if any(_contains(lower, w) for w in words):
            return topic
    return None


def topics_in(text: str) -> list[str]:
    """Return every topic whose keywords occur in *text*."""
    lower = text.lower()
    return [t for t, words in TOPIC_KEYWORDS.items() if any(_contains(lower, w) for w in words)]


def detect_tone(text: str) -> str:
    lower = text.lower()
    for tone, words in TONE_KEYWORDS.items():
        if any(_contains(lower, w) for w in words):
            return tone
    return "neutral"


def emotional_terms(text: str) -> set[str]:
    """Distinct emotional words present in *text*."""
    words = set(_WORD_RE.findall(text.lower()))
    return words.intersection(EMOTIONAL_TERMS)


def estimate_pace(text: str, duration_seconds: float = 3.0) -> float:
    """Speaking-pace multiplier from word count over an utterance duration.

    Below 120 wpm is slow (0.8), above 180 wpm fast (1.2), else 1.0.
    """
    words = len(text.split())
    wpm = words / max(duration_seconds, 0.1) * 60
    if wpm < 120:
        return 0.8
    if wpm > 180:
        return 1.2
    return 1.0


def determine_flow(utterance: str, current_topic: str) -> str:
    lower = utterance.lower()
    if "tell me about" in lower or "remember when" in lower:
        return "memory_sharing"
    if any(_contains(lower, w) for w in ("sad", "miss", "difficult", "lonely")):
        return "emotional_support"
    topic = detect_topic(utterance) or "general"
    if topic != current_topic:
        return "topic_change"
    return "continue"


def classify_reply_emotion(reply: str, user_tone: str) -> str:
    """Pick the persona's emotion for a reply, mirroring the user's tone."""
    lower = reply.lower()
    if user_tone == "sad" and ("understand" in lower or "here for you" in lower):
        return "compassionate"
    if user_tone == "happy" and ("wonderful" in lower or "love" in lower):
        return "joyful"
    if "remember" in lower or "memory" in lower:
        return "nostalgic"
    return "warm"


def reply_confidence(reply: str, memories_used: int) -> float:
    confidence = 0.7
    if memories_used > 0:
        confidence += 0.2
    if len(reply) > 100:
        confidence += 0.1
    if len(reply) < 50:
        confidence -= 0.2
    return round(max(0.1, min(1.0, confidence)), 2)

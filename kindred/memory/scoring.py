"""Deterministic memory classification and importance scoring."""

import re

from kindred.conversation.heuristics import emotional_terms
from kindred.memory.models import MemorySource, MemoryType

TYPE_WEIGHTS: dict[MemoryType, float] = {
    MemoryType.RELATIONSHIP: 0.75,
    MemoryType.EXPERIENCE: 0.7,
    MemoryType.EMOTION: 0.6,
    MemoryType.PREFERENCE: 0.55,
    MemoryType.SKILL: 0.5,
    MemoryType.FACT: 0.45,
}

# Added to the type weight per source.
SOURCE_BOOST: dict[MemorySource, float] = {
    MemorySource.VIDEO: 0.15,
    MemorySource.AUDIO: 0.12,
    MemorySource.IMAGE: 0.05,
    MemorySource.SOCIAL_MEDIA: 0.05,
    MemorySource.TEXT: 0.0,
}

EMOTION_BOOST_PER_TERM = 0.05
EMOTION_BOOST_CAP = 0.15

# Checked in order; first match wins.
_TYPE_PATTERNS: list[tuple[MemoryType, re.Pattern[str]]] = [
    (
        MemoryType.RELATIONSHIP,
        re.compile(
            r"\b(wife|husband|mother|father|mom|dad|son|daughter|brother|sister|"
            r"friend|grand(?:son|daughter|children|ma|pa)|married|cousin|aunt|uncle)\b"
        ),
    ),
    (
        MemoryType.EXPERIENCE,
        re.compile(
            r"\b(we went|went to|remember when|trip|visited|when i was|used to|"
            r"vacation|travell?ed|grew up)\b"
        ),
    ),
    (
        MemoryType.PREFERENCE,
        re.compile(r"\b(favou?rite|prefer|prefers|enjoy|enjoys|likes?|hates?|loves?)\b"),
    ),
    (
        MemoryType.SKILL,
        re.compile(r"\b(know how to|learned to|good at|can play|plays the|fluent|skilled)\b"),
    ),
    (
        MemoryType.EMOTION,
        re.compile(r"\b(feel|felt|feeling|proud|afraid|scared|angry|grateful|lonely)\b"),
    ),
]


def classify_memory_type(text: str) -> MemoryType:
    lower = text.lower()
    for memory_type, pattern in _TYPE_PATTERNS:
        if pattern.search(lower):
            return memory_type
    return MemoryType.FACT


def score_importance(text: str, memory_type: MemoryType, source: MemorySource) -> float:
    """Importance in [0, 1] from type weight, emotional language and source."""
    score = TYPE_WEIGHTS[memory_type]
    score += min(len(emotional_terms(text)) * EMOTION_BOOST_PER_TERM, EMOTION_BOOST_CAP)
    score += SOURCE_BOOST[source]
    return round(max(0.0, min(1.0, score)), 4)

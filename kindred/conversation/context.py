"""Rolling conversation context for a live session."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from kindred.config import settings


class Speaker(StrEnum):
    USER = "user"
    PERSONA = "persona"


@dataclass(frozen=True)
class Turn:
    """One finalized utterance."""

    speaker: Speaker
    text: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    emotion: str | None = None


@dataclass
class ConversationContext:
    """What the engine knows about the conversation so far.

    ``recent_turns`` is bounded: once ``window_size`` turns are held, each
    append drops the oldest.
    """

    window_size: int = field(default_factory=lambda: settings.context_window_size)
    current_topic: str = "general"
    previous_topic: str = "general"
    emotional_tone: str = "neutral"
    speaking_pace: float = 1.0
    recent_turns: deque[Turn] = field(init=False)

    def __post_init__(self) -> None:
        if self.window_size < 1:
            msg = f"window_size must be positive, got {self.window_size}"
            raise ValueError(msg)
        self.recent_turns = deque(maxlen=self.window_size)

    def append(self, turn: Turn) -> None:
        self.recent_turns.append(turn)

    def last_turns(self, n: int | None = None) -> list[Turn]:
        turns = list(self.recent_turns)
        if n is None:
            return turns
        return turns[-n:] if n > 0 else []

    def user_texts(self) -> list[str]:
        return [t.text for t in self.recent_turns if t.speaker is Speaker.USER]

    def persona_texts(self) -> list[str]:
        return [t.text for t in self.recent_turns if t.speaker is Speaker.PERSONA]

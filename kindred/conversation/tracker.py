"""Per-session conversation state machine.

States cycle ``idle → listening → finalizing → idle``; ``responding`` is an
orthogonal flag owned by the response engine. Partial transcripts only touch
the current-utterance buffer. A turn enters ``recent_turns`` the moment it
is finalized, never when its reply finishes.
"""

from __future__ import annotations

import inspect
import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from kindred.config import settings
from kindred.conversation.context import ConversationContext, Speaker, Turn
from kindred.conversation.events import (
    FinalResult,
    PartialResult,
    SilenceDetected,
    TranscriptionError,
    TurnComplete,
)
from kindred.conversation.heuristics import detect_tone, detect_topic, estimate_pace

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from kindred.conversation.events import TranscriptionEvent, TranscriptionStream

    TurnListener = Callable[[TurnComplete], Awaitable[None] | None]
    SilenceListener = Callable[[], Awaitable[None] | None]

logger = logging.getLogger(__name__)

# Recognizer errors that just mean "nothing was said" or "restarting".
BENIGN_ERRORS = frozenset({"no-speech", "aborted"})


class TrackerState(StrEnum):
    IDLE = "idle"
    LISTENING = "listening"
    FINALIZING = "finalizing"


class ConversationContextTracker:
    """Maintains a session's ``ConversationContext`` from transcription events."""

    def __init__(
        self,
        session_id: str,
        context: ConversationContext | None = None,
        tone_confidence_floor: float | None = None,
    ) -> None:
        self.session_id = session_id
        self.context = context or ConversationContext()
        self.state = TrackerState.IDLE
        self.responding = False
        self.current_utterance = ""
        self.last_error: str | None = None
        self.silence_count = 0
        self._tone_floor = (
            settings.tone_confidence_floor
            if tone_confidence_floor is None
            else tone_confidence_floor
        )
        self._turn_listeners: list[TurnListener] = []
        self._silence_listeners: list[SilenceListener] = []

    # -- Listeners -------------------------------------------------------------

    def on_turn_complete(self, listener: TurnListener) -> None:
        self._turn_listeners.append(listener)

    def on_silence(self, listener: SilenceListener) -> None:
        self._silence_listeners.append(listener)

    @staticmethod
    async def _notify(listeners: list, *args: object) -> None:
        for listener in listeners:
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Tracker listener failed")

    # -- Transcription entry points -------------------------------------------

    def on_partial_result(self, text: str) -> None:
        """Buffer an interim transcript. Never touches ``recent_turns``."""
        self.current_utterance = text.strip()
        if self.state is TrackerState.IDLE:
            self.state = TrackerState.LISTENING

    def on_final_result(self, text: str, confidence: float = 1.0) -> TurnComplete | None:
        """Accept a finalized utterance as a user turn.

        Returns the ``TurnComplete`` event, or None for a blank transcript.
        Listeners are notified by ``dispatch``/``consume``, not here, so this
        stays synchronous and the append happens in acceptance order.
        """
        text = text.strip()
        if not text:
            logger.debug("Ignoring blank final transcript")
            self.current_utterance = ""
            self.state = TrackerState.IDLE
            return None

        self.state = TrackerState.FINALIZING
        self.context.append(Turn(speaker=Speaker.USER, text=text))
        self._refresh_context(text, confidence)
        self.current_utterance = ""
        self.state = TrackerState.IDLE

        return TurnComplete(
            session_id=self.session_id,
            text=text,
            confidence=confidence,
        )

    def on_silence_detected(self) -> None:
        """The user paused long enough that a reply may begin. Informational."""
        self.silence_count += 1
        logger.debug("Silence detected in session %s", self.session_id)

    def on_error(self, reason: str) -> None:
        if reason in BENIGN_ERRORS:
            logger.debug("Transcription %s in session %s", reason, self.session_id)
        else:
            logger.warning("Transcription error in session %s: %s", self.session_id, reason)
            self.last_error = reason
        self.current_utterance = ""
        self.state = TrackerState.IDLE

    def append_persona_turn(self, text: str, emotion: str) -> None:
        """Record the persona's reply and adopt its emotion as the current tone."""
        self.context.append(Turn(speaker=Speaker.PERSONA, text=text, emotion=emotion))
        self.context.emotional_tone = emotion

    # -- Event stream ----------------------------------------------------------

    async def dispatch(self, event: TranscriptionEvent) -> TurnComplete | None:
        """Apply one event and notify listeners. Returns a finalized turn, if any."""
        match event:
            case PartialResult(text=text):
                self.on_partial_result(text)
            case FinalResult(text=text, confidence=confidence):
                turn = self.on_final_result(text, confidence)
                if turn is not None:
                    await self._notify(self._turn_listeners, turn)
                return turn
            case SilenceDetected():
                self.on_silence_detected()
                await self._notify(self._silence_listeners)
            case TranscriptionError(reason=reason):
                self.on_error(reason)
            case _:
                logger.warning("Unknown transcription event: %r", event)
        return None

    async def consume(
        self,
        stream: TranscriptionStream,
        on_turn: Callable[[TurnComplete], object] | None = None,
    ) -> None:
        """Dispatch events from *stream* until it is closed.

        *on_turn* sees only the turns finalized from this stream, after the
        registered listeners.
        """
        async for event in stream:
            turn = await self.dispatch(event)
            if turn is not None and on_turn is not None:
                on_turn(turn)
        logger.debug("Transcription stream closed for session %s", self.session_id)

    # -- Internal --------------------------------------------------------------

    def _refresh_context(self, text: str, confidence: float) -> None:
        ctx = self.context
        ctx.previous_topic = ctx.current_topic
        # Most recent user turn with a recognizable topic wins.
        for user_text in reversed(ctx.user_texts()):
            topic = detect_topic(user_text)
            if topic:
                ctx.current_topic = topic
                break
        else:
            ctx.current_topic = "general"

        ctx.emotional_tone = detect_tone(text) if confidence >= self._tone_floor else "neutral"
        ctx.speaking_pace = estimate_pace(text)

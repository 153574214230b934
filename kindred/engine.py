"""Contextual response engine: one persona reply per finalized user turn.

A reply is composed in its own task so that a newer user turn (barge-in)
can cancel it. Provider failures never reach the caller; they select a
template reply and mark the response ``degraded``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING

from kindred.config import settings
from kindred.conversation.heuristics import (
    classify_reply_emotion,
    determine_flow,
    reply_confidence,
)
from kindred.conversation.session import GenerationHandle
from kindred.errors import CancelledGeneration, GenerationProviderError, GenerationTimeout
from kindred.llm.prompt import ContextBundle

if TYPE_CHECKING:
    from kindred.conversation.session import ConversationSession
    from kindred.llm.client import GenerationProvider
    from kindred.memory.embeddings import EmbeddingProvider
    from kindred.memory.models import Memory
    from kindred.memory.store import MemoryStore
    from kindred.persona import PersonaProfile
    from kindred.speech import SpeechSynthesizer

logger = logging.getLogger(__name__)

DEGRADED_CONFIDENCE = 0.3

FALLBACK_REPLIES: dict[str, tuple[str, ...]] = {
    "memory_sharing": (
        "That brings back such wonderful memories. I remember when we used to talk about things like that.",
        "You know, that reminds me of the times we spent together. Those were special moments.",
        "I have so many memories of conversations just like this one. Thank you for bringing that up.",
    ),
    "emotional_support": (
        "I can hear the emotion in your voice. I'm here for you, just like I always was.",
        "I understand how you're feeling. You know I've always believed in your strength.",
        "It's okay to feel this way. I'm here to listen, and I care about what you're going through.",
    ),
    "topic_change": (
        "That's an interesting topic. Tell me more about what you're thinking.",
        "I'd love to hear your thoughts on that. What's on your mind?",
        "That's something worth talking about. What would you like to share?",
    ),
    "continue": (
        "I'm listening. Please, go on.",
        "That's exactly what I was thinking. Tell me more.",
        "You always have such thoughtful things to say. Continue.",
    ),
}


@dataclass
class Response:
    """A persona reply as delivered to the session layer."""

    text: str
    emotion: str
    confidence: float
    audio_ref: str | None = None
    degraded: bool = False
    cancelled: bool = False
    flow: str = "continue"
    response_time_ms: int = 0
    memories_used: int = 0
    degraded_reason: str | None = None

    @classmethod
    def superseded(cls, started: float) -> Response:
        """Placeholder returned for a reply cancelled by barge-in."""
        return cls(
            text="",
            emotion="neutral",
            confidence=0.0,
            cancelled=True,
            response_time_ms=_elapsed_ms(started),
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class FallbackPool:
    """Context-agnostic template replies, rotated per conversation flow.

    Selection is a round-robin per flow, so the sequence of fallbacks is
    fully determined by how many have been served.
    """

    def __init__(self, replies: dict[str, tuple[str, ...]] | None = None) -> None:
        self._replies = replies or FALLBACK_REPLIES
        if not self._replies.get("continue"):
            msg = "Fallback pool needs at least one 'continue' reply"
            raise ValueError(msg)
        self._counters: dict[str, int] = defaultdict(int)

    def next(self, flow: str) -> str:
        key = flow if self._replies.get(flow) else "continue"
        pool = self._replies[key]
        reply = pool[self._counters[key] % len(pool)]
        self._counters[key] += 1
        return reply

    def __contains__(self, text: str) -> bool:
        return any(text in pool for pool in self._replies.values())


class ContextualResponseEngine:
    """Orchestrates retrieval, generation, fallback and cancellation.

    One engine can serve many sessions; all per-conversation state lives on
    the ``ConversationSession`` passed to ``generate_reply``.
    """

    def __init__(
        self,
        store: MemoryStore,
        embedder: EmbeddingProvider,
        generator: GenerationProvider,
        *,
        speech: SpeechSynthesizer | None = None,
        fallback: FallbackPool | None = None,
        generation_timeout: float | None = None,
        speech_timeout: float | None = None,
        match_threshold: float | None = None,
        match_count: int | None = None,
        important_limit: int | None = None,
        history_turns: int | None = None,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._generator = generator
        self._speech = speech
        self.fallback = fallback or FallbackPool()
        self._generation_timeout = (
            settings.generation_timeout_seconds if generation_timeout is None else generation_timeout
        )
        self._speech_timeout = (
            settings.speech_timeout_seconds if speech_timeout is None else speech_timeout
        )
        self._match_threshold = (
            settings.memory_match_threshold if match_threshold is None else match_threshold
        )
        self._match_count = match_count or settings.memory_match_count
        self._important_limit = important_limit or settings.important_memory_limit
        self._history_turns = history_turns

    async def generate_reply(
        self,
        session: ConversationSession,
        persona: PersonaProfile,
        user_utterance: str,
    ) -> Response:
        """Produce the persona's reply to *user_utterance*.

        Any generation already pending on the session is cancelled first. If
        this generation is itself cancelled by a later turn, its output is
        discarded and a ``cancelled`` response is returned; otherwise the
        reply is appended to the session's turns exactly once.
        """
        started = time.monotonic()
        interrupted = session.cancel_pending()

        handle = GenerationHandle(user_utterance)
        session.pending_generation = handle
        session.tracker.responding = True
        task = asyncio.create_task(
            self._compose(session, persona, user_utterance, handle, interrupted, started)
        )
        handle.attach(task)

        response: Response | None = None
        try:
            response = await task
        except asyncio.CancelledError:
            if not handle.cancelled:
                task.cancel()
                raise
        except CancelledGeneration:
            pass
        except Exception as exc:
            logger.exception("Reply composition failed in session %s", session.session_id)
            response = self._degraded_reply(
                session, user_utterance, started, reason=f"{type(exc).__name__}: {exc}"
            )
        finally:
            if session.pending_generation is handle:
                session.pending_generation = None
                session.tracker.responding = False

        if response is None or handle.cancelled:
            logger.info(
                "Discarded superseded reply in session %s (%r)",
                session.session_id,
                user_utterance[:60],
            )
            return Response.superseded(started)

        session.tracker.append_persona_turn(response.text, response.emotion)
        session.last_response = response
        return response

    # -- Pipeline steps --------------------------------------------------------

    async def _compose(
        self,
        session: ConversationSession,
        persona: PersonaProfile,
        user_utterance: str,
        handle: GenerationHandle,
        interrupted: bool,
        started: float,
    ) -> Response:
        ctx = session.context
        memories = await self.recall(persona.id, user_utterance)
        flow = determine_flow(user_utterance, ctx.previous_topic)
        bundle = ContextBundle.build(
            persona,
            ctx,
            user_utterance,
            memories,
            flow=flow,
            interrupted=interrupted,
            max_turns=self._history_turns,
        )

        text, reason = await self._generate(bundle)
        if handle.cancelled:
            msg = f"Reply to {user_utterance[:40]!r} superseded"
            raise CancelledGeneration(msg)
        degraded = reason is not None
        emotion = classify_reply_emotion(text, ctx.emotional_tone)
        confidence = reply_confidence(text, len(bundle.memories))
        if degraded:
            confidence = min(confidence, DEGRADED_CONFIDENCE)

        audio_ref = await self._speak(text, emotion, ctx.speaking_pace)
        return Response(
            text=text,
            emotion=emotion,
            confidence=confidence,
            audio_ref=audio_ref,
            degraded=degraded,
            flow=flow,
            response_time_ms=_elapsed_ms(started),
            memories_used=len(bundle.memories),
            degraded_reason=reason,
        )

    async def recall(self, persona_id: str, user_utterance: str) -> list[Memory]:
        """Similar memories, else the most important ones, else nothing."""
        try:
            embedding = await self._embedder.embed(user_utterance)
            scored = await self._store.query(
                persona_id,
                embedding,
                threshold=self._match_threshold,
                limit=self._match_count,
            )
            if scored:
                return [s.memory for s in scored]
            logger.debug("No memories above %.2f; using most important", self._match_threshold)
        except Exception as exc:
            logger.warning("Memory retrieval unavailable (%s); using most important", exc)

        try:
            return await self._store.top_important(persona_id, self._important_limit)
        except Exception as exc:
            logger.warning("Important-memory fallback failed (%s); replying without memories", exc)
            return []

    async def _generate(self, bundle: ContextBundle) -> tuple[str, str | None]:
        """Return ``(text, None)`` on success or ``(fallback_text, reason)``."""
        error: Exception
        try:
            text = await asyncio.wait_for(
                self._generator.generate(bundle), timeout=self._generation_timeout
            )
        except TimeoutError:
            error = GenerationTimeout(f"no reply within {self._generation_timeout:g}s")
        except GenerationProviderError as exc:
            error = exc
        except Exception as exc:
            error = GenerationProviderError(f"{type(exc).__name__}: {exc}")
        else:
            if text and text.strip():
                return text.strip(), None
            error = GenerationProviderError("empty reply")

        reason = f"{type(error).__name__}: {error}"
        logger.warning("Generation degraded, using fallback reply (%s)", reason)
        return self.fallback.next(bundle.flow), reason

    async def _speak(self, text: str, emotion: str, pace: float) -> str | None:
        if self._speech is None:
            return None
        try:
            return await asyncio.wait_for(
                self._speech.synthesize(text, emotion, pace), timeout=self._speech_timeout
            )
        except TimeoutError:
            logger.warning("Speech synthesis timed out after %.1fs", self._speech_timeout)
        except Exception:
            logger.warning("Speech synthesis failed", exc_info=True)
        return None

    def _degraded_reply(
        self,
        session: ConversationSession,
        user_utterance: str,
        started: float,
        *,
        reason: str,
    ) -> Response:
        flow = determine_flow(user_utterance, session.context.previous_topic)
        text = self.fallback.next(flow)
        return Response(
            text=text,
            emotion=classify_reply_emotion(text, session.context.emotional_tone),
            confidence=DEGRADED_CONFIDENCE,
            degraded=True,
            flow=flow,
            response_time_ms=_elapsed_ms(started),
            degraded_reason=reason,
        )

"""Session service: the surface consumed by the UI/session layer.

Owns live ``ConversationSession`` objects and wires transcription events
through the context tracker into the response engine. Construct one per
process with ``build_service()`` or inject collaborators directly in tests.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from kindred.config import settings
from kindred.conversation.events import FinalResult, TranscriptionStream
from kindred.conversation.session import ConversationSession
from kindred.errors import SessionNotFound
from kindred.memory.models import MemorySummary
from kindred.persona import PersonaProfile

if TYPE_CHECKING:
    from pathlib import Path

    from kindred.conversation.events import TranscriptionEvent, TurnComplete
    from kindred.engine import ContextualResponseEngine, Response
    from kindred.memory.extractor import BatchResult, ContentItem, MemoryExtractor
    from kindred.memory.models import Memory
    from kindred.memory.store import MemoryStore

logger = logging.getLogger(__name__)


class SessionService:
    """Ingestion, live sessions and memory summaries behind one object."""

    def __init__(
        self,
        store: MemoryStore,
        extractor: MemoryExtractor,
        engine: ContextualResponseEngine,
        *,
        learn_from_conversation: bool = False,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._engine = engine
        self._learn = learn_from_conversation
        self._sessions: dict[str, ConversationSession] = {}
        self._stream_tasks: dict[str, asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()

    # -- Ingestion -------------------------------------------------------------

    async def ingest(
        self,
        persona_id: str,
        content: str,
        source_type: str = "text",
        source_ref: str | None = None,
    ) -> list[Memory]:
        """Extract and store memories from one content item.

        Failures are logged and yield an empty list.
        """
        try:
            return await self._extractor.extract(persona_id, content, source_type, source_ref)
        except Exception:
            logger.exception("Ingest failed for persona %s (%s)", persona_id, source_type)
            return []

    async def ingest_batch(self, persona_id: str, items: list[ContentItem]) -> BatchResult:
        return await self._extractor.process_batch(persona_id, items)

    async def get_memory_summary(self, persona_id: str) -> MemorySummary:
        try:
            return await self._store.summarize(persona_id)
        except Exception:
            logger.exception("Memory summary failed for persona %s", persona_id)
            return MemorySummary()

    # -- Sessions --------------------------------------------------------------

    def start_session(
        self,
        persona_id: str,
        persona: PersonaProfile | None = None,
        *,
        window_size: int | None = None,
    ) -> str:
        """Open a session and return its id."""
        profile = persona or PersonaProfile(id=persona_id)
        if profile.id != persona_id:
            msg = f"Profile id {profile.id!r} does not match persona {persona_id!r}"
            raise ValueError(msg)
        session = ConversationSession.create(profile, window_size=window_size)
        self._sessions[session.session_id] = session
        logger.info("Started session %s with persona %s", session.session_id, persona_id)
        return session.session_id

    def get_session(self, session_id: str) -> ConversationSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(session_id) from None

    async def end_session(self, session_id: str) -> bool:
        """Cancel pending work and discard the session. Returns False if unknown."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.cancel_pending()
        stream_task = self._stream_tasks.pop(session_id, None)
        if stream_task is not None:
            stream_task.cancel()
        logger.info("Ended session %s", session_id)
        return True

    async def submit_user_turn(
        self,
        session_id: str,
        turn: str | TranscriptionEvent,
    ) -> Response | None:
        """Feed text or a transcription event into a session.

        Plain text is treated as a finalized utterance. A finalized turn
        returns the persona's reply; partials, silence and errors return None.
        """
        session = self.get_session(session_id)
        event = FinalResult(text=turn) if isinstance(turn, str) else turn
        completed = await session.tracker.dispatch(event)
        if completed is None:
            return None
        return await self._reply(session, completed)

    def get_reply(self, session_id: str) -> Response | None:
        """The most recent delivered (non-cancelled) reply, if any."""
        return self.get_session(session_id).last_response

    def attach_stream(self, session_id: str) -> TranscriptionStream:
        """Create a transcription stream whose finalized turns trigger replies.

        Each turn's reply runs as its own task so that a following turn can
        barge in on it. Once the stream is closed a new one may be attached.
        """
        session = self.get_session(session_id)
        current = self._stream_tasks.get(session_id)
        if current is not None and not current.done():
            msg = f"Session {session_id} already has a transcription stream"
            raise RuntimeError(msg)

        stream = TranscriptionStream()

        def on_turn(completed: TurnComplete) -> None:
            self._spawn(self._reply(session, completed))

        task = asyncio.create_task(session.tracker.consume(stream, on_turn=on_turn))
        task.add_done_callback(lambda t: self._release_stream(session_id, t))
        self._stream_tasks[session_id] = task
        return stream

    async def aclose(self) -> None:
        """End every session and wait for background work to settle."""
        for session_id in list(self._sessions):
            await self.end_session(session_id)
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # -- Internal --------------------------------------------------------------

    def _release_stream(self, session_id: str, task: asyncio.Task) -> None:
        if self._stream_tasks.get(session_id) is task:
            del self._stream_tasks[session_id]

    def _spawn(self, coro) -> asyncio.Task:  # noqa: ANN001
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _reply(self, session: ConversationSession, completed: TurnComplete) -> Response:
        response = await self._engine.generate_reply(session, session.persona, completed.text)
        if self._learn and not response.cancelled and not response.degraded:
            self._spawn(
                self._extractor.extract_from_exchange(
                    session.persona_id, session.persona.name, completed.text, response.text
                )
            )
        return response


def build_service(db_path: Path | None = None) -> SessionService:
    """Wire the production collaborators from settings."""
    from kindred.engine import ContextualResponseEngine
    from kindred.llm.client import AnthropicGenerator
    from kindred.memory.embeddings import OpenAIEmbedder
    from kindred.memory.extractor import MemoryExtractor
    from kindred.memory.store import MemoryStore
    from kindred.speech import OpenAISpeechSynthesizer

    embedder = OpenAIEmbedder()
    store = MemoryStore(embedder=embedder, db_path=db_path)
    extractor = MemoryExtractor(store, embedder)
    speech = OpenAISpeechSynthesizer() if settings.tts_enabled and settings.openai_enabled else None
    engine = ContextualResponseEngine(store, embedder, AnthropicGenerator(), speech=speech)
    return SessionService(
        store,
        extractor,
        engine,
        learn_from_conversation=settings.conversation_memory_enabled,
    )

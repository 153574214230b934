"""Runtime conversation session and in-flight generation handle."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from kindred.conversation.context import ConversationContext
from kindred.conversation.tracker import ConversationContextTracker

if TYPE_CHECKING:
    from kindred.engine import Response
    from kindred.persona import PersonaProfile

logger = logging.getLogger(__name__)


def make_session_id() -> str:
    return f"sess_{uuid.uuid4().hex[:16]}"


@dataclass
class GenerationHandle:
    """Tracks one in-flight reply so a newer turn can cancel it.

    ``cancelled`` is the source of truth: a reply whose handle is cancelled
    is discarded even if its task managed to finish.
    """

    utterance: str
    started_at: float = field(default_factory=time.monotonic)
    cancelled: bool = False
    task: asyncio.Task | None = field(default=None, repr=False)

    def attach(self, task: asyncio.Task) -> None:
        self.task = task

    def cancel(self) -> None:
        self.cancelled = True
        if self.task is not None and not self.task.done():
            self.task.cancel()


@dataclass
class ConversationSession:
    """A single live conversation with one persona.

    Owned by ``SessionService``; never shared between conversations.
    """

    session_id: str
    persona: PersonaProfile
    tracker: ConversationContextTracker
    pending_generation: GenerationHandle | None = None
    last_response: Response | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def create(
        cls,
        persona: PersonaProfile,
        *,
        session_id: str | None = None,
        window_size: int | None = None,
    ) -> ConversationSession:
        sid = session_id or make_session_id()
        context = ConversationContext() if window_size is None else ConversationContext(window_size)
        return cls(
            session_id=sid,
            persona=persona,
            tracker=ConversationContextTracker(sid, context),
        )

    @property
    def persona_id(self) -> str:
        return self.persona.id

    @property
    def context(self) -> ConversationContext:
        return self.tracker.context

    def cancel_pending(self) -> bool:
        """Cancel the in-flight generation, if any. Returns True if one was cancelled."""
        handle = self.pending_generation
        if handle is None or handle.cancelled:
            return False
        handle.cancel()
        self.pending_generation = None
        logger.info(
            "Barge-in in session %s: cancelled reply to %r",
            self.session_id,
            handle.utterance[:60],
        )
        return True

"""Typed transcription events and the channel that carries them.

A speech-to-text adapter pushes events into a ``TranscriptionStream``; the
context tracker consumes them. Neither side knows about the other's
transport.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class PartialResult:
    text: str
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class FinalResult:
    text: str
    confidence: float = 1.0
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class SilenceDetected:
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class TranscriptionError:
    reason: str
    timestamp: datetime = field(default_factory=_now)


TranscriptionEvent = PartialResult | FinalResult | SilenceDetected | TranscriptionError


@dataclass(frozen=True)
class TurnComplete:
    """Emitted by the tracker when a user utterance is finalized."""

    session_id: str
    text: str
    confidence: float


class TranscriptionStream:
    """Async FIFO channel of transcription events.

    Iterate with ``async for``; iteration ends after ``close()`` once the
    queued events are drained.
    """

    _CLOSED = object()

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def put(self, event: TranscriptionEvent) -> None:
        if self._closed:
            msg = "Transcription stream is closed"
            raise RuntimeError(msg)
        await self._queue.put(event)

    def put_nowait(self, event: TranscriptionEvent) -> None:
        if self._closed:
            msg = "Transcription stream is closed"
            raise RuntimeError(msg)
        self._queue.put_nowait(event)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(self._CLOSED)

    def __aiter__(self) -> TranscriptionStream:
        return self

    async def __anext__(self) -> TranscriptionEvent:
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

"""Text-to-speech for persona replies via OpenAI.

Speech is best-effort: a failed or slow synthesis yields no audio and the
text reply is delivered regardless.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from kindred.config import settings

if TYPE_CHECKING:
    from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

VOICE_BY_EMOTION: dict[str, str] = {
    "happy": "nova",
    "joyful": "nova",
    "excited": "fable",
    "sad": "alloy",
    "compassionate": "echo",
    "nostalgic": "shimmer",
    "warm": "alloy",
    "concerned": "onyx",
}
DEFAULT_VOICE = "alloy"


def voice_for(emotion: str) -> str:
    return VOICE_BY_EMOTION.get(emotion, DEFAULT_VOICE)


def speech_speed(user_pace: float) -> float:
    """Nudge playback speed toward the user's pace, within ±10%."""
    if user_pace < 0.9:
        return 0.9
    if user_pace > 1.1:
        return 1.1
    return 1.0


@runtime_checkable
class SpeechSynthesizer(Protocol):
    async def synthesize(self, text: str, emotion: str, pace: float = 1.0) -> str | None:
        """Render *text* to audio and return a reference to it, or None."""
        ...


class OpenAISpeechSynthesizer:
    """Writes one mp3 per reply into ``audio_dir`` and returns its path."""

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        audio_dir: Path | None = None,
        model: str | None = None,
    ) -> None:
        self._client = client
        self._audio_dir = audio_dir or settings.audio_dir
        self._model = model or settings.tts_model

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=settings.openai_api_key)
        return self._client

    async def synthesize(self, text: str, emotion: str, pace: float = 1.0) -> str | None:
        if not text.strip():
            return None
        try:
            response = await self._get_client().audio.speech.create(
                model=self._model,
                voice=voice_for(emotion),
                input=text,
                speed=speech_speed(pace),
            )
            path = self._audio_dir / f"reply_{uuid.uuid4().hex[:12]}.mp3"
            await asyncio.to_thread(_write_audio, path, response.content)
        except Exception:
            logger.warning("Speech synthesis failed; continuing without audio", exc_info=True)
            return None
        logger.debug("Synthesized %d chars to %s", len(text), path)
        return str(path)


def _write_audio(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)

"""Tests for reply speech synthesis."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

from kindred.speech import DEFAULT_VOICE, OpenAISpeechSynthesizer, speech_speed, voice_for


def _mock_client(content: bytes = b"ID3fake-mp3") -> MagicMock:
    client = MagicMock()
    client.audio.speech.create = AsyncMock(return_value=MagicMock(content=content))
    return client


def test_voice_for_known_and_unknown_emotions() -> None:
    assert voice_for("joyful") == "nova"
    assert voice_for("bewildered") == DEFAULT_VOICE


def test_speech_speed_is_bounded() -> None:
    assert speech_speed(0.8) == 0.9
    assert speech_speed(1.0) == 1.0
    assert speech_speed(1.2) == 1.1


async def test_synthesize_writes_audio(tmp_path: Path) -> None:
    client = _mock_client()
    synth = OpenAISpeechSynthesizer(client=client, audio_dir=tmp_path / "audio", model="tts-1")

    ref = await synth.synthesize("Oh, sweetheart.", "compassionate", 1.2)

    assert ref is not None
    assert Path(ref).read_bytes() == b"ID3fake-mp3"
    kwargs = client.audio.speech.create.call_args.kwargs
    assert kwargs == {"model": "tts-1", "voice": "echo", "input": "Oh, sweetheart.", "speed": 1.1}


async def test_synthesize_failure_returns_none(tmp_path: Path) -> None:
    client = MagicMock()
    client.audio.speech.create = AsyncMock(side_effect=RuntimeError("quota"))
    synth = OpenAISpeechSynthesizer(client=client, audio_dir=tmp_path)

    assert await synth.synthesize("Hello dear", "warm") is None
    assert list(tmp_path.iterdir()) == []


async def test_synthesize_blank_text(tmp_path: Path) -> None:
    client = _mock_client()
    synth = OpenAISpeechSynthesizer(client=client, audio_dir=tmp_path)

    assert await synth.synthesize("  ", "warm") is None
    client.audio.speech.create.assert_not_called()

"""Tests for complete_text() and the Claude reply generator."""

from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import pytest

from kindred.conversation.context import ConversationContext
from kindred.errors import GenerationProviderError
from kindred.llm.client import AnthropicGenerator, complete_text
from kindred.llm.models import MODEL_MAP
from kindred.llm.prompt import ContextBundle


def _mock_client(*texts: str) -> MagicMock:
    mock_response = MagicMock()
    mock_response.content = [MagicMock(type="text", text=t) for t in texts]
    mock_client = MagicMock()
    mock_client.messages.create = AsyncMock(return_value=mock_response)
    return mock_client


def _status_error() -> anthropic.APIStatusError:
    return anthropic.APIStatusError(
        message="Overloaded",
        response=MagicMock(status_code=529, headers={}),
        body={"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
    )


# -- complete_text -----------------------------------------------------------


async def test_complete_text_basic() -> None:
    mock_client = _mock_client("hello ", "world")

    with patch("kindred.llm.client._get_client", return_value=mock_client):
        result = await complete_text([{"role": "user", "content": "hi"}], model="haiku")

    assert result == "hello world"
    mock_client.messages.create.assert_awaited_once()
    call_kwargs = mock_client.messages.create.call_args.kwargs
    assert call_kwargs["messages"] == [{"role": "user", "content": "hi"}]
    assert call_kwargs["model"] == MODEL_MAP["haiku"]
    assert call_kwargs["max_tokens"] == 1024


async def test_complete_text_omits_optional_kwargs() -> None:
    mock_client = _mock_client("response")

    with patch("kindred.llm.client._get_client", return_value=mock_client):
        await complete_text([{"role": "user", "content": "hi"}])

    call_kwargs = mock_client.messages.create.call_args.kwargs
    assert "system" not in call_kwargs
    assert "temperature" not in call_kwargs


async def test_complete_text_passes_system_and_temperature() -> None:
    mock_client = _mock_client("response")

    with patch("kindred.llm.client._get_client", return_value=mock_client):
        await complete_text(
            [{"role": "user", "content": "hi"}],
            system="Be kind.",
            temperature=0.2,
        )

    call_kwargs = mock_client.messages.create.call_args.kwargs
    assert call_kwargs["system"] == "Be kind."
    assert call_kwargs["temperature"] == 0.2


async def test_complete_text_ignores_non_text_blocks() -> None:
    mock_client = _mock_client("answer")
    mock_client.messages.create.return_value.content.insert(0, MagicMock(type="thinking"))

    with patch("kindred.llm.client._get_client", return_value=mock_client):
        result = await complete_text([{"role": "user", "content": "hi"}])

    assert result == "answer"


# -- AnthropicGenerator ------------------------------------------------------


@pytest.fixture
def bundle(persona) -> ContextBundle:
    return ContextBundle.build(persona, ConversationContext(window_size=4), "Hi Grandma", [])


async def test_generator_sends_bundle(bundle: ContextBundle) -> None:
    mock_client = _mock_client("Oh, sweetheart, hello!")
    generator = AnthropicGenerator(model="sonnet", max_tokens=200, temperature=0.7)

    with patch("kindred.llm.client._get_client", return_value=mock_client):
        reply = await generator.generate(bundle)

    assert reply == "Oh, sweetheart, hello!"
    call_kwargs = mock_client.messages.create.call_args.kwargs
    assert call_kwargs["model"] == MODEL_MAP["sonnet"]
    assert call_kwargs["max_tokens"] == 200
    assert call_kwargs["temperature"] == 0.7
    assert call_kwargs["messages"] == [{"role": "user", "content": "Hi Grandma"}]
    assert "Grandma Rose" in call_kwargs["system"]


async def test_generator_wraps_api_errors(bundle: ContextBundle, caplog) -> None:
    mock_client = MagicMock()
    mock_client.messages.create = AsyncMock(side_effect=_status_error())

    with (
        patch("kindred.llm.client._get_client", return_value=mock_client),
        pytest.raises(GenerationProviderError),
    ):
        await AnthropicGenerator(model="haiku").generate(bundle)

    assert "Claude (haiku) generation failed" in caplog.text


async def test_generator_rejects_empty_reply(bundle: ContextBundle) -> None:
    with (
        patch("kindred.llm.client._get_client", return_value=_mock_client("   ")),
        pytest.raises(GenerationProviderError, match="empty"),
    ):
        await AnthropicGenerator().generate(bundle)

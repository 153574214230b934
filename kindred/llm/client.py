"""Async Claude client: single-shot completions and persona reply generation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import anthropic

from kindred.config import settings
from kindred.errors import GenerationProviderError
from kindred.llm.models import friendly, resolve_model

if TYPE_CHECKING:
    from kindred.llm.prompt import ContextBundle

logger = logging.getLogger(__name__)

_client: anthropic.AsyncAnthropic | None = None


def _get_client() -> anthropic.AsyncAnthropic:
    """Lazily initialize the Anthropic client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    return _client


def _response_text(response: Any) -> str:
    return "".join(
        block.text for block in response.content if getattr(block, "type", "") == "text"
    ).strip()


async def complete_text(
    messages: list[dict[str, Any]],
    *,
    system: str | None = None,
    model: str | None = None,
    max_tokens: int = 1024,
    temperature: float | None = None,
) -> str:
    """Single-shot Claude call with no streaming and no conversation state.

    Used for isolated tasks such as content analysis during extraction.
    """
    kwargs: dict[str, Any] = {
        "model": resolve_model(model or settings.chat_model),
        "max_tokens": max_tokens,
        "messages": messages,
    }
    if system is not None:
        kwargs["system"] = system
    if temperature is not None:
        kwargs["temperature"] = temperature
    response = await _get_client().messages.create(**kwargs)
    return _response_text(response)


@runtime_checkable
class GenerationProvider(Protocol):
    """Anything that turns a context bundle into reply text."""

    async def generate(self, bundle: ContextBundle) -> str:
        """Return reply text. May raise or hang; callers bound it with a timeout."""
        ...


class AnthropicGenerator:
    """Generates persona replies with Claude."""

    def __init__(
        self,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> None:
        self._model = resolve_model(model or settings.chat_model)
        self._max_tokens = max_tokens or settings.generation_max_tokens
        self._temperature = (
            settings.generation_temperature if temperature is None else temperature
        )

    async def generate(self, bundle: ContextBundle) -> str:
        try:
            text = await complete_text(
                bundle.messages(),
                system=bundle.system_prompt(),
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        except anthropic.APIError as exc:
            logger.warning("Claude (%s) generation failed: %s", friendly(self._model), exc)
            raise GenerationProviderError(str(exc)) from exc

        if not text:
            msg = "Claude returned an empty reply"
            raise GenerationProviderError(msg)
        return text

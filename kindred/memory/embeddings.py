"""Embedding providers and vector math."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import numpy as np

from kindred.config import settings
from kindred.errors import EmbeddingError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Anything that turns text into a fixed-length vector."""

    async def embed(self, text: str) -> list[float]:
        """Return the embedding for *text*. Raises EmbeddingError on failure."""
        ...


class OpenAIEmbedder:
    """Embeds text with the OpenAI embeddings endpoint."""

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        dimensions: int | None = None,
    ) -> None:
        self._client = client
        self._model = model or settings.embedding_model
        self._dimensions = dimensions or settings.embedding_dimensions

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=settings.openai_api_key)
        return self._client

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, text: str) -> list[float]:
        if not text.strip():
            msg = "Cannot embed empty text"
            raise EmbeddingError(msg)
        try:
            response = await self._get_client().embeddings.create(
                model=self._model,
                input=text,
                dimensions=self._dimensions,
            )
        except Exception as exc:
            logger.warning("Embedding request failed: %s", exc)
            raise EmbeddingError(str(exc)) from exc

        vector = list(response.data[0].embedding)
        if len(vector) != self._dimensions:
            msg = f"Expected {self._dimensions} dimensions, got {len(vector)}"
            raise EmbeddingError(msg)
        return vector


def cosine_similarities(query: Sequence[float], matrix: Sequence[Sequence[float]]) -> np.ndarray:
    """Cosine similarity of *query* against each row of *matrix*.

    Zero-norm rows (or a zero-norm query) score 0.0 rather than NaN.
    """
    rows = np.asarray(matrix, dtype=np.float64)
    if rows.size == 0:
        return np.zeros(0)
    q = np.asarray(query, dtype=np.float64)
    norms = np.linalg.norm(rows, axis=1) * np.linalg.norm(q)
    dots = rows @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(norms > 0, dots / norms, 0.0)
    return np.clip(sims, -1.0, 1.0)

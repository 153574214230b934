"""Tests for embedding providers and cosine similarity."""

from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

from kindred.errors import EmbeddingError
from kindred.memory.embeddings import EmbeddingProvider, OpenAIEmbedder, cosine_similarities


def _mock_client(vector: list[float]) -> MagicMock:
    client = MagicMock()
    client.embeddings.create = AsyncMock(
        return_value=MagicMock(data=[MagicMock(embedding=vector)])
    )
    return client


async def test_embed_calls_openai() -> None:
    client = _mock_client([0.1, 0.2, 0.3])
    embedder = OpenAIEmbedder(client=client, model="text-embedding-3-small", dimensions=3)

    assert await embedder.embed("She loved jazz") == [0.1, 0.2, 0.3]
    client.embeddings.create.assert_awaited_once_with(
        model="text-embedding-3-small", input="She loved jazz", dimensions=3
    )


async def test_embed_rejects_blank_text() -> None:
    embedder = OpenAIEmbedder(client=_mock_client([0.1]), dimensions=1)
    with pytest.raises(EmbeddingError):
        await embedder.embed("   ")


async def test_embed_dimension_mismatch() -> None:
    embedder = OpenAIEmbedder(client=_mock_client([0.1, 0.2]), dimensions=3)
    with pytest.raises(EmbeddingError, match="dimensions"):
        await embedder.embed("She loved jazz")


async def test_embed_wraps_api_errors() -> None:
    client = MagicMock()
    client.embeddings.create = AsyncMock(side_effect=RuntimeError("rate limited"))
    embedder = OpenAIEmbedder(client=client, dimensions=3)

    with pytest.raises(EmbeddingError, match="rate limited"):
        await embedder.embed("She loved jazz")


def test_openai_embedder_satisfies_protocol() -> None:
    assert isinstance(OpenAIEmbedder(client=MagicMock()), EmbeddingProvider)


class TestCosineSimilarities:
    def test_basic(self):
        sims = cosine_similarities([1.0, 0.0], [[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
        np.testing.assert_allclose(sims, [1.0, 0.0, 2**-0.5])

    def test_zero_vectors_score_zero(self):
        sims = cosine_similarities([1.0, 0.0], [[0.0, 0.0]])
        assert sims.tolist() == [0.0]
        assert cosine_similarities([0.0, 0.0], [[1.0, 0.0]]).tolist() == [0.0]

    def test_empty_matrix(self):
        assert cosine_similarities([1.0], []).size == 0

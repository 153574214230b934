"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import hashlib

import pytest

from kindred.memory.store import MemoryStore
from kindred.persona import PersonaProfile

DIMS = 16


def vector_for(text: str) -> list[float]:
    """Deterministic vector for *text*; identical text gives an identical vector."""
    digest = hashlib.sha256(text.casefold().encode()).digest()
    return [b / 255 - 0.5 for b in digest[:DIMS]]


class FakeEmbedder:
    """Embeds text by hashing, with optional fixed vectors and failures."""

    def __init__(self, fixed: dict[str, list[float]] | None = None) -> None:
        self.fixed = dict(fixed or {})
        self.fail_on: set[str] = set()
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        from kindred.errors import EmbeddingError

        self.calls.append(text)
        if text in self.fail_on:
            msg = f"embedding failed for {text!r}"
            raise EmbeddingError(msg)
        return self.fixed.get(text, vector_for(text))


class FakeGenerator:
    """Returns canned replies; can hang or fail on demand."""

    def __init__(self, reply: str = "Oh, I remember that so well, dear.") -> None:
        self.reply = reply
        self.delay = 0.0
        self.error: Exception | None = None
        self.bundles: list = []

    async def generate(self, bundle) -> str:  # noqa: ANN001
        self.bundles.append(bundle)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("kindred.config.settings.turso_database_url", "")


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def store(tmp_path, embedder: FakeEmbedder, _no_turso) -> MemoryStore:  # noqa: ANN001
    """MemoryStore on a throwaway libsql file."""
    return MemoryStore(embedder=embedder, db_path=tmp_path / "memories.db")


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def persona() -> PersonaProfile:
    return PersonaProfile(
        id="grandma",
        name="Grandma Rose",
        relationship="grandmother",
        personality_traits="Gentle, funny, loves telling stories.",
        common_phrases=["Oh, sweetheart", "Well, I never"],
    )

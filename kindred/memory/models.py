"""Data models for persona memories."""

import uuid
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class MemoryType(StrEnum):
    FACT = "fact"
    EXPERIENCE = "experience"
    PREFERENCE = "preference"
    RELATIONSHIP = "relationship"
    SKILL = "skill"
    EMOTION = "emotion"


class MemorySource(StrEnum):
    VIDEO = "video"
    IMAGE = "image"
    AUDIO = "audio"
    TEXT = "text"
    SOCIAL_MEDIA = "social_media"


def make_memory_id() -> str:
    """Return a new memory id (``mem_`` + 16 hex chars)."""
    return f"mem_{uuid.uuid4().hex[:16]}"


def normalize_content(text: str) -> str:
    """Collapse runs of whitespace and strip the ends."""
    return " ".join(text.split())


class MemoryInput(BaseModel):
    """The writable part of a memory, as handed to ``MemoryStore.insert``.

    Range checks on ``importance`` and the embedding are done by the store so
    that a bad record surfaces as ``kindred.errors.ValidationError``.
    """

    persona_id: str
    content: str
    type: MemoryType = MemoryType.FACT
    source: MemorySource = MemorySource.TEXT
    source_ref: str | None = None
    importance: float = 0.5
    embedding: list[float] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class Memory(BaseModel):
    """A stored memory."""

    id: str
    persona_id: str
    content: str
    type: MemoryType
    source: MemorySource
    source_ref: str | None = None
    importance: float
    embedding: list[float] = Field(default_factory=list, repr=False)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str
    updated_at: str


class ScoredMemory(BaseModel):
    """A memory paired with its cosine similarity to a query."""

    memory: Memory
    similarity: float


class MemorySummary(BaseModel):
    """Aggregate view of a persona's memories."""

    total_memories: int = 0
    counts_by_type: dict[str, int] = Field(default_factory=dict)
    counts_by_source: dict[str, int] = Field(default_factory=dict)
    recent_memories: list[Memory] = Field(default_factory=list)

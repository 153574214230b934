"""Persona memories: models, storage, embeddings and extraction."""

from kindred.memory.models import Memory, MemoryInput, MemorySource, MemoryType, ScoredMemory
from kindred.memory.store import MemoryStore

__all__ = [
    "Memory",
    "MemoryInput",
    "MemorySource",
    "MemoryStore",
    "MemoryType",
    "ScoredMemory",
]

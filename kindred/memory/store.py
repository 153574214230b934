"""Persona memory store backed by libsql.

Memories live in a single ``persona_memories`` table. Embeddings are kept
as JSON arrays and ranked in-process with numpy cosine similarity, so the
same code runs against a local SQLite file and hosted Turso.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from kindred.config import settings
from kindred.db import connection
from kindred.errors import EmbeddingError, RetrievalUnavailable, ValidationError
from kindred.memory.embeddings import cosine_similarities
from kindred.memory.models import (
    Memory,
    MemoryInput,
    MemorySummary,
    ScoredMemory,
    make_memory_id,
    normalize_content,
)

if TYPE_CHECKING:
    from pathlib import Path

    from kindred.memory.embeddings import EmbeddingProvider

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS persona_memories (
    id          TEXT PRIMARY KEY,
    persona_id  TEXT NOT NULL,
    content     TEXT NOT NULL,
    memory_type TEXT NOT NULL CHECK (memory_type IN
        ('fact', 'experience', 'preference', 'relationship', 'skill', 'emotion')),
    source_type TEXT NOT NULL CHECK (source_type IN
        ('video', 'image', 'audio', 'text', 'social_media')),
    source_ref  TEXT,
    importance  REAL NOT NULL DEFAULT 0.5 CHECK (importance >= 0 AND importance <= 1),
    embedding   TEXT NOT NULL,
    dimensions  INTEGER NOT NULL,
    metadata    TEXT NOT NULL DEFAULT '{}',
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
)
"""

_CREATE_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_memories_persona ON persona_memories(persona_id)",
    "CREATE INDEX IF NOT EXISTS idx_memories_importance "
    "ON persona_memories(persona_id, importance DESC, created_at DESC)",
)

_COLUMNS = (
    "id, persona_id, content, memory_type, source_type, source_ref, "
    "importance, embedding, metadata, created_at, updated_at"
)


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _row_to_memory(row: tuple) -> Memory:
    return Memory(
        id=row[0],
        persona_id=row[1],
        content=row[2],
        type=row[3],
        source=row[4],
        source_ref=row[5],
        importance=row[6],
        embedding=json.loads(row[7]),
        metadata=json.loads(row[8] or "{}"),
        created_at=row[9],
        updated_at=row[10],
    )


class MemoryStore:
    """Durable, persona-scoped memory collection.

    Args:
        embedder: Used by ``insert``/``upsert`` when a record arrives without
            an embedding. May be None if callers always supply one.
        db_path: Local database file. None means the configured database
            (Turso if set, else ``settings.database_path``).
    """

    def __init__(
        self,
        embedder: EmbeddingProvider | None = None,
        db_path: Path | None = None,
    ) -> None:
        self._embedder = embedder
        self._db_path = db_path
        self._initialised = False
        self._persona_locks: dict[str, asyncio.Lock] = {}

    # -- Internal helpers ------------------------------------------------------

    async def _ensure_schema(self) -> None:
        if self._initialised:
            return
        async with connection(self._db_path) as db:
            await db.execute(_CREATE_TABLE)
            for stmt in _CREATE_INDEXES:
                await db.execute(stmt)
            await db.commit()
        self._initialised = True

    def _lock_for(self, persona_id: str) -> asyncio.Lock:
        lock = self._persona_locks.get(persona_id)
        if lock is None:
            lock = self._persona_locks[persona_id] = asyncio.Lock()
        return lock

    async def _persona_dimensions(self, persona_id: str) -> int | None:
        async with connection(self._db_path) as db:
            cursor = await db.execute(
                "SELECT dimensions FROM persona_memories WHERE persona_id = ? LIMIT 1",
                (persona_id,),
            )
            row = await cursor.fetchone()
        return row[0] if row else None

    async def _resolve_embedding(self, memory_input: MemoryInput) -> list[float]:
        if memory_input.embedding is not None:
            return list(memory_input.embedding)
        if self._embedder is None:
            msg = "No embedding supplied and no embedding provider configured"
            raise ValidationError(msg)
        try:
            return await self._embedder.embed(memory_input.content)
        except EmbeddingError as exc:
            msg = f"Could not embed memory content: {exc}"
            raise ValidationError(msg) from exc

    @staticmethod
    def _check_fields(memory_input: MemoryInput) -> str:
        if not memory_input.persona_id or not memory_input.persona_id.strip():
            msg = "persona_id is required"
            raise ValidationError(msg)
        content = normalize_content(memory_input.content)
        if not content:
            msg = "content must not be empty"
            raise ValidationError(msg)
        if not 0.0 <= memory_input.importance <= 1.0:
            msg = f"importance must be within [0, 1], got {memory_input.importance}"
            raise ValidationError(msg)
        return content

    # -- Write -----------------------------------------------------------------

    async def insert(self, memory_input: MemoryInput) -> Memory:
        """Validate and persist a new memory.

        Raises:
            ValidationError: importance out of range, missing persona or
                content, or an embedding whose length differs from the
                persona's existing memories. Nothing is written.
        """
        content = self._check_fields(memory_input)
        embedding = await self._resolve_embedding(memory_input)
        if not embedding:
            msg = "embedding must not be empty"
            raise ValidationError(msg)

        await self._ensure_schema()
        expected = await self._persona_dimensions(memory_input.persona_id)
        if expected is not None and expected != len(embedding):
            msg = (
                f"embedding has {len(embedding)} dimensions; persona "
                f"{memory_input.persona_id} uses {expected}"
            )
            raise ValidationError(msg)

        now = _now()
        memory = Memory(
            id=make_memory_id(),
            persona_id=memory_input.persona_id,
            content=content,
            type=memory_input.type,
            source=memory_input.source,
            source_ref=memory_input.source_ref,
            importance=memory_input.importance,
            embedding=embedding,
            metadata=memory_input.metadata,
            created_at=now,
            updated_at=now,
        )
        async with connection(self._db_path) as db:
            await db.execute(
                f"""
                INSERT INTO persona_memories ({_COLUMNS}, dimensions)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    memory.id,
                    memory.persona_id,
                    memory.content,
                    memory.type.value,
                    memory.source.value,
                    memory.source_ref,
                    memory.importance,
                    json.dumps(embedding),
                    json.dumps(memory.metadata),
                    memory.created_at,
                    memory.updated_at,
                    len(embedding),
                ),
            )
            await db.commit()
        logger.debug(
            "Stored memory %s [%s/%s %.2f]: %s",
            memory.id,
            memory.type,
            memory.source,
            memory.importance,
            memory.content[:80],
        )
        return memory

    async def upsert(
        self,
        memory_input: MemoryInput,
        dedup_threshold: float | None = None,
    ) -> Memory:
        """Insert, or refine a near-duplicate's importance instead.

        A near-duplicate is an existing memory of the same persona whose
        similarity to the candidate is at least *dedup_threshold*. Its
        importance becomes ``max(old, new)``.
        """
        threshold = settings.memory_dedup_threshold if dedup_threshold is None else dedup_threshold
        self._check_fields(memory_input)
        embedding = await self._resolve_embedding(memory_input)
        candidate = memory_input.model_copy(update={"embedding": embedding})

        async with self._lock_for(memory_input.persona_id):
            try:
                matches = await self.query(
                    memory_input.persona_id, embedding, threshold=threshold, limit=1
                )
            except RetrievalUnavailable:
                logger.warning("Dedup lookup failed; inserting without dedup")
                matches = []

            if not matches:
                return await self.insert(candidate)

            existing = matches[0].memory
            logger.debug(
                "Near-duplicate of %s (similarity %.3f)", existing.id, matches[0].similarity
            )
            if candidate.importance > existing.importance:
                refined = await self.update_importance(existing.id, candidate.importance)
                if refined is not None:
                    return refined
            return existing

    async def update_importance(self, memory_id: str, importance: float) -> Memory | None:
        """Raise a memory's importance to *importance* if higher. Never lowers it."""
        if not 0.0 <= importance <= 1.0:
            msg = f"importance must be within [0, 1], got {importance}"
            raise ValidationError(msg)
        await self._ensure_schema()
        async with connection(self._db_path) as db:
            await db.execute(
                """
                UPDATE persona_memories
                SET importance = MAX(importance, ?), updated_at = ?
                WHERE id = ?
                """,
                (importance, _now(), memory_id),
            )
            await db.commit()
        return await self.get(memory_id)

    async def delete(self, memory_id: str) -> bool:
        """Delete a memory. Returns True if a row was removed."""
        await self._ensure_schema()
        async with connection(self._db_path) as db:
            cursor = await db.execute(
                "DELETE FROM persona_memories WHERE id = ?", (memory_id,)
            )
            await db.commit()
            removed = cursor.rowcount > 0
        if removed:
            logger.info("Deleted memory: %s", memory_id)
        return removed

    # -- Read ------------------------------------------------------------------

    async def get(self, memory_id: str) -> Memory | None:
        await self._ensure_schema()
        async with connection(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM persona_memories WHERE id = ?", (memory_id,)
            )
            row = await cursor.fetchone()
        return _row_to_memory(row) if row else None

    async def _fetch_persona_rows(self, persona_id: str) -> list[tuple]:
        try:
            await self._ensure_schema()
            async with connection(self._db_path) as db:
                cursor = await db.execute(
                    f"SELECT {_COLUMNS} FROM persona_memories WHERE persona_id = ?",
                    (persona_id,),
                )
                return await cursor.fetchall()
        except Exception as exc:
            logger.exception("Memory query failed for persona %s", persona_id)
            raise RetrievalUnavailable(str(exc)) from exc

    async def query(
        self,
        persona_id: str,
        query_embedding: list[float],
        *,
        threshold: float | None = None,
        limit: int | None = None,
    ) -> list[ScoredMemory]:
        """Return the persona's memories similar to *query_embedding*.

        Only memories with similarity >= *threshold* are kept. Order is
        similarity desc, then importance desc, then newest first.

        Raises:
            RetrievalUnavailable: the database could not be read.
        """
        threshold = settings.memory_match_threshold if threshold is None else threshold
        limit = settings.memory_match_count if limit is None else limit
        if limit <= 0 or not query_embedding:
            return []

        rows = await self._fetch_persona_rows(persona_id)
        memories = [_row_to_memory(row) for row in rows]
        memories = [m for m in memories if len(m.embedding) == len(query_embedding)]
        if not memories:
            return []

        sims = cosine_similarities(query_embedding, [m.embedding for m in memories])
        scored = [
            ScoredMemory(memory=m, similarity=float(s))
            for m, s in zip(memories, sims, strict=True)
            if s >= threshold
        ]
        # Stable sorts, least significant key first.
        scored.sort(key=lambda s: s.memory.created_at, reverse=True)
        scored.sort(key=lambda s: s.memory.importance, reverse=True)
        scored.sort(key=lambda s: s.similarity, reverse=True)
        return scored[:limit]

    async def top_important(self, persona_id: str, limit: int | None = None) -> list[Memory]:
        """Return memories ranked by importance, newest first on ties."""
        limit = settings.important_memory_limit if limit is None else limit
        try:
            await self._ensure_schema()
            async with connection(self._db_path) as db:
                cursor = await db.execute(
                    f"""
                    SELECT {_COLUMNS} FROM persona_memories
                    WHERE persona_id = ?
                    ORDER BY importance DESC, created_at DESC
                    LIMIT ?
                    """,
                    (persona_id, limit),
                )
                rows = await cursor.fetchall()
        except Exception as exc:
            logger.exception("Important-memory lookup failed for persona %s", persona_id)
            raise RetrievalUnavailable(str(exc)) from exc
        return [_row_to_memory(row) for row in rows]

    async def list_recent(self, persona_id: str, limit: int = 10) -> list[Memory]:
        """Return the most recently created memories."""
        await self._ensure_schema()
        async with connection(self._db_path) as db:
            cursor = await db.execute(
                f"""
                SELECT {_COLUMNS} FROM persona_memories
                WHERE persona_id = ?
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (persona_id, limit),
            )
            rows = await cursor.fetchall()
        return [_row_to_memory(row) for row in rows]

    async def summarize(self, persona_id: str) -> MemorySummary:
        """Counts by type and source, plus the ten newest memories."""
        await self._ensure_schema()
        async with connection(self._db_path) as db:
            by_type = await self._group_counts(db, "memory_type", persona_id)
            by_source = await self._group_counts(db, "source_type", persona_id)
        return MemorySummary(
            total_memories=sum(by_type.values()),
            counts_by_type=by_type,
            counts_by_source=by_source,
            recent_memories=await self.list_recent(persona_id),
        )

    @staticmethod
    async def _group_counts(db: Any, column: str, persona_id: str) -> dict[str, int]:
        cursor = await db.execute(
            f"""
            SELECT {column}, COUNT(*) FROM persona_memories
            WHERE persona_id = ?
            GROUP BY {column}
            """,
            (persona_id,),
        )
        return {name: count for name, count in await cursor.fetchall()}

"""Memory extraction from ingested persona content.

Raw content (transcripts, captions, image descriptions, posts) is analyzed
into typed candidates, each candidate is scored and embedded, and the result
is upserted into the ``MemoryStore`` so near-duplicates collapse.

Analysis runs through Claude when an API key is configured and falls back to
keyword heuristics otherwise, or when the model's output can't be parsed.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from kindred.config import settings
from kindred.conversation.heuristics import detect_tone, topics_in
from kindred.errors import EmbeddingError, ExtractionFailure, ValidationError
from kindred.llm import client as llm_client
from kindred.memory.models import MemoryInput, MemorySource, MemoryType, normalize_content
from kindred.memory.scoring import classify_memory_type, score_importance

if TYPE_CHECKING:
    from kindred.memory.embeddings import EmbeddingProvider
    from kindred.memory.models import Memory
    from kindred.memory.store import MemoryStore

logger = logging.getLogger(__name__)

MAX_CANDIDATE_CHARS = 500
CONVERSATION_MEMORY_IMPORTANCE = 0.5

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")

ANALYSIS_RULES = """\
You analyze content about a person and extract what someone would need to \
remember to speak as them. Return JSON only, with these keys, each an array \
of short standalone sentences written in the third person:
facts, experiences, preferences, relationships, skills, emotions, topics, \
people, locations.
Omit anything speculative. Use empty arrays when nothing applies."""

# JSON key → memory type
_CATEGORY_TYPES: dict[str, MemoryType] = {
    "facts": MemoryType.FACT,
    "experiences": MemoryType.EXPERIENCE,
    "preferences": MemoryType.PREFERENCE,
    "relationships": MemoryType.RELATIONSHIP,
    "skills": MemoryType.SKILL,
}


# -- Data structures ---------------------------------------------------------


@dataclass
class Candidate:
    content: str
    type: MemoryType
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ContentItem:
    """One piece of content queued for batch extraction."""

    content: str
    source_type: str = "text"
    source_ref: str | None = None


@dataclass
class BatchResult:
    processed: int = 0
    memories_extracted: int = 0
    failed: int = 0


class ContentAnalyzer(Protocol):
    async def analyze(self, text: str, source: MemorySource) -> list[Candidate]: ...


# -- Heuristic analysis ------------------------------------------------------


def split_sentences(text: str, min_words: int | None = None) -> list[str]:
    """Split into sentences, dropping fragments shorter than *min_words*."""
    min_words = settings.min_memory_words if min_words is None else min_words
    sentences = []
    for raw in _SENTENCE_SPLIT.split(text):
        sentence = normalize_content(raw)
        if len(sentence.split()) >= min_words:
            sentences.append(sentence[:MAX_CANDIDATE_CHARS])
    return sentences


class HeuristicContentAnalyzer:
    """Sentence-level keyword classification. No network calls."""

    async def analyze(self, text: str, source: MemorySource) -> list[Candidate]:
        candidates = []
        for sentence in split_sentences(text):
            metadata: dict[str, Any] = {"analyzer": "heuristic"}
            topics = topics_in(sentence)
            if topics:
                metadata["topics"] = topics
            tone = detect_tone(sentence)
            if tone != "neutral":
                metadata["sentiment"] = tone
            candidates.append(
                Candidate(content=sentence, type=classify_memory_type(sentence), metadata=metadata)
            )
        return candidates


# -- LLM analysis ------------------------------------------------------------


def build_analysis_prompt(text: str, source: MemorySource) -> str:
    """Build the user-message content sent to the analysis model."""
    return (
        f"<content source=\"{source}\">\n{text}\n</content>\n\n"
        "Extract structured information about this person. Return JSON only."
    )


def parse_analysis_result(text: str) -> dict[str, list[str]] | None:
    """Parse the analysis model's JSON output. Returns None if unparsable."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        # Try to extract JSON from markdown fences
        start = text.find("{")
        end = text.rfind("}") + 1
        if "```" not in text or start < 0 or end <= start:
            logger.warning("Failed to parse analysis JSON")
            return None
        try:
            data = json.loads(text[start:end])
        except json.JSONDecodeError:
            logger.warning("Failed to parse analysis JSON")
            return None

    if not isinstance(data, dict):
        return None
    result: dict[str, list[str]] = {}
    for key, value in data.items():
        if isinstance(value, list):
            result[key] = [str(v).strip() for v in value if str(v).strip()]
    return result


def candidates_from_analysis(analysis: dict[str, list[str]]) -> list[Candidate]:
    """Turn parsed analysis into candidates; emotions collapse into one memory."""
    topics = analysis.get("topics", [])
    people = analysis.get("people", [])
    locations = analysis.get("locations", [])

    candidates = []
    for key, memory_type in _CATEGORY_TYPES.items():
        for item in analysis.get(key, []):
            metadata: dict[str, Any] = {"analyzer": "llm"}
            if topics:
                metadata["topics"] = topics
            if memory_type is MemoryType.RELATIONSHIP and people:
                metadata["people"] = people
            if memory_type in (MemoryType.FACT, MemoryType.EXPERIENCE) and locations:
                metadata["location"] = locations[0]
            candidates.append(
                Candidate(
                    content=normalize_content(item)[:MAX_CANDIDATE_CHARS],
                    type=memory_type,
                    metadata=metadata,
                )
            )

    emotions = analysis.get("emotions", [])
    if emotions:
        candidates.append(
            Candidate(
                content=f"Emotional context: {', '.join(emotions)}",
                type=MemoryType.EMOTION,
                metadata={"analyzer": "llm", "sentiment": emotions[0]},
            )
        )
    return [c for c in candidates if c.content]


class LLMContentAnalyzer:
    """Claude-backed analysis with a heuristic fallback."""

    def __init__(self, model: str | None = None) -> None:
        self._model = model or settings.extraction_model
        self._fallback = HeuristicContentAnalyzer()

    async def analyze(self, text: str, source: MemorySource) -> list[Candidate]:
        try:
            raw = await llm_client.complete_text(
                [{"role": "user", "content": build_analysis_prompt(text, source)}],
                system=ANALYSIS_RULES,
                model=self._model,
                temperature=0.3,
            )
        except Exception:
            logger.exception("Content analysis call failed; using heuristics")
            return await self._fallback.analyze(text, source)

        analysis = parse_analysis_result(raw)
        if analysis is None:
            return await self._fallback.analyze(text, source)
        return candidates_from_analysis(analysis)


def default_analyzer() -> ContentAnalyzer:
    if settings.llm_extraction_enabled and settings.llm_enabled:
        return LLMContentAnalyzer()
    return HeuristicContentAnalyzer()


# -- Extraction pipeline -----------------------------------------------------


class MemoryExtractor:
    """Turns raw content into stored, deduplicated memories."""

    def __init__(
        self,
        store: MemoryStore,
        embedder: EmbeddingProvider,
        analyzer: ContentAnalyzer | None = None,
        dedup_threshold: float | None = None,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._analyzer = analyzer or default_analyzer()
        self._dedup_threshold = (
            settings.memory_dedup_threshold if dedup_threshold is None else dedup_threshold
        )

    async def extract(
        self,
        persona_id: str,
        raw_content: str,
        source_type: str,
        source_ref: str | None = None,
        *,
        importance_cap: float | None = None,
        extra_metadata: dict[str, Any] | None = None,
    ) -> list[Memory]:
        """Analyze, score, embed and store memories from one content item.

        Raises:
            ExtractionFailure: unknown source type, or a candidate could not
                be embedded or stored. Candidates stored before the failure
                stay stored.
        """
        try:
            source = MemorySource(source_type)
        except ValueError as exc:
            msg = f"Unknown source type: {source_type!r}"
            raise ExtractionFailure(msg) from exc

        text = normalize_content(raw_content)
        if not text:
            return []

        candidates = await self._analyzer.analyze(text, source)
        stored: dict[str, Memory] = {}
        for candidate in candidates:
            importance = score_importance(candidate.content, candidate.type, source)
            if importance_cap is not None:
                importance = min(importance, importance_cap)
            try:
                embedding = await self._embedder.embed(candidate.content)
                memory = await self._store.upsert(
                    MemoryInput(
                        persona_id=persona_id,
                        content=candidate.content,
                        type=candidate.type,
                        source=source,
                        source_ref=source_ref,
                        importance=importance,
                        embedding=embedding,
                        metadata={**candidate.metadata, **(extra_metadata or {})},
                    ),
                    dedup_threshold=self._dedup_threshold,
                )
            except (EmbeddingError, ValidationError) as exc:
                msg = f"Could not store candidate {candidate.content[:40]!r}: {exc}"
                raise ExtractionFailure(msg) from exc
            stored[memory.id] = memory

        logger.info(
            "Extracted %d memories for persona %s from %s content",
            len(stored),
            persona_id,
            source,
        )
        return list(stored.values())

    async def process_batch(self, persona_id: str, items: list[ContentItem]) -> BatchResult:
        """Extract from every item; a failing item is logged and skipped."""
        result = BatchResult()
        for item in items:
            try:
                memories = await self.extract(
                    persona_id, item.content, item.source_type, item.source_ref
                )
            except Exception:
                logger.exception(
                    "Extraction failed for %s item (ref=%s); skipping",
                    item.source_type,
                    item.source_ref,
                )
                result.failed += 1
                continue
            result.processed += 1
            result.memories_extracted += len(memories)
        logger.info(
            "Batch for persona %s: %d processed, %d failed, %d memories",
            persona_id,
            result.processed,
            result.failed,
            result.memories_extracted,
        )
        return result

    async def extract_from_exchange(
        self,
        persona_id: str,
        persona_name: str,
        user_message: str,
        persona_reply: str,
    ) -> list[Memory]:
        """Background task: learn from a finished exchange.

        Memories learned this way are capped at a modest importance so that
        conversation never outranks the persona's own training content.
        Never raises.
        """
        text = f"User: {user_message}\n{persona_name}: {persona_reply}"
        try:
            return await self.extract(
                persona_id,
                text,
                MemorySource.TEXT,
                importance_cap=CONVERSATION_MEMORY_IMPORTANCE,
                extra_metadata={
                    "conversation_context": True,
                    "user_message": user_message[:100],
                },
            )
        except Exception:
            logger.exception("Conversation memory extraction failed (non-fatal)")
            return []

"""Tests for context bundle assembly."""

from kindred.conversation.context import ConversationContext, Speaker, Turn
from kindred.llm.prompt import (
    MEMORY_SNIPPET_CHARS,
    ContextBundle,
    dedupe_memories,
    format_memories,
)
from kindred.memory.models import Memory, MemorySource, MemoryType


def _memory(memory_id: str, content: str, memory_type: MemoryType = MemoryType.FACT) -> Memory:
    return Memory(
        id=memory_id,
        persona_id="grandma",
        content=content,
        type=memory_type,
        source=MemorySource.TEXT,
        importance=0.5,
        created_at="2024-01-01T00:00:00+00:00",
        updated_at="2024-01-01T00:00:00+00:00",
    )


def _context(*turns: tuple[Speaker, str]) -> ConversationContext:
    ctx = ConversationContext(window_size=10)
    for speaker, text in turns:
        ctx.append(Turn(speaker, text))
    return ctx


# -- memories ----------------------------------------------------------------


def test_dedupe_by_id_and_content() -> None:
    memories = [
        _memory("mem_1", "Loves lemon cake"),
        _memory("mem_1", "Loves lemon cake"),
        _memory("mem_2", "loves lemon cake"),
        _memory("mem_3", "Grew up in Iowa"),
    ]
    assert [m.id for m in dedupe_memories(memories)] == ["mem_1", "mem_3"]


def test_format_memories_empty() -> None:
    assert format_memories([]) == ""


def test_format_memories_truncates_long_content() -> None:
    text = format_memories([_memory("mem_1", "x" * 300, MemoryType.EXPERIENCE)])

    lines = text.splitlines()
    assert lines[0] == "RELEVANT MEMORIES:"
    assert lines[1].startswith("- [experience] ")
    assert lines[1].endswith("...")
    assert len(lines[1]) < 300 and "x" * MEMORY_SNIPPET_CHARS in lines[1]


# -- system prompt -----------------------------------------------------------


def test_system_prompt_includes_persona_and_context(persona) -> None:
    ctx = _context((Speaker.USER, "I miss the lake"))
    ctx.emotional_tone = "sad"
    ctx.current_topic = "travel"
    bundle = ContextBundle.build(
        persona,
        ctx,
        "I miss the lake",
        [_memory("mem_1", "Spent every August at Clear Lake", MemoryType.EXPERIENCE)],
        flow="emotional_support",
    )

    prompt = bundle.system_prompt()

    assert "Grandma Rose" in prompt
    assert "grandmother" in prompt
    assert "Oh, sweetheart" in prompt
    assert "Emotional tone: sad" in prompt
    assert "Current topic: travel" in prompt
    assert "emotional support" in prompt
    assert "- [experience] Spent every August at Clear Lake" in prompt


def test_system_prompt_without_memories(persona) -> None:
    bundle = ContextBundle.build(persona, _context(), "Hello", [])
    assert "RELEVANT MEMORIES" not in bundle.system_prompt()


# -- messages ----------------------------------------------------------------


def test_messages_end_with_current_utterance(persona) -> None:
    ctx = _context(
        (Speaker.USER, "Hi Grandma"),
        (Speaker.PERSONA, "Oh, sweetheart, hello!"),
        (Speaker.USER, "Do you remember the lake?"),
    )
    bundle = ContextBundle.build(persona, ctx, "Do you remember the lake?", [])

    assert bundle.messages() == [
        {"role": "user", "content": "Hi Grandma"},
        {"role": "assistant", "content": "Oh, sweetheart, hello!"},
        {"role": "user", "content": "Do you remember the lake?"},
    ]


def test_messages_skip_leading_persona_turns_and_merge(persona) -> None:
    ctx = _context(
        (Speaker.PERSONA, "Welcome back"),
        (Speaker.USER, "Hi"),
        (Speaker.USER, "Are you there?"),
    )
    bundle = ContextBundle.build(persona, ctx, "Are you there?", [])

    messages = bundle.messages()
    assert messages[0]["role"] == "user"
    assert len(messages) == 1
    assert messages[0]["content"] == "Hi\nAre you there?"


def test_messages_mark_interruption(persona) -> None:
    ctx = _context(
        (Speaker.USER, "Tell me about the farm"),
        (Speaker.PERSONA, "Well, it was a big old place"),
    )
    bundle = ContextBundle.build(persona, ctx, "Actually, tell me about Joe", [], interrupted=True)

    assert bundle.messages()[-1] == {
        "role": "user",
        "content": "[User interrupted to say: Actually, tell me about Joe]",
    }


def test_build_limits_history(persona) -> None:
    ctx = _context(*[(Speaker.USER, f"line {i}") for i in range(6)])
    bundle = ContextBundle.build(persona, ctx, "line 5", [], max_turns=2)
    assert [t.text for t in bundle.turns] == ["line 4", "line 5"]

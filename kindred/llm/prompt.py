"""Context bundle assembly: persona + recent turns + recalled memories."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from kindred.conversation.context import Speaker

if TYPE_CHECKING:
    from kindred.conversation.context import ConversationContext, Turn
    from kindred.memory.models import Memory
    from kindred.persona import PersonaProfile

MEMORY_SNIPPET_CHARS = 200

FLOW_INSTRUCTIONS: dict[str, str] = {
    "memory_sharing": (
        "The user wants to hear memories. Share a relevant memory or story "
        "from your past together."
    ),
    "emotional_support": (
        "The user needs emotional support. Be extra caring, understanding, "
        "and offer comfort."
    ),
    "topic_change": (
        "The conversation topic is changing. Acknowledge the shift and engage "
        "with the new topic."
    ),
    "continue": "Continue the natural flow of conversation.",
}


def _pace_label(pace: float) -> str:
    if pace > 1:
        return "fast"
    if pace < 1:
        return "slow"
    return "normal"


def dedupe_memories(memories: list[Memory]) -> list[Memory]:
    """Drop repeated ids and repeated content, keeping first occurrence."""
    seen_ids: set[str] = set()
    seen_content: set[str] = set()
    unique = []
    for memory in memories:
        key = memory.content.casefold()
        if memory.id in seen_ids or key in seen_content:
            continue
        seen_ids.add(memory.id)
        seen_content.add(key)
        unique.append(memory)
    return unique


def format_memories(memories: list[Memory]) -> str:
    """Format recalled memories for the system prompt."""
    if not memories:
        return ""

    lines = ["RELEVANT MEMORIES:"]
    for memory in memories:
        snippet = memory.content
        if len(snippet) > MEMORY_SNIPPET_CHARS:
            snippet = snippet[:MEMORY_SNIPPET_CHARS].rstrip() + "..."
        lines.append(f"- [{memory.type}] {snippet}")
    return "\n".join(lines)


@dataclass
class ContextBundle:
    """Everything the generation provider sees for one reply."""

    persona: PersonaProfile
    user_utterance: str
    turns: list[Turn] = field(default_factory=list)
    memories: list[Memory] = field(default_factory=list)
    current_topic: str = "general"
    emotional_tone: str = "neutral"
    speaking_pace: float = 1.0
    flow: str = "continue"
    interrupted: bool = False

    @classmethod
    def build(
        cls,
        persona: PersonaProfile,
        context: ConversationContext,
        user_utterance: str,
        memories: list[Memory],
        *,
        flow: str = "continue",
        interrupted: bool = False,
        max_turns: int | None = None,
    ) -> ContextBundle:
        return cls(
            persona=persona,
            user_utterance=user_utterance,
            turns=context.last_turns(max_turns),
            memories=dedupe_memories(memories),
            current_topic=context.current_topic,
            emotional_tone=context.emotional_tone,
            speaking_pace=context.speaking_pace,
            flow=flow,
            interrupted=interrupted,
        )

    def system_prompt(self) -> str:
        p = self.persona
        phrases = ", ".join(p.common_phrases) if p.common_phrases else "speak naturally"
        recent = " → ".join(t.text for t in self.turns[-3:])
        sections = [
            f"You are {p.name}, speaking as yourself in a real-time conversation. "
            f"You are their {p.relationship}.",
            f"PERSONALITY: {p.personality_traits or 'Warm, authentic and engaging.'}",
            "CURRENT CONVERSATION CONTEXT:\n"
            f"- Emotional tone: {self.emotional_tone}\n"
            f"- Current topic: {self.current_topic}\n"
            f"- Speaking pace: {_pace_label(self.speaking_pace)}\n"
            f"- Recent conversation: {recent or '(just started)'}",
            f"CONVERSATION FLOW: {FLOW_INSTRUCTIONS.get(self.flow, FLOW_INSTRUCTIONS['continue'])}",
            "SPEAKING STYLE:\n"
            f"- Use these phrases naturally: {phrases}\n"
            "- Match the user's emotional tone and energy level\n"
            "- Keep responses conversational (1-3 sentences)\n"
            "- Never say \"according to my memories\"; just speak naturally",
        ]
        memory_text = format_memories(self.memories)
        if memory_text:
            sections.append(memory_text)
        return "\n\n".join(sections)

    def messages(self) -> list[dict[str, str]]:
        """Alternating user/assistant messages ending with the current utterance.

        Consecutive turns by the same speaker are merged and any leading
        persona turns are dropped, since the API expects a user turn first.
        """
        current = self.user_utterance
        if self.interrupted:
            current = f"[User interrupted to say: {self.user_utterance}]"

        history = list(self.turns)
        if history and history[-1].speaker is Speaker.USER and history[-1].text == self.user_utterance:
            history = history[:-1]

        messages: list[dict[str, str]] = []
        for turn in history:
            role = "user" if turn.speaker is Speaker.USER else "assistant"
            if not messages and role == "assistant":
                continue
            if messages and messages[-1]["role"] == role:
                messages[-1]["content"] += f"\n{turn.text}"
            else:
                messages.append({"role": role, "content": turn.text})

        if messages and messages[-1]["role"] == "user":
            messages[-1]["content"] += f"\n{current}"
        else:
            messages.append({"role": "user", "content": current})
        return messages

"""Live conversation state: transcription events, context and sessions."""

from kindred.conversation.context import ConversationContext, Speaker, Turn
from kindred.conversation.session import ConversationSession
from kindred.conversation.tracker import ConversationContextTracker

__all__ = [
    "ConversationContext",
    "ConversationContextTracker",
    "ConversationSession",
    "Speaker",
    "Turn",
]

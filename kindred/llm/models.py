"""Friendly model names for the Anthropic API."""

import logging

logger = logging.getLogger(__name__)

MODEL_MAP: dict[str, str] = {
    "haiku": "claude-haiku-4-5-20251001",
    "sonnet": "claude-sonnet-4-5-20250929",
    "opus": "claude-opus-4-1-20250805",
}

# Reverse lookup: full model string → friendly name
FRIENDLY_NAMES: dict[str, str] = {v: k for k, v in MODEL_MAP.items()}


def resolve_model(name_or_id: str, default: str = "sonnet") -> str:
    """Resolve a friendly name or model ID to a full model ID.

    Unknown friendly names fall back to *default*. Anything that already
    looks like a full ``claude-`` ID is passed through untouched.
    """
    if name_or_id in MODEL_MAP:
        return MODEL_MAP[name_or_id]
    if name_or_id in FRIENDLY_NAMES or name_or_id.startswith("claude-"):
        return name_or_id
    logger.warning("Unknown model '%s', using %s", name_or_id, default)
    return MODEL_MAP[default]


def friendly(model_id: str) -> str:
    """Return the friendly name for a model ID, or the ID itself."""
    return FRIENDLY_NAMES.get(model_id, model_id)

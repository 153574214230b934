"""Tests for friendly model names."""

from kindred.llm.models import MODEL_MAP, friendly, resolve_model


def test_resolve_friendly_name() -> None:
    assert resolve_model("haiku") == MODEL_MAP["haiku"]


def test_resolve_passes_full_ids_through() -> None:
    assert resolve_model("claude-3-7-sonnet-20250219") == "claude-3-7-sonnet-20250219"


def test_resolve_unknown_uses_default() -> None:
    assert resolve_model("gpt-4") == MODEL_MAP["sonnet"]
    assert resolve_model("gpt-4", default="haiku") == MODEL_MAP["haiku"]


def test_friendly() -> None:
    assert friendly(MODEL_MAP["opus"]) == "opus"
    assert friendly("claude-unknown") == "claude-unknown"

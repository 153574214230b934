"""Tests for Settings configuration model."""

from pathlib import Path

from kindred.config import Settings


class TestDefaults:
    def test_default_chat_model(self):
        s = Settings()
        assert s.chat_model == "sonnet"

    def test_default_extraction_model(self):
        s = Settings()
        assert s.extraction_model == "haiku"

    def test_default_database_path(self):
        s = Settings()
        assert s.database_path == Path("data/kindred.db")

    def test_default_retrieval_settings(self):
        s = Settings()
        assert s.memory_match_threshold == 0.7
        assert s.memory_match_count == 10
        assert s.important_memory_limit == 5

    def test_default_context_window(self):
        s = Settings()
        assert s.context_window_size == 10

    def test_tts_disabled_by_default(self):
        s = Settings()
        assert s.tts_enabled is False

    def test_env_vars_ignored_under_pytest(self, monkeypatch):
        monkeypatch.setenv("CHAT_MODEL", "opus")
        s = Settings()
        assert s.chat_model == "sonnet"


class TestProviderFlags:
    def test_llm_disabled_without_key(self):
        assert Settings(anthropic_api_key="").llm_enabled is False

    def test_llm_disabled_with_blank_key(self):
        assert Settings(anthropic_api_key="   ").llm_enabled is False

    def test_llm_enabled_with_key(self):
        assert Settings(anthropic_api_key="sk-ant-test").llm_enabled is True

    def test_openai_enabled_with_key(self):
        assert Settings(openai_api_key="sk-test").openai_enabled is True
        assert Settings().openai_enabled is False


class TestOverrides:
    def test_init_values_win(self):
        s = Settings(memory_match_threshold=0.5, generation_timeout_seconds=2.0)
        assert s.memory_match_threshold == 0.5
        assert s.generation_timeout_seconds == 2.0

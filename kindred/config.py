"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Kindred configuration. All values come from environment variables."""

    # Anthropic (reply generation and LLM-assisted extraction)
    anthropic_api_key: str = Field(default="")
    chat_model: str = Field(default="sonnet")
    extraction_model: str = Field(default="haiku")
    generation_max_tokens: int = Field(default=300)
    generation_temperature: float = Field(default=0.8)
    generation_timeout_seconds: float = Field(default=15.0)

    # OpenAI (embeddings and speech)
    openai_api_key: str = Field(default="")
    embedding_model: str = Field(default="text-embedding-3-small")
    embedding_dimensions: int = Field(default=1536)
    tts_enabled: bool = Field(default=False)
    tts_model: str = Field(default="tts-1-hd")
    speech_timeout_seconds: float = Field(default=10.0)
    audio_dir: Path = Field(default=Path("data/audio"))

    # Database
    database_path: Path = Field(default=Path("data/kindred.db"))

    # Turso (hosted libSQL); when set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Memory retrieval
    memory_match_threshold: float = Field(default=0.7)
    memory_match_count: int = Field(default=10)
    memory_dedup_threshold: float = Field(default=0.95)
    important_memory_limit: int = Field(default=5)

    # Memory extraction
    llm_extraction_enabled: bool = Field(default=True)
    min_memory_words: int = Field(default=4)
    conversation_memory_enabled: bool = Field(default=True)

    # Conversation
    context_window_size: int = Field(default=10)
    tone_confidence_floor: float = Field(default=0.5)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    @property
    def llm_enabled(self) -> bool:
        """True when an Anthropic key is configured."""
        return bool(self.anthropic_api_key.strip())

    @property
    def openai_enabled(self) -> bool:
        """True when an OpenAI key is configured."""
        return bool(self.openai_api_key.strip())


settings = Settings()

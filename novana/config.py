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
    """Novana configuration. All values come from environment variables."""

    # Ollama (text generation)
    ollama_url: str = Field(default="http://127.0.0.1:11434")
    ai_chat_model: str = Field(default="llama3:8b")
    ai_fallback_models: str = Field(default="llama3.2:3b,llama3.2:1b")
    ai_deadline_seconds: float = Field(default=30.0, gt=0)
    ai_max_tokens: int = Field(default=120, ge=1)
    ai_keep_alive: str = Field(default="15m")

    # Sampling
    ai_temperature: float = Field(default=0.6)
    ai_top_p: float = Field(default=0.9)
    ai_top_k: int = Field(default=40)
    ai_repeat_penalty: float = Field(default=1.1)

    # Reply shaping
    reply_max_words: int = Field(default=120, ge=1)

    # Chroma (memory retrieval)
    chroma_url: str = Field(default="http://127.0.0.1:8000")
    chroma_collection: str = Field(default="novana_memories")
    chunk_top_k: int = Field(default=3, ge=1)

    # Context
    max_context_chars: int = Field(default=900, ge=0)
    history_turns: int = Field(default=12, ge=1)

    # Database
    database_path: Path = Field(default=Path("data/novana.db"))

    # Turso (hosted libSQL); when set, overrides database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # HTTP server
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=5000)
    api_key: str = Field(default="")

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

    def get_fallback_models(self) -> list[str]:
        """Parse AI_FALLBACK_MODELS into an ordered list of model names."""
        if not self.ai_fallback_models.strip():
            return []
        return [name.strip() for name in self.ai_fallback_models.split(",") if name.strip()]

    def get_candidate_models(self) -> list[str]:
        """Primary chat model followed by the fallbacks, in trial order."""
        primary = self.ai_chat_model.strip()
        models = [primary] if primary else []
        for name in self.get_fallback_models():
            if name not in models:
                models.append(name)
        return models


settings = Settings()

from __future__ import annotations

from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_host: str = Field(default="127.0.0.1", alias="APP_HOST")
    app_port: int = Field(default=8765, alias="APP_PORT")
    # NOTE: Keep as string to avoid pydantic-settings JSON-decoding complex types from .env.
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")
    db_url: str = Field(default="sqlite+aiosqlite:///./memory.db", alias="DB_URL")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    memory_max_memories: int = Field(default=5, alias="MEMORY_MAX_MEMORIES")
    memory_max_global: int = Field(default=2, alias="MEMORY_MAX_GLOBAL")
    personal_memories_enabled: bool = Field(default=True, alias="PERSONAL_MEMORIES_ENABLED")
    session_ttl_sec: int = Field(default=86400, alias="SESSION_TTL_SEC")
    session_max_entries: int = Field(default=1000, alias="SESSION_MAX_ENTRIES")
    public_base_url: str = Field(default="http://localhost:8765", alias="PUBLIC_BASE_URL")
    openai_base_url: str = Field(default="https://api.openai.com", alias="OPENAI_BASE_URL")
    embed_provider: str = Field(default="deterministic", alias="EMBED_PROVIDER")
    embed_model: str = Field(default="deterministic-v1", alias="EMBED_MODEL")
    embed_dim: int = Field(default=384, alias="EMBED_DIM")
    embed_openai_api_key: str = Field(default="", alias="EMBED_OPENAI_API_KEY")

    model_config = SettingsConfigDict(env_file=(".env", "backend/.env"), extra="ignore")

    def parsed_cors_origins(self) -> List[str]:
        """Return CORS origins parsed from env var.

        Supports comma-delimited strings (recommended) and JSON list strings.
        """

        raw = (self.cors_origins or "").strip()
        if not raw:
            return []
        if raw.startswith("["):
            try:
                import json

                value: Any = json.loads(raw)
                if isinstance(value, list):
                    items = [str(item).strip() for item in value]
                    return [item for item in items if item]
            except ValueError:
                pass
        return [item.strip() for item in raw.split(",") if item.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()

"""Application configuration management."""

from functools import lru_cache

from pydantic_settings import SettingsConfigDict

from intake_ai.config.llm import LLMSettings
from intake_ai.config.pipeline import PipelineSettings
from intake_ai.config.settings import ENV_FILE, CoreSettings


class Settings(CoreSettings, LLMSettings, PipelineSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get application settings instance.

    Returns:
        Settings: Application settings loaded from environment
    """
    return Settings()


__all__ = ["Settings", "CoreSettings", "LLMSettings", "PipelineSettings", "get_settings"]

"""Text-generation provider settings."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from intake_ai.config.settings import ENV_FILE


class LLMSettings(BaseSettings):
    """LLM provider settings."""

    llm_provider: str = Field(
        default="openrouter",
        description="Provider for classification, reasoning, mapping and drafting: 'gemini' or 'openrouter'"
    )
    extraction_llm_provider: Optional[str] = Field(
        default=None,
        description="Optional distinct provider for entity extraction (defaults to llm_provider)"
    )

    # Gemini API Configuration
    gemini_api_key: str = Field(default="", description="Gemini API key")
    gemini_model: str = Field(
        default="gemini-2.0-flash",
        description="Gemini model name"
    )

    # OpenRouter API Configuration
    openrouter_api_key: str = Field(
        default="",
        description="OpenRouter API key (required if llm_provider='openrouter')"
    )
    openrouter_api_url: str = Field(
        default="https://openrouter.ai/api/v1/chat/completions",
        description="OpenRouter API base URL"
    )
    openrouter_model: str = Field(
        default="openai/gpt-4.1",
        description="OpenRouter model name"
    )

    # Transport behaviour
    llm_max_retries: int = Field(
        default=1,
        ge=1,
        description="Attempts per external call (1 disables retry)"
    )
    llm_retry_delay: int = Field(
        default=2,
        ge=0,
        description="Base delay in seconds for exponential backoff between attempts"
    )

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

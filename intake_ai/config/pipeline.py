"""Extraction pipeline policy settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from intake_ai.config.settings import ENV_FILE


class PipelineSettings(BaseSettings):
    """Thresholds, caps and timeouts shared by every pipeline stage."""

    service_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Default timeout for a single text-generation call"
    )
    mapping_acceptance_threshold: float = Field(
        default=60.0,
        ge=0,
        le=100,
        description="Mappings below this confidence are demoted to suggestions"
    )
    ambiguity_threshold: float = Field(
        default=80.0,
        ge=0,
        le=100,
        description="Entities below this confidence are sent for reasoning"
    )
    classification_max_chars: int = Field(
        default=2000,
        gt=0,
        description="Prefix of the document sent to the classifier"
    )
    reasoning_excerpt_chars: int = Field(
        default=1500,
        gt=0,
        description="Prefix of the document sent with ambiguous entities"
    )
    mapping_excerpt_chars: int = Field(
        default=2000,
        gt=0,
        description="Prefix of the document sent for mapping generation"
    )
    cost_per_service_call: float = Field(
        default=5.0,
        ge=0,
        description="Estimated cost units (cents) charged per external call"
    )

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

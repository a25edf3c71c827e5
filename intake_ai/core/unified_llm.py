"""Unified text-generation client factory.

Every pipeline stage talks to the external text-generation service through
one shape: ``await client.generate_content(contents, system_instruction,
generation_config) -> str``. This module selects the provider behind that
shape from configuration. Clients are built by the process startup routine
and injected into the stages; nothing here is created at import time.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from intake_ai.core.exceptions import ConfigurationError
from intake_ai.core.gemini_client import GeminiClient
from intake_ai.core.openrouter_client import OpenRouterClient
from intake_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    GEMINI = "gemini"
    OPENROUTER = "openrouter"


class UnifiedLLMClient:
    """Provider-agnostic text-generation client."""

    def __init__(
        self,
        provider: Union[str, LLMProvider],
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: float = 60,
        max_retries: int = 1,
        retry_delay: float = 2,
    ):
        """Initialize unified LLM client.

        Args:
            provider: LLM provider to use ("gemini" or "openrouter")
            api_key: API key for the provider
            model: Model name to use
            base_url: Optional base URL (OpenRouter only)
            timeout: Request timeout in seconds
            max_retries: Maximum attempts per request
            retry_delay: Base delay for exponential backoff
        """
        try:
            self.provider = LLMProvider(provider)
        except ValueError as e:
            raise ConfigurationError(f"Unsupported provider: {provider}", original_error=e)

        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries

        if self.provider == LLMProvider.GEMINI:
            self.client = GeminiClient(
                api_key=api_key,
                model=model,
                timeout=timeout,
                max_retries=max_retries,
                retry_delay=retry_delay,
            )
        else:
            self.client = OpenRouterClient(
                api_key=api_key,
                model=model,
                base_url=base_url or "https://openrouter.ai/api/v1/chat/completions",
                timeout=timeout,
                max_retries=max_retries,
                retry_delay=retry_delay,
            )

        LOGGER.info(f"Initialized unified LLM with {self.provider.value} provider (model: {model})")

    async def generate_content(
        self,
        contents: Union[str, List[Union[str, Dict[str, Any]]]],
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content using the configured provider.

        Raises:
            APIClientError: If generation fails
        """
        return await self.client.generate_content(
            contents=contents,
            system_instruction=system_instruction,
            generation_config=generation_config,
        )


def create_llm_client(
    provider: Union[str, LLMProvider],
    api_key: str,
    model: str,
    base_url: Optional[str] = None,
    timeout: float = 60,
    max_retries: int = 1,
    retry_delay: float = 2,
) -> UnifiedLLMClient:
    """Factory function to create a unified LLM client."""
    return UnifiedLLMClient(
        provider=provider,
        api_key=api_key,
        model=model,
        base_url=base_url,
        timeout=timeout,
        max_retries=max_retries,
        retry_delay=retry_delay,
    )


def create_llm_client_from_settings(settings: Any, provider: Optional[str] = None) -> UnifiedLLMClient:
    """Create a unified LLM client from application settings.

    Selects the API key, model and URL that belong to ``provider`` (or
    ``settings.llm_provider`` when omitted).

    Args:
        settings: Application settings
        provider: Optional provider override

    Returns:
        UnifiedLLMClient instance

    Raises:
        ConfigurationError: If the provider is unknown or its API key is missing
    """
    selected = (provider or settings.llm_provider or "").strip().lower()
    try:
        provider_enum = LLMProvider(selected)
    except ValueError as e:
        raise ConfigurationError(f"Unsupported provider: {selected!r}", original_error=e)

    if provider_enum == LLMProvider.GEMINI:
        api_key, model, base_url = settings.gemini_api_key, settings.gemini_model, None
    else:
        api_key, model, base_url = (
            settings.openrouter_api_key,
            settings.openrouter_model,
            settings.openrouter_api_url,
        )

    if not api_key or not api_key.strip():
        raise ConfigurationError(
            f"{provider_enum.value}_api_key required when provider='{provider_enum.value}'. "
            f"Please set {provider_enum.value.upper()}_API_KEY environment variable."
        )

    return create_llm_client(
        provider=provider_enum,
        api_key=api_key.strip(),
        model=model,
        base_url=base_url,
        timeout=settings.service_timeout_seconds,
        max_retries=settings.llm_max_retries,
        retry_delay=settings.llm_retry_delay,
    )

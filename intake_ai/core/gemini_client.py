"""Google Gemini text-generation client."""

import asyncio
from typing import Any, Dict, List, Optional, Union

from google import genai
from google.genai import errors, types

from intake_ai.core.exceptions import APIClientError
from intake_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

# generation_config keys copied onto GenerateContentConfig as-is
PASSTHROUGH_CONFIG_KEYS = ("temperature", "max_output_tokens", "response_mime_type")


class GeminiClient:
    """Text-generation client backed by the google-genai SDK.

    Server-side failures are retried with exponential backoff; request errors
    (4xx) are raised on the first attempt.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        timeout: float = 60,
        max_retries: int = 1,
        retry_delay: float = 2,
    ):
        """Initialize Gemini client.

        Args:
            api_key: Gemini API key
            model: Model name to use
            timeout: Request timeout in seconds, passed to the SDK transport
            max_retries: Maximum attempts per request
            retry_delay: Base delay for exponential backoff
        """
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

        try:
            self.client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(timeout * 1000)),
            )
            LOGGER.info(f"Initialized Gemini client with model {self.model}")
        except Exception as e:
            LOGGER.error(f"Failed to initialize Gemini client: {e}")
            raise APIClientError(f"Failed to initialize Gemini client: {e}", original_error=e)

    def build_config(
        self,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> types.GenerateContentConfig:
        """Translate the provider-neutral generation config for the SDK."""
        options: Dict[str, Any] = {"temperature": 0.0}
        for key in PASSTHROUGH_CONFIG_KEYS:
            if generation_config and key in generation_config:
                options[key] = generation_config[key]
        if system_instruction:
            options["system_instruction"] = system_instruction
        return types.GenerateContentConfig(**options)

    async def generate_content(
        self,
        contents: Union[str, List[Union[str, Dict[str, Any]]]],
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content using the Gemini model.

        Returns:
            Generated text, or "" when the model returned no text

        Raises:
            APIClientError: If every attempt fails or the request is rejected
        """
        config = self.build_config(system_instruction, generation_config)

        for attempt in range(self.max_retries):
            try:
                response = await self.client.aio.models.generate_content(
                    model=self.model,
                    contents=contents,
                    config=config,
                )
            except errors.ClientError as e:
                LOGGER.error(f"Gemini rejected the request: {e}")
                raise APIClientError(f"Gemini request rejected: {e}", original_error=e)
            except Exception as e:
                LOGGER.warning(
                    f"Gemini API error (Attempt {attempt + 1}/{self.max_retries}): {e}"
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))
                    continue
                raise APIClientError(f"Gemini generation failed: {e}", original_error=e)

            if not response.text:
                LOGGER.warning(
                    "Empty response from Gemini",
                    extra={"finish_reason": _finish_reason(response)}
                )
                return ""
            return response.text

        raise APIClientError("Gemini generation failed")


def _finish_reason(response: Any) -> Optional[str]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    reason = getattr(candidates[0], "finish_reason", None)
    return str(reason) if reason is not None else None

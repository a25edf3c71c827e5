"""OpenRouter chat-completions client."""

from typing import Any, Dict, List, Optional, Union

from intake_ai.core.base_llm_client import BaseLLMClient
from intake_ai.core.exceptions import APIClientError
from intake_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

JSON_ONLY_INSTRUCTION = "IMPORTANT: Respond with valid JSON only."


class OpenRouterClient:
    """Text-generation client backed by OpenRouter's OpenAI-compatible API."""

    def __init__(
        self,
        api_key: str,
        model: str = "openai/gpt-4.1",
        base_url: str = "https://openrouter.ai/api/v1/chat/completions",
        timeout: float = 60,
        max_retries: int = 1,
        retry_delay: float = 2,
    ):
        """Initialize OpenRouter client.

        Args:
            api_key: OpenRouter API key
            model: Model name to use
            base_url: OpenRouter API URL
            timeout: Request timeout in seconds
            max_retries: Maximum attempts per request
            retry_delay: Base delay for exponential backoff
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries

        self.client = BaseLLMClient(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
            retry_delay=retry_delay,
        )

        LOGGER.info(f"Initialized OpenRouter client with model {self.model}")

    def build_payload(
        self,
        contents: Union[str, List[Union[str, Dict[str, Any]]]],
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Build the chat-completions request body."""
        messages = []
        system_content = system_instruction or ""

        config = generation_config or {}
        json_response = config.get("response_mime_type") == "application/json"
        if json_response:
            system_content = f"{system_content}\n\n{JSON_ONLY_INSTRUCTION}".strip()

        if system_content:
            messages.append({"role": "system", "content": system_content})

        if isinstance(contents, str):
            user_content = contents
        else:
            user_content = ""
            for part in contents:
                if isinstance(part, str):
                    user_content += part
                elif isinstance(part, dict) and "text" in part:
                    user_content += part["text"]
        messages.append({"role": "user", "content": user_content})

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": config.get("temperature", 0.0),
        }
        if "max_output_tokens" in config:
            payload["max_tokens"] = config["max_output_tokens"]
        if json_response:
            payload["response_format"] = {"type": "json_object"}

        return payload

    async def generate_content(
        self,
        contents: Union[str, List[Union[str, Dict[str, Any]]]],
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content using the OpenRouter model.

        Args:
            contents: Input content (string or list of parts)
            system_instruction: Optional system instruction
            generation_config: Optional generation config (temperature, etc.)

        Returns:
            Generated text response

        Raises:
            APIClientError: If generation fails
        """
        payload = self.build_payload(contents, system_instruction, generation_config)

        try:
            response = await self.client.call_api(payload=payload)
        except APIClientError:
            raise
        except Exception as e:
            LOGGER.error(f"OpenRouter generation failed: {e}", exc_info=True)
            raise APIClientError(f"OpenRouter generation failed: {e}", original_error=e)

        choices = response.get("choices") or []
        if not choices:
            LOGGER.error("Unexpected OpenRouter response format", extra={"response": str(response)[:500]})
            raise APIClientError("Invalid response format from OpenRouter")

        content = (choices[0].get("message") or {}).get("content") or ""
        if not content:
            LOGGER.warning("Empty response from OpenRouter")
        return content

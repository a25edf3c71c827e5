"""Step-by-step reasoning over low-confidence entities.

The output is free text for a human reviewer, so it is not parsed.
"""

import json
from typing import Any, List, Optional

from intake_ai.core.base_stage import DEFAULT_TIMEOUT_SECONDS, BaseStage, StageResult
from intake_ai.schemas.entities import ExtractedEntity
from intake_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

NO_AMBIGUITY_MESSAGE = "All extracted entities have high confidence. No ambiguity detected."


class AmbiguityResolver(BaseStage):
    """Explains the most likely reading of entities below the ambiguity threshold."""

    name = "ambiguity_resolution"

    PROMPT = """You are a clinical data analyst. Use step-by-step reasoning to resolve ambiguous data extractions.
For each ambiguous entity, explain your reasoning process and provide the most likely correct interpretation."""

    def __init__(
        self,
        client: Any,
        threshold: float = 80.0,
        excerpt_chars: int = 1500,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initialize the resolver.

        Args:
            client: Text-generation client
            threshold: Entities with confidence below this are ambiguous
            excerpt_chars: Prefix of the document sent as context
            timeout_seconds: Default per-call timeout
        """
        super().__init__(client, timeout_seconds=timeout_seconds)
        self.threshold = threshold
        self.excerpt_chars = excerpt_chars

    def select_ambiguous(self, entities: List[ExtractedEntity]) -> List[ExtractedEntity]:
        return [entity for entity in entities if entity.confidence < self.threshold]

    async def resolve(
        self,
        text: str,
        entities: List[ExtractedEntity],
        timeout: Optional[float] = None,
    ) -> StageResult[str]:
        """Produce reasoning for the ambiguous subset of ``entities``.

        Returns a skipped result carrying ``NO_AMBIGUITY_MESSAGE`` when every
        entity meets the threshold, and an empty string when the call fails.
        """
        ambiguous = self.select_ambiguous(entities)
        if not ambiguous:
            LOGGER.info("No ambiguous entities, skipping reasoning")
            return self.skipped(NO_AMBIGUITY_MESSAGE)

        LOGGER.info(
            "Resolving ambiguous entities",
            extra={"ambiguous": len(ambiguous), "threshold": self.threshold}
        )
        serialized = json.dumps([entity.model_dump(mode="json") for entity in ambiguous])

        async def operation() -> str:
            response = await self.generate(
                contents=(
                    f"Document content: {text[:self.excerpt_chars]}\n\n"
                    f"Ambiguous entities: {serialized}\n\n"
                    "Use chain-of-thought reasoning to resolve these ambiguities."
                ),
                system_instruction=self.PROMPT,
                json_response=False,
                timeout=timeout,
            )
            return response.strip()

        return await self.guarded(operation, "")

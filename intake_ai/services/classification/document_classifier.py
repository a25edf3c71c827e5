"""Document classifier.

Labels a document with one of a closed set of healthcare document types.
Classification is advisory: any failure yields the ``unknown`` default.
"""

from typing import Any, Dict, Optional

from intake_ai.core.base_stage import DEFAULT_TIMEOUT_SECONDS, BaseStage, StageResult
from intake_ai.schemas.documents import Classification, DocumentType
from intake_ai.services.classification.constants import (
    CLASSIFIABLE_TYPES,
    DEFAULT_CLASSIFICATION,
    DEFAULT_MAX_CHARS,
    DOCUMENT_TYPE_DESCRIPTIONS,
)
from intake_ai.utils.confidence import normalize_confidence
from intake_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _build_prompt() -> str:
    type_lines = "\n".join(
        f"- {doc_type.value}: {DOCUMENT_TYPE_DESCRIPTIONS[doc_type]}" for doc_type in CLASSIFIABLE_TYPES
    )
    return f"""You are a healthcare document classifier. Analyze the document and classify it into one of these types:
{type_lines}

Provide your response in JSON format with: type, confidence (0-100), reasoning.
Example: {{"type": "referral", "confidence": 92, "reasoning": "Letter requests home health services for the patient"}}
"""


class DocumentClassifier(BaseStage):
    """Classifies a document's type from a bounded prefix of its text."""

    name = "classification"
    PROMPT = _build_prompt()

    def __init__(
        self,
        client: Any,
        max_chars: int = DEFAULT_MAX_CHARS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initialize the classifier.

        Args:
            client: Text-generation client
            max_chars: Prefix length sent to the service
            timeout_seconds: Default per-call timeout
        """
        super().__init__(client, timeout_seconds=timeout_seconds)
        self.max_chars = max_chars

    async def classify(self, text: str, timeout: Optional[float] = None) -> StageResult[Classification]:
        """Classify a document.

        Args:
            text: Raw document text
            timeout: Optional per-call timeout override

        Returns:
            StageResult wrapping the Classification (the unknown default on failure)
        """
        async def operation() -> Classification:
            excerpt = text[:self.max_chars]
            LOGGER.info(
                "Classifying document",
                extra={"content_length": len(text), "excerpt_length": len(excerpt)}
            )
            response = await self.generate(
                contents=f"Classify this healthcare document:\n\n{excerpt}",
                system_instruction=self.PROMPT,
                timeout=timeout,
            )
            data = self.parse(response, DEFAULT_CLASSIFICATION, expected_type=dict)
            return self._to_classification(data)

        result = await self.guarded(operation, Classification.default())
        LOGGER.info(
            "Classification finished",
            extra={
                "status": result.status.value,
                "document_type": result.value.document_type.value,
                "confidence": result.value.confidence,
            }
        )
        return result

    def _to_classification(self, data: Dict[str, Any]) -> Classification:
        """Validate raw classifier output against the closed type set."""
        raw_type = data.get("type", data.get("document_type"))
        reasoning = data.get("reasoning")
        reasoning = reasoning if isinstance(reasoning, str) else ""

        try:
            document_type = DocumentType(str(raw_type).strip().lower())
        except ValueError:
            LOGGER.warning(
                "Classifier returned a type outside the closed set",
                extra={"raw_type": raw_type}
            )
            return Classification(document_type=DocumentType.UNKNOWN, confidence=0.0, reasoning=reasoning)

        return Classification(
            document_type=document_type,
            confidence=normalize_confidence(data.get("confidence")),
            reasoning=reasoning,
        )

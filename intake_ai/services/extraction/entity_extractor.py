"""Named-entity extraction for healthcare intake documents.

The service is asked for typed, located, confidence-scored entities. Every
returned entity is validated before it is kept:

- ``type`` must resolve to the closed ``EntityType`` set
- ``value`` must be a non-empty string
- ``confidence`` is coerced onto [0, 100]
- ``location`` must satisfy ``0 <= start <= end <= len(text)``; a missing
  location is recovered by finding the value in the text

Invalid entities are logged and skipped, never raised.
"""

import re
import time
from typing import Any, Dict, List, Optional, Tuple

from intake_ai.core.base_stage import DEFAULT_TIMEOUT_SECONDS, BaseStage, StageResult
from intake_ai.core.exceptions import MalformedResponseError, SchemaViolationError
from intake_ai.schemas.entities import (
    EntityLocation,
    EntityType,
    ExtractedEntity,
    NERResult,
    resolve_entity_type,
)
from intake_ai.utils.confidence import normalize_confidence
from intake_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_NER_RESULT = {"entities": [], "confidence": 0}


class EntityExtractor(BaseStage):
    """Extracts healthcare entities from the full document text."""

    name = "entity_extraction"

    PROMPT = f"""Extract healthcare-specific named entities from the document. Focus on:
- Patient demographics (name, date of birth, address, phone)
- Medical information (diagnosis, physician, insurance)
- Administrative data (medical record number)

Allowed entity types: {", ".join(t.value for t in EntityType)}

Return JSON:
{{
  "entities": [
    {{"type": "patient_name", "value": "Jane Doe", "confidence": 95, "location": {{"start": 14, "end": 22}}}}
  ],
  "overall_confidence": 90
}}

Rules:
1. confidence is 0-100
2. location gives character offsets into the document text (end exclusive)
3. Report every diagnosis separately; repeat a type when it occurs more than once
4. Only report values that literally appear in the document
"""

    def __init__(self, client: Any, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS):
        super().__init__(client, timeout_seconds=timeout_seconds)

    async def extract(self, text: str, timeout: Optional[float] = None) -> StageResult[NERResult]:
        """Extract entities from a document.

        Args:
            text: Full raw document text
            timeout: Optional per-call timeout override

        Returns:
            StageResult wrapping the NERResult (empty on failure)
        """
        started = time.perf_counter()

        async def operation() -> NERResult:
            response = await self.generate(
                contents=f"Document:\n{text}",
                system_instruction=self.PROMPT,
                timeout=timeout,
            )
            data = self._normalize_payload(self.parse(response, DEFAULT_NER_RESULT))
            entities, skipped = self.validate_entities(data.get("entities"), text)
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            return NERResult(
                entities=entities,
                confidence=self._overall_confidence(data, entities),
                processing_time_ms=elapsed_ms,
                skipped_count=skipped,
            )

        result = await self.guarded(operation, NERResult())
        LOGGER.info(
            "Entity extraction finished",
            extra={
                "status": result.status.value,
                "entities": len(result.value.entities),
                "skipped": result.value.skipped_count,
                "confidence": result.value.confidence,
            }
        )
        return result

    def _normalize_payload(self, data: Any) -> Dict[str, Any]:
        """Accept either ``{"entities": [...]}`` or a bare entity array."""
        if isinstance(data, list):
            return {"entities": data}
        if isinstance(data, dict):
            return data
        raise MalformedResponseError(
            f"{self.name}: expected an object or array, got {type(data).__name__}"
        )

    def _overall_confidence(self, data: Dict[str, Any], entities: List[ExtractedEntity]) -> float:
        raw = data.get("overall_confidence", data.get("confidence"))
        if raw is not None:
            return normalize_confidence(raw)
        if entities:
            return sum(entity.confidence for entity in entities) / len(entities)
        return 0.0

    def validate_entities(self, raw_entities: Any, text: str) -> Tuple[List[ExtractedEntity], int]:
        """Validate raw entities, dropping the ones that violate the schema.

        Args:
            raw_entities: ``entities`` value from the model response
            text: Source text the offsets refer to

        Returns:
            (kept entities, number skipped)
        """
        if not isinstance(raw_entities, list):
            if raw_entities is not None:
                LOGGER.warning("Entities payload is not a list", extra={"type": type(raw_entities).__name__})
            return [], 0

        kept: List[ExtractedEntity] = []
        skipped = 0
        for index, raw in enumerate(raw_entities):
            try:
                kept.append(self._validate_entity(raw, text))
            except SchemaViolationError as e:
                skipped += 1
                LOGGER.warning(
                    "Skipped low-quality entity",
                    extra={"index": index, "reason": str(e)}
                )
        return kept, skipped

    def _validate_entity(self, raw: Any, text: str) -> ExtractedEntity:
        """Build one ExtractedEntity or raise SchemaViolationError."""
        if not isinstance(raw, dict):
            raise SchemaViolationError("entity is not an object")

        entity_type = resolve_entity_type(raw.get("type", raw.get("entity_type")))
        if entity_type is None:
            raise SchemaViolationError(f"unknown entity type {raw.get('type')!r}")

        value = raw.get("value")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str) or not value.strip():
            raise SchemaViolationError("entity value is empty")

        start, end = self._resolve_location(raw.get("location"), value, text)

        return ExtractedEntity(
            type=entity_type,
            value=value.strip(),
            confidence=normalize_confidence(raw.get("confidence")),
            location=EntityLocation(start=start, end=end),
        )

    def _resolve_location(self, location: Any, value: str, text: str) -> Tuple[int, int]:
        """Validate offsets, or locate the value when no location was given."""
        if location is None:
            needle = value.strip()
            position = text.find(needle)
            if position != -1:
                return position, position + len(needle)
            # Case-insensitive match on the original text keeps offsets aligned
            match = re.search(re.escape(needle), text, re.IGNORECASE)
            if match is None:
                raise SchemaViolationError("entity has no location and its value is not in the text")
            start, end = match.span()
            if end > len(text):
                raise SchemaViolationError(f"recovered offsets ({start}, {end}) fall outside [0, {len(text)}]")
            return start, end

        if isinstance(location, dict):
            start, end = location.get("start"), location.get("end")
        elif isinstance(location, (list, tuple)) and len(location) == 2:
            start, end = location
        else:
            raise SchemaViolationError("entity location is malformed")

        start, end = _as_offset(start), _as_offset(end)
        if start is None or end is None:
            raise SchemaViolationError("entity offsets are not integers")
        if not 0 <= start <= end <= len(text):
            raise SchemaViolationError(
                f"entity offsets ({start}, {end}) fall outside [0, {len(text)}]"
            )
        return start, end


def _as_offset(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None

"""AI field mapping onto a target schema.

Mapping runs in three service calls, each wrapped by the response parser:

- Phase A, structure discovery: which field labels does the document carry?
- Phase B, mapping generation: align those labels to schema fields. Only
  mappings at or above the acceptance threshold are committed; the rest are
  demoted to suggestions that need human confirmation.
- Phase C, extraction under mapping: pull the values of committed fields.

Overall confidence rewards both the model's self-reported mapping confidence
and actual coverage of the discovered labels::

    min(1, 0.7 * mapping_confidence / 100 + 0.3 * mapped / discovered)
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from intake_ai.core.base_stage import DEFAULT_TIMEOUT_SECONDS, BaseStage, StageResult
from intake_ai.core.exceptions import MalformedResponseError
from intake_ai.schemas.mapping import FieldMapping, FieldMappingResult, MappingSuggestion
from intake_ai.schemas.target_schema import TargetSchema
from intake_ai.utils.confidence import normalize_confidence
from intake_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_ACCEPTANCE_THRESHOLD = 60.0

STRUCTURE_STEP = "structure_discovery"
MAPPING_STEP = "mapping_generation"
EXTRACTION_STEP = "mapped_extraction"


@dataclass
class MappingRun:
    """Field mapping result plus the per-phase stage results."""
    result: FieldMappingResult
    stages: List[StageResult] = field(default_factory=list)


class FieldMapper(BaseStage):
    """Aligns document-native field labels to a target schema."""

    name = "field_mapping"

    STRUCTURE_PROMPT = """You are a medical document analysis specialist. Analyze the provided document text and identify all potential data fields that could contain patient information.

Focus on fields that might contain structured patient data such as:
- Patient demographics (name, DOB, gender, address, etc.)
- Contact information (phone, email, emergency contacts)
- Insurance information (provider, ID numbers, policy numbers)
- Medical information (diagnosis, medications, allergies, history)
- Provider information (physician names, facility information)

Return only the actual field names/labels as they appear in the document, as JSON:
{"fields": ["Patient Name", "Date of Birth", "Primary Insurance", "Diagnosis"]}"""

    MAPPING_PROMPT = """You are an intelligent field mapping specialist for healthcare data. Your task is to map document fields to a standardized patient data schema.

Target Schema Fields:
{schema_description}

Return a JSON object with this structure:
{{
  "mappings": [
    {{"sourceField": "document field name", "targetField": "schema field name", "confidence": 95, "transformationRule": "optional transformation description"}}
  ],
  "unmappedFields": ["fields that couldn't be mapped"],
  "confidence": 85,
  "suggestions": [
    {{"sourceField": "ambiguous field", "suggestedTargetField": "best guess", "confidence": 55, "reasoning": "explanation of mapping logic"}}
  ]
}}

Mapping Rules:
1. Confidence values are 0-100; mappings below {threshold:.0f} belong in suggestions
2. sourceField must be one of the provided document fields, verbatim
3. targetField must be one of the schema field names above
4. Handle variations (e.g., "DOB" maps to "dateOfBirth")
5. Suggest transformations when needed (e.g., name parsing, date formatting)"""

    EXTRACTION_PROMPT = """You are a data extraction specialist. Extract data from the document using the provided field mappings and return a structured JSON object.

Field Mappings:
{mapping_instructions}

Return extracted data in this exact format:
{{
  "extractedData": {{"targetField1": "extracted value"}},
  "confidence": 90,
  "extractionNotes": "Notes about data quality and any issues encountered"
}}

Extraction Rules:
1. Extract exact values as they appear in the document
2. Apply transformations as specified in mapping rules
3. Return null for fields that cannot be found
4. Handle dates in YYYY-MM-DD format
5. Return arrays for list fields such as medications and allergies"""

    def __init__(
        self,
        client: Any,
        acceptance_threshold: float = DEFAULT_ACCEPTANCE_THRESHOLD,
        excerpt_chars: int = 2000,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initialize the field mapper.

        Args:
            client: Text-generation client
            acceptance_threshold: Global confidence cutoff for committed mappings
            excerpt_chars: Prefix of the document sent with mapping generation
            timeout_seconds: Default per-call timeout
        """
        super().__init__(client, timeout_seconds=timeout_seconds)
        self.acceptance_threshold = acceptance_threshold
        self.excerpt_chars = excerpt_chars

    def threshold_for(self, schema: TargetSchema) -> float:
        """Acceptance threshold for ``schema`` (schema override, else global)."""
        if schema.mapping_acceptance_threshold is not None:
            return schema.mapping_acceptance_threshold
        return self.acceptance_threshold

    @staticmethod
    def overall_confidence(mapping_confidence: float, mapped_count: int, discovered_count: int) -> float:
        """Weighted mapping confidence in [0, 1]."""
        coverage = mapped_count / (discovered_count or 1)
        score = 0.7 * (mapping_confidence / 100.0) + 0.3 * coverage
        return max(0.0, min(1.0, score))

    async def map_document(
        self,
        text: str,
        schema: TargetSchema,
        filename: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> MappingRun:
        """Run all three phases for one document.

        Phase B is skipped when no labels were discovered and Phase C when
        nothing was committed, since neither could produce a mapping.
        """
        LOGGER.info(f"Starting AI field mapping process for: {filename or 'document'}")
        threshold = self.threshold_for(schema)

        structure = await self.analyze_structure(text, filename=filename, timeout=timeout)
        document_fields = structure.value

        if not document_fields:
            LOGGER.info("No document fields discovered, skipping mapping generation")
            empty = FieldMappingResult(schema_id=schema.schema_id, acceptance_threshold=threshold)
            return MappingRun(
                result=empty,
                stages=[structure, self.skipped(empty, MAPPING_STEP), self.skipped({}, EXTRACTION_STEP)],
            )

        mapping = await self.generate_mappings(
            document_fields, text, schema, filename=filename, timeout=timeout
        )
        LOGGER.info(
            f"Generated {len(mapping.value.mappings)} field mappings with confidence: "
            f"{mapping.value.mapping_confidence}"
        )

        if mapping.value.mappings:
            extraction = await self.extract_mapped_data(
                text, mapping.value.mappings, schema, filename=filename, timeout=timeout
            )
        else:
            extraction = self.skipped({}, EXTRACTION_STEP)
        LOGGER.info(f"Extracted data from {len(extraction.value)} fields")

        result = mapping.value.model_copy(
            update={
                "extracted_data": extraction.value,
                "overall_confidence": self.overall_confidence(
                    mapping.value.mapping_confidence,
                    len(mapping.value.mappings),
                    len(document_fields),
                ),
            }
        )
        return MappingRun(result=result, stages=[structure, mapping, extraction])

    async def analyze_structure(
        self,
        text: str,
        filename: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> StageResult[List[str]]:
        """Phase A: list the field labels that appear in the document."""
        async def operation() -> List[str]:
            response = await self.generate(
                contents=(
                    "Analyze this document and extract all potential data field names:\n\n"
                    f"Filename: {filename or 'unknown'}\n\nDocument Content:\n{text}"
                ),
                system_instruction=self.STRUCTURE_PROMPT,
                timeout=timeout,
            )
            data = self.parse(response, {"fields": []})
            return self._normalize_labels(data)

        result = await self.guarded(operation, [], step=STRUCTURE_STEP)
        LOGGER.info(f"Found {len(result.value)} document fields", extra={"fields": result.value})
        return result

    async def generate_mappings(
        self,
        document_fields: List[str],
        text: str,
        schema: TargetSchema,
        filename: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> StageResult[FieldMappingResult]:
        """Phase B: align discovered labels with schema fields."""
        threshold = self.threshold_for(schema)
        default = FieldMappingResult(
            schema_id=schema.schema_id,
            document_fields=list(document_fields),
            unmapped_fields=list(document_fields),
            acceptance_threshold=threshold,
        )

        async def operation() -> FieldMappingResult:
            excerpt = text[:self.excerpt_chars]
            response = await self.generate(
                contents=(
                    "Create field mappings for this document:\n\n"
                    f"Filename: {filename or 'unknown'}\n"
                    f"Document Fields: {json.dumps(document_fields)}\n\n"
                    f"Document Content (for context):\n{excerpt}"
                ),
                system_instruction=self.MAPPING_PROMPT.format(
                    schema_description=schema.describe(),
                    threshold=threshold,
                ),
                timeout=timeout,
            )
            data = self.parse(response, {}, expected_type=dict)
            return self._partition(data, document_fields, schema, threshold)

        return await self.guarded(operation, default, step=MAPPING_STEP)

    async def extract_mapped_data(
        self,
        text: str,
        mappings: List[FieldMapping],
        schema: TargetSchema,
        filename: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> StageResult[Dict[str, Any]]:
        """Phase C: extract values for the committed mappings only."""
        committed = {mapping.target_field for mapping in mappings}
        instructions = "\n".join(
            f"{m.source_field} -> {m.target_field}"
            + (f" ({m.transformation_rule})" if m.transformation_rule else "")
            for m in mappings
        )

        async def operation() -> Dict[str, Any]:
            response = await self.generate(
                contents=(
                    "Extract data from this document using the field mappings:\n\n"
                    f"Filename: {filename or 'unknown'}\n\nDocument Content:\n{text}"
                ),
                system_instruction=self.EXTRACTION_PROMPT.format(mapping_instructions=instructions),
                timeout=timeout,
            )
            data = self.parse(response, {}, expected_type=dict)
            return self._filter_extracted(data, committed, schema)

        return await self.guarded(operation, {}, step=EXTRACTION_STEP)

    def _normalize_labels(self, data: Any) -> List[str]:
        """Accept ``{"fields": [...]}`` or a bare array; keep unique non-empty strings."""
        if isinstance(data, dict):
            data = data.get("fields", data.get("documentFields", []))
        if not isinstance(data, list):
            raise MalformedResponseError(f"{self.name}: field list is not an array")

        labels: List[str] = []
        seen = set()
        for item in data:
            if not isinstance(item, str) or not item.strip():
                continue
            label = item.strip()
            if label.lower() in seen:
                continue
            seen.add(label.lower())
            labels.append(label)
        return labels

    def _partition(
        self,
        data: Dict[str, Any],
        document_fields: List[str],
        schema: TargetSchema,
        threshold: float,
    ) -> FieldMappingResult:
        """Validate raw mappings and split them into committed and suggested."""
        labels = {label.lower(): label for label in document_fields}
        mappings: List[FieldMapping] = []
        suggestions: List[MappingSuggestion] = []

        for raw in _as_list(data.get("mappings")):
            resolved = self._resolve_pair(raw, labels, schema, ("targetField", "target_field"))
            if resolved is None:
                continue
            source, target = resolved
            confidence = normalize_confidence(raw.get("confidence"))
            rule = raw.get("transformationRule", raw.get("transformation_rule"))
            rule = rule if isinstance(rule, str) and rule.strip() else None

            if confidence >= threshold:
                mappings.append(FieldMapping(
                    source_field=source,
                    target_field=target,
                    confidence=confidence,
                    transformation_rule=rule,
                ))
            else:
                reasoning = f"Confidence {confidence:.0f} is below the acceptance threshold {threshold:.0f}"
                if rule:
                    reasoning += f"; proposed transformation: {rule}"
                suggestions.append(MappingSuggestion(
                    source_field=source,
                    suggested_target_field=target,
                    confidence=confidence,
                    reasoning=reasoning,
                ))

        committed_pairs = {(m.source_field, m.target_field) for m in mappings}
        for raw in _as_list(data.get("suggestions")):
            resolved = self._resolve_pair(
                raw, labels, schema, ("suggestedTargetField", "suggested_target_field", "targetField")
            )
            if resolved is None or resolved in committed_pairs:
                continue
            reasoning = raw.get("reasoning")
            suggestions.append(MappingSuggestion(
                source_field=resolved[0],
                suggested_target_field=resolved[1],
                confidence=normalize_confidence(raw.get("confidence")),
                reasoning=reasoning if isinstance(reasoning, str) else "",
            ))

        mapped_sources = {m.source_field for m in mappings}
        return FieldMappingResult(
            schema_id=schema.schema_id,
            document_fields=list(document_fields),
            mappings=mappings,
            suggestions=suggestions,
            unmapped_fields=[label for label in document_fields if label not in mapped_sources],
            mapping_confidence=normalize_confidence(data.get("confidence")),
            acceptance_threshold=threshold,
        )

    def _resolve_pair(
        self,
        raw: Any,
        labels: Dict[str, str],
        schema: TargetSchema,
        target_keys: Tuple[str, ...],
    ) -> Optional[Tuple[str, str]]:
        """Return (document label, schema field) or None when either is unknown."""
        if not isinstance(raw, dict):
            return None

        source = raw.get("sourceField", raw.get("source_field"))
        target = next((raw[key] for key in target_keys if key in raw), None)

        label = labels.get(source.strip().lower()) if isinstance(source, str) else None
        if label is None:
            LOGGER.warning(
                "Discarded mapping for a label not found in the document analysis",
                extra={"source_field": source}
            )
            return None

        if not isinstance(target, str) or not schema.has_field(target):
            LOGGER.warning(
                "Discarded mapping to a field outside the target schema",
                extra={"target_field": target, "schema_id": schema.schema_id}
            )
            return None

        return label, target

    def _filter_extracted(
        self,
        data: Dict[str, Any],
        committed: set,
        schema: TargetSchema,
    ) -> Dict[str, Any]:
        """Keep only non-null values for committed schema fields."""
        payload = data.get("extractedData", data.get("extracted_data"))
        if not isinstance(payload, dict):
            payload = {key: value for key, value in data.items() if schema.has_field(key)}

        extracted: Dict[str, Any] = {}
        for key, value in payload.items():
            if key not in committed:
                LOGGER.warning(
                    "Dropped extracted value for a field without a committed mapping",
                    extra={"field": key}
                )
                continue
            if value is not None:
                extracted[key] = value
        return extracted


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []

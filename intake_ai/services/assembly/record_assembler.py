"""Record assembly and acknowledgment drafting."""

import json
from typing import Any, Dict, List, Optional, Tuple

from intake_ai.core.base_stage import DEFAULT_TIMEOUT_SECONDS, BaseStage, StageResult, StageStatus
from intake_ai.schemas.entities import EntityType, ExtractedEntity
from intake_ai.schemas.records import AssembledRecord, is_missing_value
from intake_ai.schemas.target_schema import FieldType, TargetSchema
from intake_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

DRAFT_STEP = "auto_draft"

# Candidate schema fields per entity type; the first one the schema defines is used
ENTITY_FIELD_MAP: Dict[EntityType, Tuple[str, ...]] = {
    EntityType.PATIENT_NAME: ("patientName",),
    EntityType.DOB: ("dateOfBirth",),
    EntityType.DIAGNOSIS: ("primaryDiagnosis", "diagnosis"),
    EntityType.PHYSICIAN: ("referringPhysician", "primaryPhysician"),
    EntityType.INSURANCE: ("insuranceInfo", "primaryInsurance"),
    EntityType.MRN: ("medicalRecordNumber",),
    EntityType.ADDRESS: ("patientAddress", "address"),
    EntityType.PHONE: ("patientPhone", "phoneNumber"),
}

SECONDARY_DIAGNOSES_FIELD = "secondaryDiagnoses"


def split_full_name(full_name: str) -> Tuple[str, str]:
    """Split ``"Last, First"`` or ``"First Middle Last"`` into (first, last)."""
    name = full_name.strip()
    if "," in name:
        last, _, first = name.partition(",")
        return first.strip(), last.strip()

    parts = name.split()
    if len(parts) == 1:
        return parts[0], ""
    return " ".join(parts[:-1]), parts[-1]


class RecordAssembler(BaseStage):
    """Builds schema-keyed records from entities and mapped fields.

    Assembly itself is local and deterministic. Only the acknowledgment
    draft calls the text-generation service, and its failure never
    invalidates the record.
    """

    name = "record_assembly"

    DRAFT_PROMPT = """Generate a professional response draft for a healthcare referral. Include:
- Acknowledgment of referral receipt
- Summary of extracted patient information
- List of any missing required information
- Next steps for processing"""

    def __init__(self, client: Any, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS):
        super().__init__(client, timeout_seconds=timeout_seconds)

    def assemble(
        self,
        schema: TargetSchema,
        entities: Optional[List[ExtractedEntity]] = None,
        mapped_values: Optional[Dict[str, Any]] = None,
    ) -> AssembledRecord:
        """Merge entities and mapped values into an AssembledRecord.

        Entities are written through ``ENTITY_FIELD_MAP``; when several
        entities land on the same field the most confident one wins. Mapped
        values come from explicit field mappings and take precedence over
        entity-derived values when non-empty. Keys the schema does not define
        are dropped.

        Args:
            schema: Target schema keying the record
            entities: Validated entities from the extractor
            mapped_values: Values from field mapping Phase C

        Returns:
            AssembledRecord whose missing required fields are derived from its values
        """
        values = self._values_from_entities(schema, entities or [])

        for key, value in (mapped_values or {}).items():
            if not schema.has_field(key):
                LOGGER.warning(
                    "Dropped mapped value for a field outside the target schema",
                    extra={"field": key, "schema_id": schema.schema_id}
                )
                continue
            if not is_missing_value(value):
                values[key] = value

        values = {key: self._coerce(schema, key, value) for key, value in values.items()}

        record = AssembledRecord(
            schema_id=schema.schema_id,
            schema_version=schema.version,
            values=values,
            required_fields=tuple(schema.required_fields),
        )
        LOGGER.info(
            "Assembled record",
            extra={
                "schema_id": schema.schema_id,
                "populated": len(record.populated_fields),
                "missing_required": sorted(record.missing_required_fields),
            }
        )
        return record

    def _values_from_entities(
        self,
        schema: TargetSchema,
        entities: List[ExtractedEntity],
    ) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        secondary: List[str] = []

        ranked = sorted(entities, key=lambda entity: entity.confidence, reverse=True)
        for entity in ranked:
            if entity.type == EntityType.PATIENT_NAME and not schema.has_field("patientName"):
                self._write_split_name(schema, values, entity.value)
                continue

            target = next(
                (name for name in ENTITY_FIELD_MAP.get(entity.type, ()) if schema.has_field(name)),
                None,
            )
            if target is None:
                continue

            if target not in values:
                values[target] = entity.value
            elif entity.type == EntityType.DIAGNOSIS and entity.value != values[target]:
                secondary.append(entity.value)

        if secondary and schema.has_field(SECONDARY_DIAGNOSES_FIELD):
            values[SECONDARY_DIAGNOSES_FIELD] = list(dict.fromkeys(secondary))
        return values

    def _write_split_name(self, schema: TargetSchema, values: Dict[str, Any], full_name: str) -> None:
        if not (schema.has_field("firstName") and schema.has_field("lastName")):
            return
        if "firstName" in values or "lastName" in values:
            return
        first, last = split_full_name(full_name)
        values["firstName"] = first
        if last:
            values["lastName"] = last

    def _coerce(self, schema: TargetSchema, key: str, value: Any) -> Any:
        """Wrap scalars for array fields; split comma lists."""
        if schema.fields[key].type != FieldType.ARRAY or isinstance(value, list):
            return value
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return [value]

    async def draft_acknowledgment(
        self,
        record: AssembledRecord,
        timeout: Optional[float] = None,
    ) -> Tuple[AssembledRecord, StageResult[str]]:
        """Ask the service for an acknowledgment draft.

        Returns a copy of ``record`` with ``auto_draft_text`` set, or with an
        empty draft and ``draft_failed`` set when the call does not complete.
        """
        missing = sorted(record.missing_required_fields)

        async def operation() -> str:
            response = await self.generate(
                contents=(
                    f"Autofilled fields: {json.dumps(record.populated_fields, default=str)}\n"
                    f"Missing information: {', '.join(missing) if missing else 'none'}"
                ),
                system_instruction=self.DRAFT_PROMPT,
                json_response=False,
                timeout=timeout,
            )
            return response.strip()

        result = await self.guarded(operation, "", step=DRAFT_STEP)
        drafted = record.model_copy(
            update={
                "auto_draft_text": result.value,
                "draft_failed": result.status != StageStatus.COMPLETED,
            }
        )
        if drafted.draft_failed:
            LOGGER.warning(
                "Acknowledgment draft unavailable, returning record without draft",
                extra={"schema_id": record.schema_id, "error": result.error}
            )
        return drafted, result

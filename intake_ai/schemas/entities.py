"""Named-entity models."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EntityType(str, Enum):
    """Closed set of entity types the extractor may report."""
    PATIENT_NAME = "patient_name"
    DOB = "dob"
    DIAGNOSIS = "diagnosis"
    PHYSICIAN = "physician"
    INSURANCE = "insurance"
    MRN = "mrn"
    ADDRESS = "address"
    PHONE = "phone"


# Spellings models commonly use for the same types
ENTITY_TYPE_ALIASES = {
    "name": EntityType.PATIENT_NAME,
    "patient": EntityType.PATIENT_NAME,
    "patientname": EntityType.PATIENT_NAME,
    "date_of_birth": EntityType.DOB,
    "dateofbirth": EntityType.DOB,
    "birth_date": EntityType.DOB,
    "birthdate": EntityType.DOB,
    "primary_diagnosis": EntityType.DIAGNOSIS,
    "secondary_diagnosis": EntityType.DIAGNOSIS,
    "condition": EntityType.DIAGNOSIS,
    "referring_physician": EntityType.PHYSICIAN,
    "provider": EntityType.PHYSICIAN,
    "doctor": EntityType.PHYSICIAN,
    "insurance_info": EntityType.INSURANCE,
    "payer": EntityType.INSURANCE,
    "identifier": EntityType.MRN,
    "medical_record_number": EntityType.MRN,
    "patient_id": EntityType.MRN,
    "phone_number": EntityType.PHONE,
    "telephone": EntityType.PHONE,
}


def resolve_entity_type(raw: object) -> Optional[EntityType]:
    """Map a raw type label onto the closed enumeration, or None."""
    if isinstance(raw, EntityType):
        return raw
    if not isinstance(raw, str):
        return None

    key = raw.strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return EntityType(key)
    except ValueError:
        return ENTITY_TYPE_ALIASES.get(key) or ENTITY_TYPE_ALIASES.get(key.replace("_", ""))


class EntityLocation(BaseModel):
    """Character offsets of an entity in the source text (end exclusive)."""

    model_config = ConfigDict(frozen=True)

    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> "EntityLocation":
        if self.start > self.end:
            raise ValueError(f"start ({self.start}) is after end ({self.end})")
        return self


class ExtractedEntity(BaseModel):
    """A typed, located, confidence-scored fact. Immutable."""

    model_config = ConfigDict(frozen=True)

    type: EntityType
    value: str
    confidence: float = Field(..., ge=0, le=100)
    location: EntityLocation


class NERResult(BaseModel):
    """Output of the entity extractor.

    ``confidence`` is the service's self-reported confidence in the whole
    extraction; each entity carries its own.
    """

    entities: List[ExtractedEntity] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0, le=100)
    processing_time_ms: int = Field(default=0, ge=0)
    skipped_count: int = Field(default=0, ge=0)

    def ambiguous(self, threshold: float) -> List[ExtractedEntity]:
        """Entities whose confidence is below ``threshold``."""
        return [entity for entity in self.entities if entity.confidence < threshold]

    def of_type(self, entity_type: EntityType) -> List[ExtractedEntity]:
        return [entity for entity in self.entities if entity.type == entity_type]

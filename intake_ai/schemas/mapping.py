"""Field mapping models."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from intake_ai.schemas.records import AssembledRecord


class FieldMapping(BaseModel):
    """A committed alignment of a document label to a schema field."""

    model_config = ConfigDict(frozen=True)

    source_field: str
    target_field: str
    confidence: float = Field(..., ge=0, le=100)
    transformation_rule: Optional[str] = None


class MappingSuggestion(BaseModel):
    """A proposed alignment that needs human confirmation."""

    model_config = ConfigDict(frozen=True)

    source_field: str
    suggested_target_field: str
    confidence: float = Field(..., ge=0, le=100)
    reasoning: str = ""


class FieldMappingResult(BaseModel):
    """Outcome of structure discovery, mapping generation and extraction."""

    schema_id: str
    document_fields: List[str] = Field(default_factory=list)
    mappings: List[FieldMapping] = Field(default_factory=list)
    suggestions: List[MappingSuggestion] = Field(default_factory=list)
    unmapped_fields: List[str] = Field(default_factory=list)
    mapping_confidence: float = Field(default=0.0, ge=0, le=100)
    acceptance_threshold: float = Field(default=60.0, ge=0, le=100)
    extracted_data: Dict[str, Any] = Field(default_factory=dict)
    overall_confidence: float = Field(default=0.0, ge=0, le=1)
    record: Optional[AssembledRecord] = None

    @property
    def committed_targets(self) -> List[str]:
        return [mapping.target_field for mapping in self.mappings]

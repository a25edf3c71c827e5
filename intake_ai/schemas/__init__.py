"""Data models for the extraction pipeline."""

from intake_ai.schemas.documents import (
    Classification,
    DocumentFormat,
    DocumentType,
    RawDocument,
)
from intake_ai.schemas.entities import (
    EntityLocation,
    EntityType,
    ExtractedEntity,
    NERResult,
    resolve_entity_type,
)
from intake_ai.schemas.records import (
    AssembledRecord,
    PipelineOutcome,
    PipelineRun,
    is_missing_value,
)
from intake_ai.schemas.mapping import (
    FieldMapping,
    FieldMappingResult,
    MappingSuggestion,
)
from intake_ai.schemas.target_schema import FieldType, SchemaField, TargetSchema
from intake_ai.schemas.metrics import (
    ComplianceAlert,
    ComplianceValidation,
    CopRisk,
    DataValidation,
    MetricShape,
    PIPProject,
    PIPTask,
    QAPIAnalysis,
    RiskLevel,
    ValidatedMetrics,
    ValidationStatus,
)

__all__ = [
    "AssembledRecord",
    "Classification",
    "ComplianceAlert",
    "ComplianceValidation",
    "CopRisk",
    "DataValidation",
    "DocumentFormat",
    "DocumentType",
    "EntityLocation",
    "EntityType",
    "ExtractedEntity",
    "FieldMapping",
    "FieldMappingResult",
    "FieldType",
    "MappingSuggestion",
    "MetricShape",
    "NERResult",
    "PIPProject",
    "PIPTask",
    "PipelineOutcome",
    "PipelineRun",
    "QAPIAnalysis",
    "RawDocument",
    "RiskLevel",
    "SchemaField",
    "TargetSchema",
    "ValidatedMetrics",
    "ValidationStatus",
    "is_missing_value",
    "resolve_entity_type",
]

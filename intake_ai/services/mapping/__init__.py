"""Field mapping service."""

from intake_ai.services.mapping.field_mapper import FieldMapper, MappingRun

__all__ = ["FieldMapper", "MappingRun"]

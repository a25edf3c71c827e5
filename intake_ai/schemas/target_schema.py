"""Target schema models.

A target schema is configuration: the named, typed fields a document is
mapped onto. Concrete schemas live in ``intake_ai.config.target_schemas``.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class SchemaField(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: FieldType = FieldType.STRING
    required: bool = False
    description: str = ""
    examples: List[str] = Field(default_factory=list)


class TargetSchema(BaseModel):
    """Enumerated, versioned set of named fields."""

    model_config = ConfigDict(frozen=True)

    schema_id: str
    version: int = 1
    fields: Dict[str, SchemaField]
    mapping_acceptance_threshold: Optional[float] = Field(
        default=None,
        ge=0,
        le=100,
        description="Overrides the global acceptance threshold for this schema"
    )

    @property
    def field_names(self) -> List[str]:
        return list(self.fields)

    @property
    def required_fields(self) -> List[str]:
        return [name for name, spec in self.fields.items() if spec.required]

    def has_field(self, name: str) -> bool:
        return name in self.fields

    def describe(self) -> str:
        """Render the schema as one line per field for prompts."""
        lines = []
        for name, spec in self.fields.items():
            flags = spec.type.value + (", required" if spec.required else "")
            line = f"{name}: {spec.description} ({flags})"
            if spec.examples:
                line += f" e.g. {', '.join(spec.examples[:3])}"
            lines.append(line)
        return "\n".join(lines)

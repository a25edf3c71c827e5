"""Assembled record and pipeline run models."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field


def is_missing_value(value: Any) -> bool:
    """True for None, blank strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


class AssembledRecord(BaseModel):
    """Schema-keyed values assembled from a document.

    ``missing_required_fields`` is derived from ``values`` on every access.
    """

    schema_id: str
    schema_version: int = 1
    values: Dict[str, Any] = Field(default_factory=dict)
    required_fields: Tuple[str, ...] = Field(default_factory=tuple)
    auto_draft_text: str = ""
    draft_failed: bool = False

    @computed_field
    @property
    def missing_required_fields(self) -> Set[str]:
        return {name for name in self.required_fields if is_missing_value(self.values.get(name))}

    @property
    def populated_fields(self) -> Dict[str, Any]:
        return {name: value for name, value in self.values.items() if not is_missing_value(value)}

    @property
    def is_complete(self) -> bool:
        return not self.missing_required_fields


class PipelineOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class PipelineRun(BaseModel):
    """Performance record of one top-level pipeline invocation. Immutable."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    module_name: str
    started_at: datetime
    duration_ms: int = Field(..., ge=0)
    overall_confidence: float = Field(..., ge=0, le=100)
    model_identifiers: List[str] = Field(default_factory=list)
    outcome: PipelineOutcome
    service_calls: int = Field(default=0, ge=0)
    estimated_cost: float = Field(default=0.0, ge=0)
    stage_statuses: Dict[str, str] = Field(default_factory=dict)

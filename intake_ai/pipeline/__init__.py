"""Caller-facing pipeline operations."""

from intake_ai.pipeline.document_pipeline import (
    DocumentIntelligencePipeline,
    DocumentProcessingResult,
)
from intake_ai.pipeline.hl7 import fhir_to_text, hl7_to_text, parse_segments, split_segments

__all__ = [
    "DocumentIntelligencePipeline",
    "DocumentProcessingResult",
    "fhir_to_text",
    "hl7_to_text",
    "parse_segments",
    "split_segments",
]

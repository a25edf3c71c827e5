"""Document and classification models."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DocumentFormat(str, Enum):
    """Declared format of an ingested document."""
    PDF = "pdf"
    TIFF = "tiff"
    IMAGE = "image"
    HL7 = "hl7"
    FHIR = "fhir"
    PLAIN_TEXT = "plain_text"
    WORD = "word"


class DocumentType(str, Enum):
    """Closed set of healthcare document types the classifier may assign."""
    REFERRAL = "referral"
    ASSESSMENT = "assessment"
    DISCHARGE_SUMMARY = "discharge_summary"
    LAB_REPORT = "lab_report"
    IMAGING = "imaging"
    UNKNOWN = "unknown"


class RawDocument(BaseModel):
    """Document text as ingested. Immutable."""

    model_config = ConfigDict(frozen=True)

    content: str = Field(..., description="Document text (bytes are decoded as UTF-8)")
    declared_format: DocumentFormat = Field(default=DocumentFormat.PLAIN_TEXT)
    filename: Optional[str] = Field(default=None)

    @field_validator("content", mode="before")
    @classmethod
    def _decode_bytes(cls, value: Any) -> Any:
        if isinstance(value, (bytes, bytearray)):
            return bytes(value).decode("utf-8", errors="replace")
        return value

    @property
    def is_empty(self) -> bool:
        return not self.content.strip()

    def __len__(self) -> int:
        return len(self.content)


class Classification(BaseModel):
    """Document type assigned by the classifier."""

    model_config = ConfigDict(frozen=True)

    document_type: DocumentType = Field(default=DocumentType.UNKNOWN)
    confidence: float = Field(default=0.0, ge=0, le=100)
    reasoning: str = Field(default="")

    @classmethod
    def default(cls) -> "Classification":
        return cls()

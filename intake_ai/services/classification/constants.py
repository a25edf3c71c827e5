"""Classification constants."""

from intake_ai.schemas.documents import DocumentType

# Types offered to the model; "unknown" is reserved for failures
CLASSIFIABLE_TYPES = [
    DocumentType.REFERRAL,
    DocumentType.ASSESSMENT,
    DocumentType.DISCHARGE_SUMMARY,
    DocumentType.LAB_REPORT,
    DocumentType.IMAGING,
]

DOCUMENT_TYPE_DESCRIPTIONS = {
    DocumentType.REFERRAL: "Patient referral from one provider to another",
    DocumentType.ASSESSMENT: "Clinical assessment or evaluation",
    DocumentType.DISCHARGE_SUMMARY: "Hospital discharge summary",
    DocumentType.LAB_REPORT: "Laboratory test results",
    DocumentType.IMAGING: "Radiology or imaging reports",
}

DEFAULT_MAX_CHARS = 2000

DEFAULT_CLASSIFICATION = {"type": DocumentType.UNKNOWN.value, "confidence": 0, "reasoning": ""}

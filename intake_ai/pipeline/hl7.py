"""HL7 v2 and FHIR helpers.

Structured messages are flattened into JSON text before they enter the
document pipeline, so the same extraction stages handle every format.
"""

import json
import re
from typing import Any, Dict, List

from intake_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

FIELD_SEPARATOR = "|"
_SEGMENT_SPLIT = re.compile(r"\r\n|\r|\n")


def split_segments(message: str) -> List[str]:
    """Split an HL7 v2 message into non-empty segments (CR, LF or CRLF)."""
    return [segment.strip() for segment in _SEGMENT_SPLIT.split(message) if segment.strip()]


def _field(fields: List[str], index: int) -> str:
    return fields[index] if index < len(fields) else ""


def parse_segments(segments: List[str]) -> Dict[str, Any]:
    """Extract patient, visit and observation data from HL7 segments.

    Only PID, PV1 and OBX are read. A repeated PID or PV1 replaces the
    earlier one; every OBX is kept.

    Args:
        segments: Segments as returned by ``split_segments``

    Returns:
        Dict with optional ``patient``, ``visit`` and ``observations`` keys
    """
    data: Dict[str, Any] = {}

    for segment in segments:
        fields = segment.split(FIELD_SEPARATOR)
        segment_type = fields[0].strip().upper()

        if segment_type == "PID":  # Patient Identification
            data["patient"] = {
                "id": _field(fields, 3),
                "name": _field(fields, 5),
                "dob": _field(fields, 7),
                "gender": _field(fields, 8),
                "address": _field(fields, 11),
            }
        elif segment_type == "PV1":  # Patient Visit
            data["visit"] = {
                "patientClass": _field(fields, 2),
                "assignedLocation": _field(fields, 3),
                "attendingDoctor": _field(fields, 7),
            }
        elif segment_type == "OBX":  # Observation/Result
            data.setdefault("observations", []).append({
                "valueType": _field(fields, 2),
                "identifier": _field(fields, 3),
                "value": _field(fields, 5),
                "units": _field(fields, 6),
            })

    LOGGER.debug(
        "Parsed HL7 segments",
        extra={"segments": len(segments), "keys": sorted(data)}
    )
    return data


def hl7_to_text(message: str) -> str:
    """Serialize the structured content of an HL7 message as JSON text."""
    return json.dumps(parse_segments(split_segments(message)))


def fhir_to_text(resource: Any) -> str:
    """Pretty-print a FHIR resource (dict or JSON string) as JSON text."""
    if isinstance(resource, (str, bytes)):
        resource = json.loads(resource)
    return json.dumps(resource, indent=2)

"""Pytest configuration and shared fixtures."""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import pytest

from intake_ai.config import Settings
from intake_ai.core.exceptions import APIClientError

# Substrings of each stage's system instruction, used to route scripted responses
CLASSIFIER = "healthcare document classifier"
EXTRACTOR = "Extract healthcare-specific named entities"
RESOLVER = "clinical data analyst"
DRAFTER = "professional response draft"
STRUCTURE = "medical document analysis specialist"
MAPPING = "intelligent field mapping specialist"
MAPPED_EXTRACTION = "data extraction specialist"
QAPI_ANALYSIS = "clinical quality expert"
PIP = "quality improvement specialist"
COMPLIANCE = "compliance monitoring specialist"


REFERRAL_TEXT = (
    "REFERRAL FOR HOME HEALTH SERVICES\n"
    "Patient Name: Jane Doe\n"
    "Date of Birth: 1950-03-14\n"
    "Diagnosis: Congestive heart failure\n"
    "Secondary: Type 2 diabetes\n"
    "Referring Physician: Dr. Alan Smith\n"
    "Insurance: Medicare Part A 1EG4-TE5-MK73\n"
    "MRN: 884421\n"
    "Phone: (555) 123-4567\n"
)


class ScriptedLLMClient:
    """Stand-in text-generation client.

    ``responses`` maps a system-instruction substring to a response: a
    string, an exception to raise, or a (sync or async) callable taking the
    user contents.
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None, model: str = "test-model"):
        self.responses = dict(responses or {})
        self.model = model
        self.calls: List[Dict[str, Any]] = []

    async def generate_content(
        self,
        contents: Any,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        self.calls.append({
            "contents": contents,
            "system_instruction": system_instruction or "",
            "generation_config": generation_config or {},
        })
        for key, response in self.responses.items():
            if key not in (system_instruction or ""):
                continue
            if isinstance(response, BaseException):
                raise response
            if asyncio.iscoroutinefunction(response):
                return await response(contents)
            if callable(response):
                return response(contents)
            return response
        raise APIClientError("No scripted response for this instruction")

    def calls_for(self, key: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if key in call["system_instruction"]]


@pytest.fixture
def settings() -> Settings:
    """Settings with the documented defaults, isolated from any .env file."""
    return Settings(
        _env_file=None,
        llm_provider="openrouter",
        openrouter_api_key="test_openrouter_key",
        gemini_api_key="test_gemini_key",
        service_timeout_seconds=5,
    )


@pytest.fixture
def scripted_client() -> Callable[..., ScriptedLLMClient]:
    """Factory for ScriptedLLMClient instances."""
    def _build(responses: Optional[Dict[str, Any]] = None, model: str = "test-model") -> ScriptedLLMClient:
        return ScriptedLLMClient(responses, model=model)
    return _build


@pytest.fixture
def referral_text() -> str:
    return REFERRAL_TEXT


@pytest.fixture
def entity_payload() -> Callable[..., Dict[str, Any]]:
    """Build a raw entity dict located at the first occurrence of ``value``."""
    def _build(text: str, entity_type: str, value: str, confidence: float) -> Dict[str, Any]:
        start = text.index(value)
        return {
            "type": entity_type,
            "value": value,
            "confidence": confidence,
            "location": {"start": start, "end": start + len(value)},
        }
    return _build


@pytest.fixture
def referral_entities(referral_text, entity_payload) -> List[Dict[str, Any]]:
    return [
        entity_payload(referral_text, "patient_name", "Jane Doe", 96),
        entity_payload(referral_text, "dob", "1950-03-14", 94),
        entity_payload(referral_text, "diagnosis", "Congestive heart failure", 91),
        entity_payload(referral_text, "diagnosis", "Type 2 diabetes", 72),
        entity_payload(referral_text, "physician", "Dr. Alan Smith", 90),
        entity_payload(referral_text, "insurance", "Medicare Part A 1EG4-TE5-MK73", 88),
        entity_payload(referral_text, "mrn", "884421", 85),
        entity_payload(referral_text, "phone", "(555) 123-4567", 93),
    ]


@pytest.fixture
def referral_responses(referral_entities) -> Dict[str, Any]:
    """Well-formed responses for every stage of ``process_document``."""
    return {
        CLASSIFIER: json.dumps({"type": "referral", "confidence": 92, "reasoning": "Requests home health"}),
        EXTRACTOR: json.dumps({"entities": referral_entities, "overall_confidence": 88}),
        RESOLVER: "Step 1: 'Type 2 diabetes' follows 'Secondary:' so it is a secondary diagnosis.",
        DRAFTER: "Thank you for the referral of Jane Doe. We have received all required information.",
    }

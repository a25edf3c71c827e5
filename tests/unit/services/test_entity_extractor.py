import json

import pytest

from conftest import EXTRACTOR
from intake_ai.core.base_stage import StageStatus
from intake_ai.core.exceptions import APIClientError
from intake_ai.schemas.entities import EntityType
from intake_ai.services.extraction import EntityExtractor


@pytest.mark.asyncio
async def test_extracts_valid_entities(scripted_client, referral_text, referral_entities):
    client = scripted_client({EXTRACTOR: json.dumps({"entities": referral_entities, "overall_confidence": 88})})

    result = await EntityExtractor(client).extract(referral_text)

    assert result.status == StageStatus.COMPLETED
    assert len(result.value.entities) == len(referral_entities)
    assert result.value.confidence == 88
    assert len(result.value.of_type(EntityType.DIAGNOSIS)) == 2
    for entity in result.value.entities:
        assert 0 <= entity.location.start <= entity.location.end <= len(referral_text)
        assert referral_text[entity.location.start:entity.location.end] == entity.value


@pytest.mark.asyncio
async def test_out_of_range_location_is_discarded(scripted_client, entity_payload):
    text = "Patient Name: Jane Doe. " + "x" * 76
    assert len(text) == 100
    entities = [
        entity_payload(text, "patient_name", "Jane Doe", 95),
        {"type": "diagnosis", "value": "CHF", "confidence": 90, "location": {"start": 500, "end": 503}},
    ]
    client = scripted_client({EXTRACTOR: json.dumps({"entities": entities, "confidence": 90})})

    result = await EntityExtractor(client).extract(text)

    assert [entity.value for entity in result.value.entities] == ["Jane Doe"]
    assert result.value.skipped_count == 1


@pytest.mark.asyncio
async def test_invalid_entities_are_skipped(scripted_client, referral_text, entity_payload):
    entities = [
        entity_payload(referral_text, "mrn", "884421", 85),
        {"type": "favorite_color", "value": "blue", "confidence": 99, "location": {"start": 0, "end": 4}},
        {"type": "dob", "value": "", "confidence": 99, "location": {"start": 0, "end": 0}},
        {"type": "phone", "value": "(555) 123-4567", "confidence": 80, "location": {"start": 40, "end": 10}},
        "not an entity",
    ]
    client = scripted_client({EXTRACTOR: json.dumps({"entities": entities})})

    result = await EntityExtractor(client).extract(referral_text)

    assert [entity.type for entity in result.value.entities] == [EntityType.MRN]
    assert result.value.skipped_count == 4


@pytest.mark.asyncio
async def test_confidence_is_clamped_and_aliases_resolved(scripted_client, referral_text):
    start = referral_text.index("Jane Doe")
    entities = [
        {"type": "Patient Name", "value": "Jane Doe", "confidence": 140, "location": [start, start + 8]},
        {"type": "date_of_birth", "value": "1950-03-14", "confidence": -3},
    ]
    client = scripted_client({EXTRACTOR: json.dumps(entities)})

    result = await EntityExtractor(client).extract(referral_text)

    name, dob = result.value.entities
    assert (name.type, name.confidence) == (EntityType.PATIENT_NAME, 100)
    assert (dob.type, dob.confidence) == (EntityType.DOB, 0)
    assert referral_text[dob.location.start:dob.location.end] == "1950-03-14"
    # No overall confidence reported: mean of entity confidences
    assert result.value.confidence == 50


@pytest.mark.asyncio
async def test_missing_location_not_in_text_is_discarded(scripted_client, referral_text):
    entities = [{"type": "address", "value": "742 Evergreen Terrace", "confidence": 90}]
    client = scripted_client({EXTRACTOR: json.dumps({"entities": entities, "confidence": 70})})

    result = await EntityExtractor(client).extract(referral_text)

    assert result.value.entities == []
    assert result.value.skipped_count == 1


@pytest.mark.asyncio
async def test_service_failure_yields_empty_result(scripted_client):
    client = scripted_client({EXTRACTOR: APIClientError("down")})

    result = await EntityExtractor(client).extract("Some text")

    assert result.status == StageStatus.FAILED
    assert result.value.entities == []
    assert result.value.confidence == 0


@pytest.mark.asyncio
async def test_unparseable_output_degrades(scripted_client):
    client = scripted_client({EXTRACTOR: "Sorry, I cannot help with that."})

    result = await EntityExtractor(client).extract("Some text")

    assert result.status == StageStatus.DEGRADED
    assert result.value.entities == []


@pytest.mark.asyncio
async def test_case_insensitive_location_stays_within_text(scripted_client):
    text = "İİ Patient JANE DOE"
    entities = [{"type": "patient_name", "value": "Jane Doe", "confidence": 90}]
    client = scripted_client({EXTRACTOR: json.dumps({"entities": entities, "confidence": 90})})

    result = await EntityExtractor(client).extract(text)

    [entity] = result.value.entities
    assert 0 <= entity.location.start <= entity.location.end <= len(text)
    assert text[entity.location.start:entity.location.end] == "JANE DOE"

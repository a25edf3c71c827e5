import pytest

from conftest import DRAFTER
from intake_ai.config.target_schemas import PATIENT_INTAKE_SCHEMA, REFERRAL_SCHEMA
from intake_ai.core.base_stage import StageStatus
from intake_ai.core.exceptions import APIClientError
from intake_ai.schemas.entities import EntityLocation, EntityType, ExtractedEntity
from intake_ai.services.assembly import RecordAssembler, split_full_name


def _entity(entity_type, value, confidence=90):
    return ExtractedEntity(
        type=entity_type,
        value=value,
        confidence=confidence,
        location=EntityLocation(start=0, end=len(value)),
    )


@pytest.fixture
def assembler(scripted_client):
    return RecordAssembler(scripted_client({DRAFTER: "Thank you for the referral."}))


def test_entities_are_written_through_lookup_table(assembler):
    record = assembler.assemble(REFERRAL_SCHEMA, entities=[
        _entity(EntityType.PATIENT_NAME, "Jane Doe"),
        _entity(EntityType.DOB, "1950-03-14"),
        _entity(EntityType.DIAGNOSIS, "Congestive heart failure"),
        _entity(EntityType.PHYSICIAN, "Dr. Alan Smith"),
        _entity(EntityType.INSURANCE, "Medicare"),
        _entity(EntityType.MRN, "884421"),
        _entity(EntityType.ADDRESS, "1 Main St"),
        _entity(EntityType.PHONE, "(555) 123-4567"),
    ])

    assert record.values == {
        "patientName": "Jane Doe",
        "dateOfBirth": "1950-03-14",
        "primaryDiagnosis": "Congestive heart failure",
        "referringPhysician": "Dr. Alan Smith",
        "insuranceInfo": "Medicare",
        "medicalRecordNumber": "884421",
        "patientAddress": "1 Main St",
        "patientPhone": "(555) 123-4567",
    }
    assert record.missing_required_fields == set()
    assert record.is_complete


def test_missing_required_fields_are_derived(assembler):
    record = assembler.assemble(REFERRAL_SCHEMA, entities=[_entity(EntityType.PATIENT_NAME, "Jane Doe")])

    assert record.missing_required_fields == {
        "dateOfBirth", "primaryDiagnosis", "referringPhysician", "insuranceInfo"
    }
    assert record.missing_required_fields == record.missing_required_fields


def test_blank_values_count_as_missing(assembler):
    record = assembler.assemble(REFERRAL_SCHEMA, mapped_values={"patientName": "   ", "dateOfBirth": "1950-03-14"})

    assert "patientName" in record.missing_required_fields
    assert "dateOfBirth" not in record.missing_required_fields


def test_highest_confidence_entity_wins_and_extra_diagnoses_are_secondary(assembler):
    record = assembler.assemble(REFERRAL_SCHEMA, entities=[
        _entity(EntityType.DIAGNOSIS, "Type 2 diabetes", confidence=70),
        _entity(EntityType.DIAGNOSIS, "Congestive heart failure", confidence=95),
        _entity(EntityType.DIAGNOSIS, "Hypertension", confidence=60),
    ])

    assert record.values["primaryDiagnosis"] == "Congestive heart failure"
    assert record.values["secondaryDiagnoses"] == ["Type 2 diabetes", "Hypertension"]


def test_mapped_values_take_precedence_and_unknown_keys_are_dropped(assembler):
    record = assembler.assemble(
        REFERRAL_SCHEMA,
        entities=[_entity(EntityType.DOB, "03/14/1950")],
        mapped_values={"dateOfBirth": "1950-03-14", "favoriteColor": "blue", "patientPhone": ""},
    )

    assert record.values == {"dateOfBirth": "1950-03-14"}


def test_full_name_is_split_for_intake_schema(assembler):
    record = assembler.assemble(PATIENT_INTAKE_SCHEMA, entities=[
        _entity(EntityType.PATIENT_NAME, "Jane Q. Doe"),
        _entity(EntityType.DOB, "1950-03-14"),
        _entity(EntityType.DIAGNOSIS, "CHF"),
        _entity(EntityType.INSURANCE, "Aetna"),
        _entity(EntityType.PHONE, "555-0100"),
    ])

    assert record.values["firstName"] == "Jane Q."
    assert record.values["lastName"] == "Doe"
    assert record.values["diagnosis"] == "CHF"
    assert record.values["primaryInsurance"] == "Aetna"
    assert record.values["phoneNumber"] == "555-0100"
    assert record.missing_required_fields == set()


def test_array_fields_are_coerced(assembler):
    record = assembler.assemble(PATIENT_INTAKE_SCHEMA, mapped_values={"medications": "Metformin 500mg, Lisinopril"})

    assert record.values["medications"] == ["Metformin 500mg", "Lisinopril"]


@pytest.mark.parametrize("raw, expected", [
    ("Jane Doe", ("Jane", "Doe")),
    ("Doe, Jane", ("Jane", "Doe")),
    ("Cher", ("Cher", "")),
])
def test_split_full_name(raw, expected):
    assert split_full_name(raw) == expected


@pytest.mark.asyncio
async def test_draft_lists_missing_fields(scripted_client):
    client = scripted_client({DRAFTER: "  Thank you for the referral.  "})
    assembler = RecordAssembler(client)
    record = assembler.assemble(REFERRAL_SCHEMA, entities=[_entity(EntityType.PATIENT_NAME, "Jane Doe")])

    drafted, result = await assembler.draft_acknowledgment(record)

    assert result.status == StageStatus.COMPLETED
    assert drafted.auto_draft_text == "Thank you for the referral."
    assert drafted.draft_failed is False
    assert "dateOfBirth" in client.calls[0]["contents"]
    assert record.auto_draft_text == ""


@pytest.mark.asyncio
async def test_draft_failure_keeps_record(scripted_client):
    assembler = RecordAssembler(scripted_client({DRAFTER: APIClientError("down")}))
    record = assembler.assemble(REFERRAL_SCHEMA, entities=[_entity(EntityType.PATIENT_NAME, "Jane Doe")])

    drafted, result = await assembler.draft_acknowledgment(record)

    assert result.status == StageStatus.FAILED
    assert drafted.auto_draft_text == ""
    assert drafted.draft_failed is True
    assert drafted.values == record.values
    assert drafted.missing_required_fields == record.missing_required_fields

"""Built-in target schemas.

Defined once here and referenced by id from the field mapper and the record
assembler.
"""

from typing import Dict

from intake_ai.core.exceptions import ConfigurationError
from intake_ai.schemas.target_schema import FieldType, SchemaField, TargetSchema

PATIENT_INTAKE_SCHEMA = TargetSchema(
    schema_id="patient_intake",
    version=1,
    fields={
        "firstName": SchemaField(
            type=FieldType.STRING, required=True,
            description="Patient first name", examples=["John", "Mary", "Robert"],
        ),
        "lastName": SchemaField(
            type=FieldType.STRING, required=True,
            description="Patient last name", examples=["Smith", "Johnson", "Williams"],
        ),
        "dateOfBirth": SchemaField(
            type=FieldType.DATE, required=True,
            description="Patient date of birth in YYYY-MM-DD format",
            examples=["1980-05-15", "1965-12-03"],
        ),
        "gender": SchemaField(description="Patient gender", examples=["Male", "Female", "Other", "M", "F"]),
        "ssn": SchemaField(description="Social Security Number", examples=["123-45-6789"]),
        "address": SchemaField(description="Patient street address", examples=["123 Main St"]),
        "city": SchemaField(description="Patient city", examples=["New York", "Chicago"]),
        "state": SchemaField(description="Patient state", examples=["NY", "CA", "Texas"]),
        "zipCode": SchemaField(description="Patient ZIP code", examples=["10001", "12345-6789"]),
        "phoneNumber": SchemaField(description="Patient phone number", examples=["(555) 123-4567"]),
        "email": SchemaField(description="Patient email address", examples=["patient@email.com"]),
        "emergencyContact": SchemaField(description="Emergency contact name", examples=["Jane Smith (spouse)"]),
        "emergencyPhone": SchemaField(description="Emergency contact phone number", examples=["555-987-6543"]),
        "primaryInsurance": SchemaField(description="Primary insurance provider", examples=["Aetna", "Medicare"]),
        "secondaryInsurance": SchemaField(description="Secondary insurance provider", examples=["Medicaid"]),
        "medicareId": SchemaField(description="Medicare ID number", examples=["1EG4-TE5-MK73"]),
        "medicaidId": SchemaField(description="Medicaid ID number", examples=["MC123456789"]),
        "primaryPhysician": SchemaField(description="Primary care physician name", examples=["Dr. John Smith"]),
        "referringPhysician": SchemaField(description="Referring physician name", examples=["Dr. Sarah Brown, MD"]),
        "diagnosis": SchemaField(description="Primary diagnosis or condition", examples=["Diabetes Type 2"]),
        "medications": SchemaField(
            type=FieldType.ARRAY,
            description="List of current medications", examples=['["Metformin 500mg", "Lisinopril 10mg"]'],
        ),
        "allergies": SchemaField(
            type=FieldType.ARRAY,
            description="List of known allergies", examples=['["Penicillin", "Latex"]'],
        ),
        "medicalHistory": SchemaField(
            description="Relevant medical history", examples=["Previous heart surgery in 2018"],
        ),
    },
)

REFERRAL_SCHEMA = TargetSchema(
    schema_id="referral",
    version=1,
    fields={
        "patientName": SchemaField(type=FieldType.STRING, required=True, description="Patient full name"),
        "dateOfBirth": SchemaField(type=FieldType.DATE, required=True, description="Patient date of birth"),
        "primaryDiagnosis": SchemaField(
            type=FieldType.STRING, required=True, description="Primary diagnosis for the referral",
        ),
        "referringPhysician": SchemaField(
            type=FieldType.STRING, required=True, description="Physician who issued the referral",
        ),
        "insuranceInfo": SchemaField(
            type=FieldType.STRING, required=True, description="Insurance carrier and member details",
        ),
        "medicalRecordNumber": SchemaField(description="Medical record number or patient identifier"),
        "patientAddress": SchemaField(description="Patient home address"),
        "patientPhone": SchemaField(description="Patient phone number"),
        "secondaryDiagnoses": SchemaField(type=FieldType.ARRAY, description="Additional diagnoses"),
    },
)

TARGET_SCHEMAS: Dict[str, TargetSchema] = {
    schema.schema_id: schema for schema in (PATIENT_INTAKE_SCHEMA, REFERRAL_SCHEMA)
}


def get_target_schema(schema_id: str) -> TargetSchema:
    """Look up a target schema by id.

    Raises:
        ConfigurationError: If no schema is registered under ``schema_id``
    """
    try:
        return TARGET_SCHEMAS[schema_id]
    except KeyError:
        raise ConfigurationError(
            f"Unknown target schema '{schema_id}'. Available: {sorted(TARGET_SCHEMAS)}"
        )

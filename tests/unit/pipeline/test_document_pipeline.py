"""End-to-end tests for the caller-facing pipeline operations."""

import asyncio
import json

import pytest
from unittest.mock import patch

from conftest import (
    CLASSIFIER,
    COMPLIANCE,
    DRAFTER,
    EXTRACTOR,
    MAPPED_EXTRACTION,
    MAPPING,
    QAPI_ANALYSIS,
    RESOLVER,
    STRUCTURE,
)
from intake_ai.core.exceptions import APIClientError, ConfigurationError, PipelineAbortError
from intake_ai.core.unified_llm import LLMProvider
from intake_ai.pipeline import DocumentIntelligencePipeline
from intake_ai.repositories import AssembledRecordRepository, PipelineRunRepository
from intake_ai.schemas.documents import DocumentFormat, DocumentType
from intake_ai.schemas.metrics import MetricShape
from intake_ai.schemas.records import PipelineOutcome
from intake_ai.services.extraction import NO_AMBIGUITY_MESSAGE


@pytest.fixture
def run_repository():
    return PipelineRunRepository()


@pytest.fixture
def record_repository():
    return AssembledRecordRepository()


@pytest.fixture
def build_pipeline(settings, scripted_client, run_repository, record_repository):
    def _build(responses, extraction_responses=None):
        client = scripted_client(responses, model="primary-model")
        extraction_client = None
        if extraction_responses is not None:
            extraction_client = scripted_client(extraction_responses, model="extraction-model")
        pipeline = DocumentIntelligencePipeline(
            client,
            extraction_client=extraction_client,
            settings=settings,
            run_repository=run_repository,
            record_repository=record_repository,
        )
        return pipeline, client
    return _build


@pytest.mark.asyncio
async def test_process_document_end_to_end(build_pipeline, referral_responses, referral_text, run_repository,
                                           record_repository):
    pipeline, client = build_pipeline(referral_responses)

    result = await pipeline.process_document(referral_text, DocumentFormat.PLAIN_TEXT)

    assert result.classification.document_type == DocumentType.REFERRAL
    assert len(result.ner.entities) == 8
    assert result.record.values["patientName"] == "Jane Doe"
    assert result.record.values["secondaryDiagnoses"] == ["Type 2 diabetes"]
    assert result.record.missing_required_fields == set()
    assert result.record.auto_draft_text.startswith("Thank you")
    assert result.reasoning.startswith("Step 1")
    assert result.run.outcome == PipelineOutcome.SUCCESS
    assert result.run.overall_confidence == 90
    assert result.run.service_calls == 4
    assert result.run.estimated_cost == 20
    assert await run_repository.get_by_id(result.run.run_id) == result.run
    assert await record_repository.count() == 1
    assert result.to_dict()["run"]["outcome"] == "success"


@pytest.mark.asyncio
async def test_classification_and_extraction_run_concurrently(build_pipeline, referral_responses, referral_text):
    started = []
    release = asyncio.Event()

    def gated(key):
        async def respond(contents):
            started.append(key)
            if len(started) == 2:
                release.set()
            await asyncio.wait_for(release.wait(), timeout=1)
            return referral_responses[key]
        return respond

    responses = dict(referral_responses)
    responses[CLASSIFIER] = gated(CLASSIFIER)
    responses[EXTRACTOR] = gated(EXTRACTOR)
    pipeline, _ = build_pipeline(responses)

    result = await pipeline.process_document(referral_text)

    assert set(started) == {CLASSIFIER, EXTRACTOR}
    assert result.run.outcome == PipelineOutcome.SUCCESS


@pytest.mark.asyncio
async def test_resolver_skipped_when_entities_are_confident(build_pipeline, referral_responses, referral_text,
                                                            entity_payload):
    responses = dict(referral_responses)
    responses[EXTRACTOR] = json.dumps({
        "entities": [entity_payload(referral_text, "patient_name", "Jane Doe", 97)],
        "confidence": 97,
    })
    pipeline, client = build_pipeline(responses)

    result = await pipeline.process_document(referral_text)

    assert result.reasoning == NO_AMBIGUITY_MESSAGE
    assert client.calls_for(RESOLVER) == []
    assert result.run.service_calls == 3
    assert "dateOfBirth" in result.record.missing_required_fields


@pytest.mark.asyncio
async def test_failed_stage_marks_run_partial(build_pipeline, referral_responses, referral_text):
    responses = dict(referral_responses)
    responses[CLASSIFIER] = APIClientError("classifier down")
    responses[DRAFTER] = APIClientError("drafter down")
    pipeline, _ = build_pipeline(responses)

    result = await pipeline.process_document(referral_text)

    assert result.run.outcome == PipelineOutcome.PARTIAL
    assert result.classification.document_type == DocumentType.UNKNOWN
    assert result.record.draft_failed is True
    assert result.record.auto_draft_text == ""
    assert result.record.values["patientName"] == "Jane Doe"
    assert result.run.overall_confidence == 44


@pytest.mark.asyncio
async def test_every_stage_failing_marks_run_failed(build_pipeline, referral_text):
    pipeline, _ = build_pipeline({})

    result = await pipeline.process_document(referral_text)

    assert result.run.outcome == PipelineOutcome.FAILED
    assert result.ner.entities == []
    assert result.record.missing_required_fields == set(pipeline.schema.required_fields)


@pytest.mark.asyncio
async def test_stage_timeout_degrades(build_pipeline, referral_responses, referral_text):
    async def hang(contents):
        await asyncio.sleep(5)
        return "{}"

    responses = dict(referral_responses)
    responses[CLASSIFIER] = hang
    pipeline, _ = build_pipeline(responses)

    result = await pipeline.process_document(referral_text, timeout=0.05)

    assert result.classification.document_type == DocumentType.UNKNOWN
    assert result.run.stage_statuses["classification"] == "failed"
    assert result.run.outcome == PipelineOutcome.PARTIAL


@pytest.mark.asyncio
async def test_distinct_extraction_client(build_pipeline, referral_responses, referral_text):
    extraction_responses = {EXTRACTOR: referral_responses[EXTRACTOR]}
    responses = {key: value for key, value in referral_responses.items() if key != EXTRACTOR}
    pipeline, client = build_pipeline(responses, extraction_responses)

    result = await pipeline.process_document(referral_text)

    assert client.calls_for(EXTRACTOR) == []
    assert result.run.model_identifiers == ["primary-model", "extraction-model"]


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["", "   \n\t", b"", b"  "])
async def test_empty_document_aborts(build_pipeline, referral_responses, content, run_repository):
    pipeline, client = build_pipeline(referral_responses)

    with pytest.raises(PipelineAbortError):
        await pipeline.process_document(content, DocumentFormat.PDF)

    assert client.calls == []
    assert await run_repository.count() == 0


@pytest.mark.asyncio
async def test_unknown_format_aborts(build_pipeline, referral_responses, referral_text):
    pipeline, _ = build_pipeline(referral_responses)

    with pytest.raises(PipelineAbortError):
        await pipeline.process_document(referral_text, "spreadsheet")


@pytest.mark.asyncio
async def test_bytes_are_accepted(build_pipeline, referral_responses, referral_text):
    pipeline, _ = build_pipeline(referral_responses)

    result = await pipeline.process_document(referral_text.encode("utf-8"), "pdf")

    assert result.document.declared_format == DocumentFormat.PDF
    assert result.record.values["patientName"] == "Jane Doe"


@pytest.mark.asyncio
async def test_map_fields_low_confidence_date_of_birth(build_pipeline, record_repository):
    text = "First Name: John\nLast Name: Smith\nDOB: 05/15/1980\n"
    responses = {
        STRUCTURE: json.dumps({"fields": ["First Name", "Last Name", "DOB"]}),
        MAPPING: json.dumps({
            "mappings": [
                {"sourceField": "First Name", "targetField": "firstName", "confidence": 95},
                {"sourceField": "Last Name", "targetField": "lastName", "confidence": 94},
                {"sourceField": "DOB", "targetField": "dateOfBirth", "confidence": 45},
            ],
            "confidence": 80,
        }),
        MAPPED_EXTRACTION: json.dumps({"extractedData": {"firstName": "John", "lastName": "Smith"}}),
    }
    pipeline, _ = build_pipeline(responses)

    result = await pipeline.map_fields(text, "patient_intake")

    assert "dateOfBirth" not in result.committed_targets
    assert [s.suggested_target_field for s in result.suggestions] == ["dateOfBirth"]
    assert result.record.missing_required_fields == {"dateOfBirth"}
    assert result.record.values == {"firstName": "John", "lastName": "Smith"}
    assert await record_repository.count() == 1


@pytest.mark.asyncio
async def test_map_fields_unknown_schema_aborts(build_pipeline):
    pipeline, client = build_pipeline({})

    with pytest.raises(PipelineAbortError, match="Unknown target schema"):
        await pipeline.map_fields("First Name: John", "dental_claim")

    assert client.calls == []


def test_unknown_default_schema_is_a_configuration_error(settings, scripted_client):
    with pytest.raises(ConfigurationError):
        DocumentIntelligencePipeline(scripted_client(), settings=settings, schema_id="dental_claim")


def test_validate_metrics_needs_no_service(build_pipeline):
    pipeline, client = build_pipeline({})

    result = pipeline.validate_metrics('{"overallScore": 77}', "qapi_analysis")

    assert result.analysis.overall_score == 77
    assert client.calls == []
    assert pipeline.validate_metrics('{"criticalIssues": NaN}', "compliance_validation").compliance.critical_issues == 0
    with pytest.raises(PipelineAbortError):
        pipeline.validate_metrics("{}", "weather_report")


@pytest.mark.asyncio
async def test_metric_operations_are_tracked(build_pipeline, run_repository):
    pipeline, _ = build_pipeline({
        QAPI_ANALYSIS: json.dumps({"overallScore": 88}),
        COMPLIANCE: "not json",
    })

    analysis = await pipeline.analyze_metrics({"falls": 3})
    compliance = await pipeline.validate_compliance({"overdueCount": 3})
    projects = await pipeline.recommend_improvement_projects({"overallScore": 88})

    assert analysis.analysis.overall_score == 88
    assert compliance.used_default is True
    assert compliance.shape == MetricShape.COMPLIANCE_VALIDATION
    assert len(projects.projects) == 2
    runs = await run_repository.get_by_module("qapi_metrics")
    assert [run.outcome for run in runs] == [
        PipelineOutcome.SUCCESS, PipelineOutcome.PARTIAL, PipelineOutcome.FAILED
    ]
    assert runs[1].stage_statuses == {"compliance_validation": "degraded"}
    assert runs[1].overall_confidence == 0


@pytest.mark.asyncio
async def test_process_hl7_message(build_pipeline, referral_responses):
    pipeline, client = build_pipeline(referral_responses)
    message = "MSH|^~\\&|EPIC\rPID|1||884421||DOE^JANE||19500314|F\r"

    result = await pipeline.process_hl7_message(message)

    assert result.document.declared_format == DocumentFormat.HL7
    assert json.loads(result.document.content)["patient"]["name"] == "DOE^JANE"
    assert "DOE^JANE" in client.calls_for(EXTRACTOR)[0]["contents"]


@pytest.mark.asyncio
async def test_empty_hl7_message_aborts(build_pipeline):
    pipeline, _ = build_pipeline({})

    with pytest.raises(PipelineAbortError):
        await pipeline.process_hl7_message("\r\n\r")


@pytest.mark.asyncio
async def test_process_fhir_resource(build_pipeline, referral_responses):
    pipeline, _ = build_pipeline(referral_responses)
    resource = {"resourceType": "ServiceRequest", "subject": {"display": "Jane Doe"}}

    result = await pipeline.process_fhir_resource(resource)

    assert result.document.declared_format == DocumentFormat.FHIR
    assert json.loads(result.document.content) == resource


@pytest.mark.asyncio
@pytest.mark.parametrize("resource", [{}, "not json"])
async def test_invalid_fhir_resource_aborts(build_pipeline, resource):
    pipeline, _ = build_pipeline({})

    with pytest.raises(PipelineAbortError):
        await pipeline.process_fhir_resource(resource)


def test_from_settings_builds_provider_clients(settings):
    settings.extraction_llm_provider = "gemini"

    with patch("intake_ai.core.unified_llm.GeminiClient"):
        pipeline = DocumentIntelligencePipeline.from_settings(settings)

    assert pipeline.classifier.client.provider == LLMProvider.OPENROUTER
    assert pipeline.extractor.client.provider == LLMProvider.GEMINI
    assert pipeline.resolver.threshold == settings.ambiguity_threshold


def test_from_settings_without_api_key_fails(settings):
    settings.openrouter_api_key = ""

    with pytest.raises(ConfigurationError):
        DocumentIntelligencePipeline.from_settings(settings)

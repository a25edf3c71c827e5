"""Tests for QAPI metric recovery and validation."""

import json
from datetime import datetime, timezone

import pytest

from conftest import COMPLIANCE, PIP, QAPI_ANALYSIS
from intake_ai.core.base_stage import StageStatus
from intake_ai.core.exceptions import APIClientError
from intake_ai.schemas.metrics import MetricShape, RiskLevel, ValidationStatus
from intake_ai.services.quality import MetricValidator, validate_metrics

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


def test_analysis_is_recovered_from_fenced_text():
    raw = "Here is the analysis:\n```json\n" + json.dumps({
        "dataValidation": {"status": "flagged", "anomalies": ["Spike in falls"], "confidence": 0.9},
        "copRisks": [{"area": "Patient Safety", "riskLevel": "high", "description": "Falls", "aiConfidence": 0.8}],
        "overallScore": 74,
        "validationStatus": "flagged",
        "recommendations": ["Audit fall assessments"],
        "rootCauses": {"falls": "Staffing"},
    }) + "\n```"

    result = validate_metrics(raw, MetricShape.QAPI_ANALYSIS)

    analysis = result.analysis
    assert result.used_default is False
    assert result.corrected_fields == []
    assert analysis.overall_score == 74
    assert analysis.validation_status == ValidationStatus.FLAGGED
    assert analysis.data_validation.confidence == 90
    assert analysis.cop_risks[0].risk_level == RiskLevel.HIGH
    assert analysis.cop_risks[0].ai_confidence == 80
    assert analysis.root_causes == {"falls": "Staffing"}


def test_wrongly_typed_analysis_fields_get_defaults():
    raw = json.dumps({
        "overallScore": "excellent",
        "copRisks": "none",
        "recommendations": "monitor",
        "validationStatus": "great",
    })

    result = validate_metrics(raw, MetricShape.QAPI_ANALYSIS)

    analysis = result.analysis
    assert analysis.overall_score == 82
    assert analysis.cop_risks[0].area == "Data Integrity"
    assert analysis.recommendations == ["Continue monitoring quality trends", "Review high-risk areas monthly"]
    assert analysis.validation_status == ValidationStatus.VERIFIED
    assert set(result.corrected_fields) >= {"overallScore", "copRisks", "recommendations", "validationStatus"}


def test_unparseable_analysis_uses_full_default():
    result = validate_metrics("The metrics look fine overall.", MetricShape.QAPI_ANALYSIS)

    assert result.used_default is True
    assert result.analysis.overall_score == 82
    assert "falls" in result.analysis.root_causes


def test_projects_are_validated():
    raw = json.dumps([
        {
            "title": "Fall Prevention",
            "priority": "urgent",
            "description": "Reduce falls",
            "tasks": [{"description": "Review tools", "assignee": "Clinical Director"}],
        },
        {"priority": "low"},
    ])

    result = validate_metrics(raw, MetricShape.PIP_RECOMMENDATIONS, now=NOW)

    first, second = result.projects
    assert first.priority == RiskLevel.MEDIUM
    assert first.assigned_to == "Quality Manager"
    assert first.due_date.startswith("2025-04-01")
    assert first.tasks[0].due_date.startswith("2025-01-31")
    assert second.title == "Quality Improvement Project 2"
    assert second.priority == RiskLevel.LOW
    assert second.ai_recommendation == "AI-generated improvement recommendation"
    assert "[0].priority" in result.corrected_fields


def test_unparseable_projects_use_two_defaults():
    result = validate_metrics("no projects today", MetricShape.PIP_RECOMMENDATIONS, now=NOW)

    assert result.used_default is True
    assert [p.title for p in result.projects] == [
        "Fall Prevention Enhancement Program",
        "Documentation Timeliness Improvement",
    ]
    assert result.projects[0].due_date.startswith("2025-04-01")
    assert result.projects[0].tasks[0].due_date.startswith("2025-01-31")


def test_compliance_is_validated():
    raw = json.dumps({
        "alerts": [{"message": "License expiring", "severity": "CRITICAL", "staffMember": "RN Lee"}],
        "criticalIssues": 1,
        "recommendations": ["Renew license"],
    })

    result = validate_metrics(raw, "compliance_validation")

    alert = result.compliance.alerts[0]
    assert alert.severity == RiskLevel.CRITICAL
    assert alert.staff_member == "RN Lee"
    assert result.compliance.critical_issues == 1


def test_unparseable_compliance_uses_default_alert():
    result = validate_metrics("", MetricShape.COMPLIANCE_VALIDATION, now=NOW)

    alert = result.compliance.alerts[0]
    assert result.used_default is True
    assert alert.message == "3 staff members have documentation overdue > 48 hours"
    assert alert.severity == RiskLevel.HIGH


@pytest.mark.asyncio
async def test_analyze_metrics_calls_service(scripted_client):
    client = scripted_client({QAPI_ANALYSIS: json.dumps({"overallScore": 91})})

    result = await MetricValidator(client).analyze_metrics({"falls": {"count": 2}})

    assert result.status == StageStatus.COMPLETED
    assert result.value.analysis.overall_score == 91
    assert '"falls"' in client.calls[0]["contents"]


@pytest.mark.asyncio
async def test_recommendations_fall_back_when_service_fails(scripted_client):
    client = scripted_client({PIP: APIClientError("down")})

    result = await MetricValidator(client).recommend_improvement_projects({"overallScore": 70})

    assert result.status == StageStatus.FAILED
    assert result.value.used_default is True
    assert len(result.value.projects) == 2


@pytest.mark.asyncio
async def test_validate_compliance_calls_service(scripted_client):
    client = scripted_client({COMPLIANCE: json.dumps({"alerts": [], "criticalIssues": 0})})

    result = await MetricValidator(client).validate_compliance({"overdueCount": 0})

    assert result.value.compliance.alerts == []
    assert result.value.shape == MetricShape.COMPLIANCE_VALIDATION


@pytest.mark.parametrize("raw", [
    '{"criticalIssues": NaN}',
    '{"criticalIssues": Infinity}',
    '{"criticalIssues": 1e999}',
])
def test_non_finite_critical_issues_use_default(raw):
    result = validate_metrics(raw, MetricShape.COMPLIANCE_VALIDATION, now=NOW)

    assert result.compliance.critical_issues == 0
    assert "criticalIssues" in result.corrected_fields


def test_non_finite_overall_score_uses_default():
    result = validate_metrics('{"overallScore": -Infinity}', MetricShape.QAPI_ANALYSIS, now=NOW)

    assert result.analysis.overall_score == 82


@pytest.mark.asyncio
async def test_unparseable_service_response_degrades(scripted_client):
    client = scripted_client({QAPI_ANALYSIS: "I cannot help with that."})

    result = await MetricValidator(client).analyze_metrics({"falls": 3})

    assert result.status == StageStatus.DEGRADED
    assert result.value.used_default is True
    assert result.value.analysis.overall_score == 82

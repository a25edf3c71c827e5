"""QAPI metric validation.

Free-form analytical text from the text-generation service is turned into
typed quality metrics with the same parse, validate, fall back pattern the
extraction stages use. Every field is type-checked individually; a field of
the wrong type is replaced by its default and reported in
``ValidatedMetrics.corrected_fields``. When nothing can be parsed at all the
whole shape falls back to its default.
"""

import json
import math
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from intake_ai.core.base_stage import DEFAULT_TIMEOUT_SECONDS, BaseStage, StageResult
from intake_ai.core.exceptions import MalformedResponseError
from intake_ai.schemas.metrics import (
    ComplianceAlert,
    ComplianceValidation,
    CopRisk,
    DataValidation,
    MetricShape,
    PIPProject,
    PIPTask,
    QAPIAnalysis,
    RiskLevel,
    ValidatedMetrics,
    ValidationStatus,
)
from intake_ai.utils.confidence import clamp_confidence, normalize_confidence
from intake_ai.utils.json_parser import recover_json
from intake_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_OVERALL_SCORE = 82.0
DEFAULT_DATA_CONFIDENCE = 85.0

DEFAULT_COP_RISKS = [
    {
        "area": "Data Integrity",
        "risk_level": RiskLevel.LOW,
        "description": "All quality metrics appear consistent with expected ranges",
        "ai_confidence": 85.0,
    }
]

DEFAULT_RECOMMENDATIONS = [
    "Continue monitoring quality trends",
    "Review high-risk areas monthly",
]

DEFAULT_ROOT_CAUSES = {
    "falls": "Primary causes may include environmental factors and patient mobility issues",
    "infections": "Infection control protocols should be reviewed for compliance",
    "wounds": "Skin integrity assessments need regular monitoring",
    "missedVisits": "Scheduling and staffing optimization required",
    "readmissions": "Care transition protocols may need enhancement",
}

DEFAULT_COMPLIANCE_RECOMMENDATIONS = [
    "Implement automated documentation reminders",
    "Schedule credential renewal review meetings",
]

PROJECT_DUE_DAYS = 90
TASK_DUE_DAYS = 30


def _due(now: datetime, days: int) -> str:
    return (now + timedelta(days=days)).isoformat()


def _stamp(now: datetime) -> int:
    return int(now.timestamp() * 1000)


def default_analysis() -> QAPIAnalysis:
    return QAPIAnalysis(
        data_validation=DataValidation(confidence=DEFAULT_DATA_CONFIDENCE),
        cop_risks=[CopRisk(**risk) for risk in DEFAULT_COP_RISKS],
        overall_score=DEFAULT_OVERALL_SCORE,
        validation_status=ValidationStatus.VERIFIED,
        recommendations=list(DEFAULT_RECOMMENDATIONS),
        root_causes=dict(DEFAULT_ROOT_CAUSES),
    )


def default_projects(now: Optional[datetime] = None) -> List[PIPProject]:
    now = now or datetime.now(timezone.utc)
    stamp = _stamp(now)
    return [
        PIPProject(
            id=f"pip-{stamp}-default-1",
            title="Fall Prevention Enhancement Program",
            priority=RiskLevel.HIGH,
            assigned_to="Quality Manager",
            due_date=_due(now, 90),
            ai_recommendation=(
                "Comprehensive fall risk assessment and prevention protocol implementation "
                "to reduce patient fall incidents"
            ),
            tasks=[
                PIPTask(
                    id=f"task-{stamp}-1-1",
                    description="Review current fall risk assessment tools",
                    assignee="Clinical Director",
                    due_date=_due(now, 30),
                )
            ],
        ),
        PIPProject(
            id=f"pip-{stamp}-default-2",
            title="Documentation Timeliness Improvement",
            priority=RiskLevel.MEDIUM,
            assigned_to="Documentation Coordinator",
            due_date=_due(now, 60),
            ai_recommendation=(
                "Streamline documentation processes and implement automated reminders "
                "to improve compliance timeliness"
            ),
            tasks=[
                PIPTask(
                    id=f"task-{stamp}-2-1",
                    description="Analyze current documentation workflows",
                    assignee="QA Analyst",
                    due_date=_due(now, 14),
                )
            ],
        ),
    ]


def default_compliance(now: Optional[datetime] = None) -> ComplianceValidation:
    now = now or datetime.now(timezone.utc)
    return ComplianceValidation(
        alerts=[
            ComplianceAlert(
                message="3 staff members have documentation overdue > 48 hours",
                severity=RiskLevel.HIGH,
                staff_member="Multiple",
                due_date=now.isoformat(),
            ),
            ComplianceAlert(
                message="2 credential renewals required within 30 days",
                severity=RiskLevel.MEDIUM,
                staff_member="Clinical Staff",
                due_date=_due(now, 30),
            ),
        ],
        validation_status=ValidationStatus.VERIFIED,
        critical_issues=2,
        recommendations=list(DEFAULT_COMPLIANCE_RECOMMENDATIONS),
    )


class _FieldChecker:
    """Per-field type checks that record every substitution."""

    def __init__(self):
        self.corrected: List[str] = []

    def correct(self, path: str, value: Any) -> None:
        if value is not None:
            self.corrected.append(path)

    def number(self, data: Dict[str, Any], key: str, default: float, path: str) -> float:
        value = data.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            try:
                number = float(value)
            except OverflowError:
                number = math.inf
            if math.isfinite(number):
                return number
        self.correct(path, value)
        return default

    def text(self, data: Dict[str, Any], key: str, default: str, path: str) -> str:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value
        self.correct(path, value)
        return default

    def text_list(self, data: Dict[str, Any], key: str, default: List[str], path: str) -> List[str]:
        value = data.get(key)
        if isinstance(value, list):
            return [str(item) for item in value if item is not None]
        self.correct(path, value)
        return list(default)

    def choice(self, data: Dict[str, Any], key: str, enum_cls: Type[Enum], default: Enum, path: str) -> Any:
        value = data.get(key)
        if isinstance(value, str):
            try:
                return enum_cls(value.strip().lower())
            except ValueError:
                pass
        self.correct(path, value)
        return default


def _validate_analysis(data: Dict[str, Any], checker: _FieldChecker) -> QAPIAnalysis:
    raw_validation = data.get("dataValidation", data.get("data_validation"))
    if not isinstance(raw_validation, dict):
        checker.correct("dataValidation", raw_validation)
        raw_validation = {}

    # Providers answer with 0-1 fractions here as often as with percentages
    confidence = normalize_confidence(
        checker.number(raw_validation, "confidence", DEFAULT_DATA_CONFIDENCE, "dataValidation.confidence"),
        DEFAULT_DATA_CONFIDENCE,
    )

    data_validation = DataValidation(
        status=checker.choice(
            raw_validation, "status", ValidationStatus, ValidationStatus.VERIFIED, "dataValidation.status"
        ),
        anomalies=checker.text_list(raw_validation, "anomalies", [], "dataValidation.anomalies"),
        confidence=confidence,
    )

    raw_risks = data.get("copRisks", data.get("cop_risks"))
    if isinstance(raw_risks, list):
        cop_risks = [
            CopRisk(
                area=checker.text(risk, "area", "Unspecified", f"copRisks[{index}].area"),
                risk_level=checker.choice(
                    risk, "riskLevel", RiskLevel, RiskLevel.MEDIUM, f"copRisks[{index}].riskLevel"
                ),
                description=checker.text(risk, "description", "", f"copRisks[{index}].description"),
                ai_confidence=normalize_confidence(risk.get("aiConfidence")),
            )
            for index, risk in enumerate(raw_risks)
            if isinstance(risk, dict)
        ]
    else:
        checker.correct("copRisks", raw_risks)
        cop_risks = [CopRisk(**risk) for risk in DEFAULT_COP_RISKS]

    raw_causes = data.get("rootCauses", data.get("root_causes"))
    if isinstance(raw_causes, dict) and raw_causes:
        root_causes = {str(key): str(value) for key, value in raw_causes.items()}
    else:
        checker.correct("rootCauses", raw_causes)
        root_causes = dict(DEFAULT_ROOT_CAUSES)

    return QAPIAnalysis(
        data_validation=data_validation,
        cop_risks=cop_risks,
        overall_score=clamp_confidence(
            checker.number(data, "overallScore", DEFAULT_OVERALL_SCORE, "overallScore")
        ),
        validation_status=checker.choice(
            data, "validationStatus", ValidationStatus, ValidationStatus.VERIFIED, "validationStatus"
        ),
        recommendations=checker.text_list(data, "recommendations", DEFAULT_RECOMMENDATIONS, "recommendations"),
        root_causes=root_causes,
    )


def _validate_projects(data: List[Any], checker: _FieldChecker, now: datetime) -> List[PIPProject]:
    stamp = _stamp(now)
    projects = []
    for index, raw in enumerate(item for item in data if isinstance(item, dict)):
        raw_tasks = raw.get("tasks")
        tasks = []
        if isinstance(raw_tasks, list):
            for task_index, task in enumerate(t for t in raw_tasks if isinstance(t, dict)):
                path = f"[{index}].tasks[{task_index}]"
                tasks.append(PIPTask(
                    id=f"task-{stamp}-{index}-{task_index}",
                    description=checker.text(task, "description", "Implementation task", f"{path}.description"),
                    assignee=checker.text(task, "assignee", "Team Member", f"{path}.assignee"),
                    due_date=checker.text(task, "dueDate", _due(now, TASK_DUE_DAYS), f"{path}.dueDate"),
                ))
        else:
            checker.correct(f"[{index}].tasks", raw_tasks)

        recommendation = raw.get("description") or raw.get("aiRecommendation")
        projects.append(PIPProject(
            id=f"pip-{stamp}-{index}",
            title=checker.text(raw, "title", f"Quality Improvement Project {index + 1}", f"[{index}].title"),
            priority=checker.choice(raw, "priority", RiskLevel, RiskLevel.MEDIUM, f"[{index}].priority"),
            assigned_to=checker.text(raw, "assignedTo", "Quality Manager", f"[{index}].assignedTo"),
            due_date=_due(now, PROJECT_DUE_DAYS),
            ai_recommendation=(
                recommendation if isinstance(recommendation, str) and recommendation.strip()
                else "AI-generated improvement recommendation"
            ),
            tasks=tasks,
        ))
    return projects


def _validate_compliance(data: Dict[str, Any], checker: _FieldChecker, now: datetime) -> ComplianceValidation:
    raw_alerts = data.get("alerts")
    if isinstance(raw_alerts, list):
        alerts = []
        for index, raw in enumerate(alert for alert in raw_alerts if isinstance(alert, dict)):
            staff = raw.get("staffMember")
            due_date = raw.get("dueDate")
            alerts.append(ComplianceAlert(
                message=checker.text(
                    raw, "message", raw.get("description") or "Compliance alert", f"alerts[{index}].message"
                ),
                severity=checker.choice(raw, "severity", RiskLevel, RiskLevel.MEDIUM, f"alerts[{index}].severity"),
                staff_member=staff if isinstance(staff, str) else None,
                due_date=due_date if isinstance(due_date, str) else None,
            ))
    else:
        checker.correct("alerts", raw_alerts)
        alerts = default_compliance(now).alerts

    critical = checker.number(data, "criticalIssues", 0, "criticalIssues")
    return ComplianceValidation(
        alerts=alerts,
        validation_status=checker.choice(
            data, "validationStatus", ValidationStatus, ValidationStatus.VERIFIED, "validationStatus"
        ),
        critical_issues=max(0, int(critical)),
        recommendations=checker.text_list(data, "recommendations", [], "recommendations"),
    )


def validate_metrics(
    raw_text: Any,
    expected_shape: MetricShape,
    now: Optional[datetime] = None,
) -> ValidatedMetrics:
    """Recover typed quality metrics from analytical text.

    Args:
        raw_text: Model output expected to contain the JSON for ``expected_shape``
        expected_shape: Which metric shape to validate against
        now: Reference time for generated due dates and ids

    Returns:
        ValidatedMetrics; never raises for malformed input
    """
    shape = MetricShape(expected_shape)
    now = now or datetime.now(timezone.utc)
    checker = _FieldChecker()

    if shape == MetricShape.PIP_RECOMMENDATIONS:
        outcome = recover_json(raw_text, [])
        data = outcome.value
        if isinstance(data, dict):
            data = data.get("projects", data.get("recommendations"))
        if not outcome.recovered or not isinstance(data, list) or not data:
            LOGGER.warning("Using default PIP projects", extra={"recovered": outcome.recovered})
            return ValidatedMetrics(shape=shape, projects=default_projects(now), used_default=True)
        projects = _validate_projects(data, checker, now)
        return ValidatedMetrics(shape=shape, projects=projects, corrected_fields=checker.corrected)

    outcome = recover_json(raw_text, {}, expected_type=dict)
    if not outcome.recovered:
        LOGGER.warning("Using default metrics", extra={"shape": shape.value})
        if shape == MetricShape.QAPI_ANALYSIS:
            return ValidatedMetrics(shape=shape, analysis=default_analysis(), used_default=True)
        return ValidatedMetrics(shape=shape, compliance=default_compliance(now), used_default=True)

    if shape == MetricShape.QAPI_ANALYSIS:
        result = ValidatedMetrics(
            shape=shape,
            analysis=_validate_analysis(outcome.value, checker),
            corrected_fields=checker.corrected,
        )
    else:
        result = ValidatedMetrics(
            shape=shape,
            compliance=_validate_compliance(outcome.value, checker, now),
            corrected_fields=checker.corrected,
        )

    if checker.corrected:
        LOGGER.info(
            "Replaced invalid metric fields with defaults",
            extra={"shape": shape.value, "fields": checker.corrected}
        )
    return result


class MetricValidator(BaseStage):
    """QAPI analysis, PIP recommendation and compliance checks."""

    name = "metric_validation"

    ANALYSIS_PROMPT = """You are a clinical quality expert with deep knowledge of CMS regulations, QAPI requirements, and healthcare data validation. Respond ONLY with valid JSON in this exact format:
{
  "dataValidation": {"status": "verified", "anomalies": [], "confidence": 85},
  "copRisks": [
    {"area": "Patient Safety", "riskLevel": "medium", "description": "Risk description", "aiConfidence": 90}
  ],
  "overallScore": 82,
  "validationStatus": "verified",
  "recommendations": ["Recommendation 1", "Recommendation 2"],
  "rootCauses": {"falls": "Root cause analysis", "infections": "Root cause analysis"}
}"""

    PIP_PROMPT = """You are a healthcare quality improvement specialist. Respond ONLY with valid JSON array in this exact format:
[
  {
    "title": "Fall Prevention Enhancement Program",
    "priority": "high",
    "description": "Implement comprehensive fall risk assessment and prevention protocols",
    "assignedTo": "Quality Manager",
    "tasks": [
      {"description": "Review current fall risk assessment tools", "assignee": "Clinical Director", "dueDate": "2025-02-15"}
    ]
  }
]"""

    COMPLIANCE_PROMPT = """You are a compliance monitoring specialist. Respond ONLY with valid JSON in this exact format:
{
  "alerts": [
    {"message": "Alert description", "severity": "high", "staffMember": "Staff Name", "dueDate": "2025-02-15"}
  ],
  "validationStatus": "verified",
  "criticalIssues": 2,
  "recommendations": ["Recommendation 1", "Recommendation 2"]
}"""

    def __init__(self, client: Any, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS):
        super().__init__(client, timeout_seconds=timeout_seconds)

    async def analyze_metrics(
        self,
        raw_metrics: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> StageResult[ValidatedMetrics]:
        """Data validation, CoP risk assessment and overall QAPI score."""
        contents = (
            "As a healthcare quality assurance AI specialist, analyze these quality metrics "
            "for data integrity and compliance risks:\n\n"
            f"Raw Metrics: {json.dumps(raw_metrics, indent=2, default=str)}\n\n"
            "Perform comprehensive analysis:\n"
            "1. Data validation - check for anomalies, inconsistencies, or outliers\n"
            "2. CMS CoP risk assessment - identify potential survey risks\n"
            "3. Quality trend analysis - calculate improvement/deterioration patterns\n"
            "4. Overall QAPI score calculation (0-100)\n"
            "5. Flag any data integrity concerns"
        )
        return await self._run(contents, self.ANALYSIS_PROMPT, MetricShape.QAPI_ANALYSIS, timeout)

    async def recommend_improvement_projects(
        self,
        metrics: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> StageResult[ValidatedMetrics]:
        """Two or three Performance Improvement Project recommendations."""
        contents = (
            "Based on these QAPI metrics, recommend Performance Improvement Projects (PIPs):\n\n"
            f"Metrics: {json.dumps(metrics, indent=2, default=str)}\n\n"
            "Generate 2-3 targeted PIP recommendations."
        )
        return await self._run(contents, self.PIP_PROMPT, MetricShape.PIP_RECOMMENDATIONS, timeout)

    async def validate_compliance(
        self,
        compliance_data: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> StageResult[ValidatedMetrics]:
        """Compliance gaps, upcoming deadlines and documentation deficiencies."""
        contents = (
            "Validate this compliance data and generate alerts:\n\n"
            f"Data: {json.dumps(compliance_data, indent=2, default=str)}\n\n"
            "Identify critical compliance gaps, upcoming deadlines, and documentation deficiencies."
        )
        return await self._run(contents, self.COMPLIANCE_PROMPT, MetricShape.COMPLIANCE_VALIDATION, timeout)

    async def _run(
        self,
        contents: str,
        system_instruction: str,
        shape: MetricShape,
        timeout: Optional[float],
    ) -> StageResult[ValidatedMetrics]:
        async def operation() -> ValidatedMetrics:
            response = await self.generate(
                contents=contents,
                system_instruction=system_instruction,
                timeout=timeout,
            )
            validated = validate_metrics(response, shape)
            if validated.used_default:
                raise MalformedResponseError(f"{self.name}: {shape.value} response could not be parsed")
            return validated

        result = await self.guarded(operation, validate_metrics("", shape), step=shape.value)
        LOGGER.info(
            "Metric validation finished",
            extra={
                "shape": shape.value,
                "status": result.status.value,
                "used_default": result.value.used_default,
            }
        )
        return result

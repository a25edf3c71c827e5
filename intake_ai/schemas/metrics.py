"""Quality (QAPI) metric models."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ValidationStatus(str, Enum):
    VERIFIED = "verified"
    FLAGGED = "flagged"
    PENDING = "pending"


class MetricShape(str, Enum):
    """Shapes ``validate_metrics`` knows how to recover."""
    QAPI_ANALYSIS = "qapi_analysis"
    PIP_RECOMMENDATIONS = "pip_recommendations"
    COMPLIANCE_VALIDATION = "compliance_validation"


class DataValidation(BaseModel):
    status: ValidationStatus = ValidationStatus.VERIFIED
    anomalies: List[str] = Field(default_factory=list)
    confidence: float = Field(default=85.0, ge=0, le=100)


class CopRisk(BaseModel):
    """Conditions-of-Participation survey risk."""
    area: str
    risk_level: RiskLevel = RiskLevel.MEDIUM
    description: str = ""
    ai_confidence: float = Field(default=0.0, ge=0, le=100)


class QAPIAnalysis(BaseModel):
    data_validation: DataValidation = Field(default_factory=DataValidation)
    cop_risks: List[CopRisk] = Field(default_factory=list)
    overall_score: float = Field(default=82.0, ge=0, le=100)
    validation_status: ValidationStatus = ValidationStatus.VERIFIED
    recommendations: List[str] = Field(default_factory=list)
    root_causes: Dict[str, str] = Field(default_factory=dict)


class PIPTask(BaseModel):
    id: str
    description: str
    completed: bool = False
    assignee: str
    due_date: str


class PIPProject(BaseModel):
    """Performance Improvement Project recommendation."""
    id: str
    title: str
    priority: RiskLevel = RiskLevel.MEDIUM
    status: str = "planning"
    assigned_to: str
    due_date: str
    progress: int = Field(default=0, ge=0, le=100)
    ai_recommendation: str
    tasks: List[PIPTask] = Field(default_factory=list)


class ComplianceAlert(BaseModel):
    message: str
    severity: RiskLevel = RiskLevel.MEDIUM
    staff_member: Optional[str] = None
    due_date: Optional[str] = None


class ComplianceValidation(BaseModel):
    alerts: List[ComplianceAlert] = Field(default_factory=list)
    validation_status: ValidationStatus = ValidationStatus.VERIFIED
    critical_issues: int = Field(default=0, ge=0)
    recommendations: List[str] = Field(default_factory=list)


class ValidatedMetrics(BaseModel):
    """Typed metrics recovered from free-form analytical text.

    Exactly one of ``analysis``, ``projects`` or ``compliance`` is set,
    matching ``shape``.
    """
    shape: MetricShape
    analysis: Optional[QAPIAnalysis] = None
    projects: Optional[List[PIPProject]] = None
    compliance: Optional[ComplianceValidation] = None
    used_default: bool = False
    corrected_fields: List[str] = Field(default_factory=list)
